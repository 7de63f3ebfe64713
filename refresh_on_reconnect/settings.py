"""Environment-driven defaults for the connectivity monitor and CLI."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "REFRESH_ON_RECONNECT_"

DEFAULT_CHECK_URL = "https://www.google.com"
DEFAULT_TIMEOUT = 10.0
DEFAULT_DEBOUNCE = 2.0
DEFAULT_POLL_INTERVAL = 5.0

_TRUTHY = {"1", "true", "yes", "on"}


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s%s=%r; using %s", ENV_PREFIX, name, raw, default)
        return default
    if value < 0:
        logger.warning("Ignoring negative %s%s=%r; using %s", ENV_PREFIX, name, raw, default)
        return default
    return value


@dataclass(frozen=True, slots=True)
class Settings:
    """Resolved configuration values."""

    check_url: str = DEFAULT_CHECK_URL
    timeout: float = DEFAULT_TIMEOUT
    debounce: float = DEFAULT_DEBOUNCE
    poll_interval: float = DEFAULT_POLL_INTERVAL
    lenient: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        check_url = (env.get(ENV_PREFIX + "CHECK_URL") or "").strip() or DEFAULT_CHECK_URL
        lenient = (env.get(ENV_PREFIX + "LENIENT") or "").strip().lower() in _TRUTHY
        return cls(
            check_url=check_url,
            timeout=_env_float(env, "TIMEOUT", DEFAULT_TIMEOUT),
            debounce=_env_float(env, "DEBOUNCE", DEFAULT_DEBOUNCE),
            poll_interval=_env_float(env, "POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
            lenient=lenient,
        )


__all__ = [
    "DEFAULT_CHECK_URL",
    "DEFAULT_DEBOUNCE",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_TIMEOUT",
    "ENV_PREFIX",
    "Settings",
]
