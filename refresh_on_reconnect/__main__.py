import sys

from refresh_on_reconnect.cli import main

sys.exit(main())
