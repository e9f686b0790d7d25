"""Allow ``python -m broadside server|client <port>``."""

import sys

from .cli import main

sys.exit(main())
