"""Run the command line tool with ``python -m homewizard_local``."""

import sys

from .cli import main

sys.exit(main())
