# SPDX-License-Identifier: MIT
"""Package entry point: run the analyzer via `python -m superaudit`."""

import sys

from superaudit.cli import main

if __name__ == "__main__":
    sys.exit(main())
