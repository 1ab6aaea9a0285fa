"""Entry point for running as module: python -m spirestats"""

import sys

from spirestats.cli.commands import main

if __name__ == "__main__":
    sys.exit(main())
