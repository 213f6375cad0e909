"""Command line entry for the iReside API (same commands as the ``ireside`` script)."""

import sys

from cli.manage import main

if __name__ == "__main__":
    sys.exit(main())
