"""vcs-runner entry point.

Supports: python -m vcs_runner
"""

import sys

from .app import main

if __name__ == "__main__":
    sys.exit(main())
