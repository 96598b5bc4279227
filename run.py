"""Run the devloop supervisor."""

import sys

from devloop.main import run

if __name__ == "__main__":
    sys.exit(run())
