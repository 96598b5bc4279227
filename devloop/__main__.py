"""
Entry point for running devloop via `python -m devloop`.

Runs the supervisor until it receives SIGINT or SIGTERM.
"""

import sys

from .main import run


def main():
    """Run the supervisor and exit with its status."""
    sys.exit(run())


if __name__ == "__main__":
    main()
