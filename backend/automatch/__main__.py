"""
Main entry point for the automatch package.

Usage:
    python -m automatch [command] [options]

See 'python -m automatch --help' for available commands.
"""

import sys

from automatch.cli import main

if __name__ == "__main__":
    sys.exit(main())
