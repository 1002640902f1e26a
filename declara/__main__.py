"""
Declara CLI Entry Point
=======================

Allows running declara as a module: python -m declara
"""

import sys

from declara.cli.main import cli

if __name__ == "__main__":
    sys.exit(cli())
