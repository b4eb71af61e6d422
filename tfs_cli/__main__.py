"""Permite executar com: python -m tfs_cli."""
import sys

from tfs_cli.cli import main

if __name__ == "__main__":
    sys.exit(main())
