"""Module entrypoint for `python -m ovirt_adapter`."""

import sys

from ovirt_adapter.cli import main

if __name__ == "__main__":
    sys.exit(main())
