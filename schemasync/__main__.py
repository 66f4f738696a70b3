# File: schemasync/__main__.py
"""
Module entry point::

    python -m schemasync install bundle.zip --dest .
"""

from __future__ import annotations


def main() -> None:
    """Delegate to the CLI main function."""
    from schemasync.cli import cli_main
    cli_main()


if __name__ == "__main__":
    main()
