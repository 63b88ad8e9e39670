"""
MIT License

``python -m modtab idf ...`` / ``python -m modtab gff3 ...``
"""

from __future__ import annotations

from .cli import build_parser, dispatch


def main() -> None:
    """Parse the command line and run the chosen loader (also the ``modtab`` script)."""
    dispatch(build_parser().parse_args())


if __name__ == "__main__":
    main()
