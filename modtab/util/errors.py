"""
MIT License

Exception hierarchy for modtab parsers.
"""

from __future__ import annotations

from typing import Optional


class ModtabError(Exception):
    """Super-class for all modtab errors."""


class ParseError(ModtabError):
    """An input file could not be turned into an object graph."""

    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None) -> None:
        self.message = message
        self.line = line
        self.column = column
        location = ""
        if line is not None:
            location = f"line {line}"
            if column is not None:
                location += f", column {column}"
            location += ": "
        super().__init__(f"{location}{message}")


class GrammarError(ParseError):
    """A header line (or IDF line) does not match the expected grammar."""


__all__ = ["ModtabError", "ParseError", "GrammarError"]
