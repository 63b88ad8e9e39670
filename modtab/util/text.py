"""
MIT License

Text helpers for tab-delimited submission files.
"""

from __future__ import annotations

import re
from typing import Iterable, List

_LONE_CR_RE = re.compile(r"\r(?!\n)")


def normalize_newlines(text: str) -> str:
    """Turn old Mac (lone CR) and Windows line endings into LF."""
    return _LONE_CR_RE.sub("\n", text).replace("\r\n", "\n")


def clean_cell(value: str) -> str:
    """Strip surrounding whitespace and the quotes spreadsheet exports add."""
    return value.strip().strip('"').strip()


def split_cells(line: str) -> List[str]:
    """Split one tab-delimited line into cleaned cells."""
    return [clean_cell(cell) for cell in line.rstrip("\r\n").split("\t")]


def is_skippable(line: str) -> bool:
    """True for blank lines and ``#`` comments."""
    stripped = line.strip()
    return not stripped or stripped.startswith("#")


def comma_join(items: Iterable[str]) -> str:
    """Join iterable entries using commas while skipping empties."""
    filtered = [item for item in items if item]
    return ",".join(filtered)


__all__ = ["normalize_newlines", "clean_cell", "split_cells", "is_skippable", "comma_join"]
