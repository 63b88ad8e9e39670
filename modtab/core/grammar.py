"""
MIT License

Building blocks shared by the SDRF and IDF header grammars.

A header is compiled once into immutable handler values. Each handler knows
which columns it owns and how to turn the matching row cells into a record;
replaying the handlers over a row never re-inspects the header text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Pattern, Sequence, Tuple

from .model import Attribute, CVTerm, DB, DBXref
from ..util.errors import GrammarError

TERM_SOURCE_RE = re.compile(r"Term *Source *REFs?", re.IGNORECASE)
TERM_ACCESSION_RE = re.compile(r"Term *Accession *(?:Numbers?)?", re.IGNORECASE)

# Optional ``[name]`` then optional ``(type)`` after a heading, nothing else.
_QUALIFIER_RE = re.compile(r"\s*(?:\[\s*([^\]]+?)\s*\])?\s*(?:\(\s*([^\)]+?)\s*\))?\s*")
_ATTRIBUTE_TEXT_RE = re.compile(r"([^\t\"\[\(]+)")


@dataclass(frozen=True)
class Qualifiers:
    name: Optional[str]
    type: Optional[str]


def cell_at(cells: Sequence[str], pos: int) -> str:
    """Row value at ``pos``; rows shorter than the header read as empty."""
    return cells[pos] if pos < len(cells) else ""


def parse_qualifiers(rest: str, line: int, column: int) -> Qualifiers:
    """Parse the ``[name](type)`` tail of a heading cell."""
    match = _QUALIFIER_RE.fullmatch(rest)
    if match is None:
        raise GrammarError(f"Unparsed text in heading: {rest.strip()!r}", line, column)
    return Qualifiers(name=match.group(1), type=match.group(2))


def is_term_source(cell: str) -> bool:
    return TERM_SOURCE_RE.fullmatch(cell) is not None


def is_term_accession(cell: str) -> bool:
    return TERM_ACCESSION_RE.fullmatch(cell) is not None


def make_type(text: Optional[str]) -> Optional[CVTerm]:
    return CVTerm.parse(text) if text else None


@dataclass(frozen=True)
class TermSourceHandler:
    """``Term Source REF`` column with an optional ``Term Accession Number``."""

    column: int
    has_accession: bool = False

    @property
    def width(self) -> int:
        return 2 if self.has_accession else 1

    def consume(self, cells: Sequence[str], pos: int) -> Tuple[Optional[DBXref], int]:
        ref = cell_at(cells, pos)
        accession = cell_at(cells, pos + 1) if self.has_accession else ""
        if not ref:
            return None, self.width
        return DBXref(db=DB(name=ref), accession=accession or None), self.width


@dataclass(frozen=True)
class AttributeHandler:
    """Free-text column qualifying the datum or protocol before it."""

    column: int
    heading: str
    name: Optional[str] = None
    type: Optional[str] = None
    term_source: Optional[TermSourceHandler] = None

    @property
    def width(self) -> int:
        return 1 + (self.term_source.width if self.term_source else 0)

    def consume(self, cells: Sequence[str], pos: int) -> Tuple[Attribute, int]:
        attribute = Attribute(
            heading=self.heading,
            value=cell_at(cells, pos),
            name=self.name,
            type=make_type(self.type),
        )
        if self.term_source is not None:
            attribute.termsource, _ = self.term_source.consume(cells, pos + 1)
        return attribute, self.width


class HeaderCursor:
    """Left-to-right walk over the cells of one header line."""

    def __init__(self, cells: Sequence[str], line: int = 1) -> None:
        self.cells = list(cells)
        # trailing empty cells are just padding
        while self.cells and not self.cells[-1]:
            self.cells.pop()
        self.pos = 0
        self.line = line

    def at_end(self) -> bool:
        return self.pos >= len(self.cells)

    def peek(self) -> str:
        return self.cells[self.pos] if not self.at_end() else ""

    @property
    def column(self) -> int:
        return self.pos + 1

    def advance(self) -> str:
        cell = self.peek()
        self.pos += 1
        return cell

    def error(self, message: str) -> GrammarError:
        return GrammarError(message, self.line, self.column)

    def term_source(self) -> Optional[TermSourceHandler]:
        """``term_source := Term Source REF Term Accession Number?``"""
        if not is_term_source(self.peek()):
            return None
        column = self.pos
        self.advance()
        has_accession = False
        if not self.at_end() and is_term_accession(self.peek()):
            self.advance()
            has_accession = True
        return TermSourceHandler(column=column, has_accession=has_accession)

    def attribute(self, reserved: Sequence[Pattern[str]]) -> Optional[AttributeHandler]:
        """Catch-all for headings that no reserved heading claims."""
        cell = self.peek()
        if self.at_end() or not cell:
            return None
        if is_term_source(cell) or is_term_accession(cell):
            return None
        if any(pattern.match(cell) for pattern in reserved):
            return None
        match = _ATTRIBUTE_TEXT_RE.match(cell)
        if match is None:
            return None
        column = self.pos
        qualifiers = parse_qualifiers(cell[match.end():], self.line, self.column)
        self.advance()
        return AttributeHandler(
            column=column,
            heading=match.group(1).strip(),
            name=qualifiers.name,
            type=qualifiers.type,
            term_source=self.term_source(),
        )

    def attributes(self, reserved: Sequence[Pattern[str]]) -> Tuple[AttributeHandler, ...]:
        found = []
        while True:
            handler = self.attribute(reserved)
            if handler is None:
                return tuple(found)
            found.append(handler)


__all__ = [
    "Qualifiers",
    "TermSourceHandler",
    "AttributeHandler",
    "HeaderCursor",
    "cell_at",
    "parse_qualifiers",
    "is_term_source",
    "is_term_accession",
    "make_type",
    "TERM_SOURCE_RE",
    "TERM_ACCESSION_RE",
]
