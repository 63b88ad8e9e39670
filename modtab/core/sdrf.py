"""
MIT License

SDRF header compiler, row materializer and file parser.

The header grammar is::

    header   := io* protocol+
    protocol := Protocol REF term_source? attribute* io*
    io       := datum term_source? attribute*

:func:`compile_header` turns one header line into a :class:`CompiledHeader`
of static column handlers; :func:`materialize_row` replays those handlers over
each data row.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Pattern, Sequence, Tuple

from .grammar import (
    AttributeHandler,
    HeaderCursor,
    TermSourceHandler,
    cell_at,
    make_type,
    parse_qualifiers,
)
from .model import AppliedProtocol, Datum, Experiment, Protocol
from .reconcile import reconcile
from ..util.errors import GrammarError, ParseError
from ..util.logging import ErrorLogger, get_error_logger
from ..util.text import is_skippable, normalize_newlines, split_cells

INPUT = "input"
OUTPUT = "output"

REQUIRED = "required"
OPTIONAL = "optional"
FORBIDDEN = "forbidden"

PROTOCOL_REF_RE = re.compile(r"Protocol *REFs?", re.IGNORECASE)


@dataclass(frozen=True)
class DatumRule:
    """One reserved data heading and the defaults it implies."""

    kind: str
    pattern: Pattern[str]
    direction: str
    bracket: str = REQUIRED
    default_type: Optional[str] = None
    term_source: bool = True


def _rule(kind: str, pattern: str, direction: str, **kwargs) -> DatumRule:
    return DatumRule(kind, re.compile(pattern, re.IGNORECASE), direction, **kwargs)


# Tried in order; the first pattern matching the start of a heading wins.
DATUM_RULES: Tuple[DatumRule, ...] = (
    _rule("parameter_value", r"Parameter *Values?", INPUT),
    _rule("parameter_file", r"Parameter *Files?", INPUT, default_type="modtab:file", term_source=False),
    _rule("array_design_ref", r"Array *Design *REFs?", INPUT),
    _rule("hybridization_name", r"Hybridi[sz]ation *Names?", INPUT, bracket=OPTIONAL),
    _rule("result_value", r"Result *Values?", OUTPUT),
    _rule("array_data_file", r"(?:Derived)? *Array *Data *Files?", OUTPUT,
          default_type="mage:datafile", term_source=False),
    _rule("source_name", r"Source *Names?", OUTPUT, bracket=FORBIDDEN, default_type="mage:biosource"),
    _rule("sample_name", r"Sample *Names?", OUTPUT, bracket=FORBIDDEN, default_type="mage:biosample"),
    _rule("extract_name", r"Extract *Names?", OUTPUT, bracket=FORBIDDEN, default_type="mage:biosample"),
    _rule("labeled_extract_name", r"Labell?ed *Extract *Names?", OUTPUT,
          bracket=FORBIDDEN, default_type="mage:labeledextract"),
    _rule("result_file", r"Result *Files?", OUTPUT, default_type="modtab:generic_file", term_source=False),
    _rule("array_matrix_data_file", r"Array *Matrix *Data *Files?", OUTPUT,
          default_type="mage:datafile", term_source=False),
)

RESERVED_HEADINGS: Tuple[Pattern[str], ...] = (PROTOCOL_REF_RE,) + tuple(rule.pattern for rule in DATUM_RULES)


def _consume_attributes(handlers, cells: Sequence[str], pos: int):
    attributes = []
    for rank, handler in enumerate(handlers):
        attribute, width = handler.consume(cells, pos)
        attribute.rank = rank
        attributes.append(attribute)
        pos += width
    return attributes, pos


@dataclass(frozen=True)
class DatumHandler:
    column: int
    rule: DatumRule
    heading: str
    name: Optional[str] = None
    type: Optional[str] = None
    term_source: Optional[TermSourceHandler] = None
    attributes: Tuple[AttributeHandler, ...] = ()

    @property
    def direction(self) -> str:
        return self.rule.direction

    @property
    def width(self) -> int:
        width = 1 + (self.term_source.width if self.term_source else 0)
        return width + sum(handler.width for handler in self.attributes)

    def consume(self, cells: Sequence[str], pos: int) -> Tuple[Datum, int]:
        datum = Datum(
            heading=self.heading,
            value=cell_at(cells, pos),
            name=self.name,
            type=make_type(self.type or self.rule.default_type),
        )
        cursor = pos + 1
        if self.term_source is not None:
            datum.termsource, width = self.term_source.consume(cells, cursor)
            cursor += width
        datum.attributes, cursor = _consume_attributes(self.attributes, cells, cursor)
        return datum, cursor - pos


@dataclass(frozen=True)
class ProtocolHandler:
    column: int
    term_source: Optional[TermSourceHandler] = None
    attributes: Tuple[AttributeHandler, ...] = ()
    data: Tuple[DatumHandler, ...] = ()

    @property
    def width(self) -> int:
        width = 1 + (self.term_source.width if self.term_source else 0)
        width += sum(handler.width for handler in self.attributes)
        return width + sum(handler.width for handler in self.data)

    def consume(self, cells: Sequence[str], pos: int) -> Tuple[AppliedProtocol, int]:
        protocol = Protocol(name=cell_at(cells, pos))
        cursor = pos + 1
        if self.term_source is not None:
            protocol.termsource, width = self.term_source.consume(cells, cursor)
            cursor += width
        protocol.attributes, cursor = _consume_attributes(self.attributes, cells, cursor)
        applied_protocol = AppliedProtocol(protocol)
        data = []
        for handler in self.data:
            datum, width = handler.consume(cells, cursor)
            data.append((handler.direction, datum))
            cursor += width
        for direction, datum in data:
            if direction == INPUT:
                applied_protocol.add_input_datum(datum)
        for direction, datum in data:
            if direction == OUTPUT:
                applied_protocol.add_output_datum(datum)
        return applied_protocol, cursor - pos


@dataclass(frozen=True)
class CompiledHeader:
    leading: Tuple[DatumHandler, ...]
    protocols: Tuple[ProtocolHandler, ...]

    @property
    def stage_count(self) -> int:
        return len(self.protocols)

    @property
    def width(self) -> int:
        return sum(h.width for h in self.leading) + sum(h.width for h in self.protocols)


def _datum_handler(cursor: HeaderCursor) -> Optional[DatumHandler]:
    cell = cursor.peek()
    if not cell:
        return None
    for rule in DATUM_RULES:
        match = rule.pattern.match(cell)
        if match is not None:
            break
    else:
        return None
    qualifiers = parse_qualifiers(cell[match.end():], cursor.line, cursor.column)
    if rule.bracket == REQUIRED and qualifiers.name is None:
        raise cursor.error(f"Heading {cell!r} needs a [name] qualifier")
    if rule.bracket == FORBIDDEN and qualifiers.name is not None:
        raise cursor.error(f"Heading {cell!r} does not take a [name] qualifier")
    column = cursor.pos
    cursor.advance()
    return DatumHandler(
        column=column,
        rule=rule,
        heading=match.group(0).strip(),
        name=qualifiers.name,
        type=qualifiers.type,
        term_source=cursor.term_source() if rule.term_source else None,
        attributes=cursor.attributes(RESERVED_HEADINGS),
    )


def _data_handlers(cursor: HeaderCursor) -> Tuple[DatumHandler, ...]:
    handlers = []
    while True:
        handler = _datum_handler(cursor)
        if handler is None:
            return tuple(handlers)
        handlers.append(handler)


def _protocol_handler(cursor: HeaderCursor) -> Optional[ProtocolHandler]:
    cell = cursor.peek()
    if not PROTOCOL_REF_RE.fullmatch(cell):
        return None
    column = cursor.pos
    cursor.advance()
    return ProtocolHandler(
        column=column,
        term_source=cursor.term_source(),
        attributes=cursor.attributes(RESERVED_HEADINGS),
        data=_data_handlers(cursor),
    )


def compile_header(cells: Sequence[str], line: int = 1) -> CompiledHeader:
    """Compile an SDRF header line, raising :class:`GrammarError` on failure."""
    cursor = HeaderCursor(cells, line)
    leading = _data_handlers(cursor)
    protocols = []
    while True:
        handler = _protocol_handler(cursor)
        if handler is None:
            break
        protocols.append(handler)
    if not cursor.at_end():
        cell = cursor.peek()
        if not cell:
            raise cursor.error("Empty heading cell")
        raise cursor.error(f"Unexpected heading {cell!r}")
    if not protocols:
        raise GrammarError("SDRF header has no Protocol REF column", line)
    return CompiledHeader(leading=leading, protocols=tuple(protocols))


def materialize_row(
    header: CompiledHeader,
    cells: Sequence[str],
    intern: Optional[Callable[[Protocol], Protocol]] = None,
) -> Tuple[List[AppliedProtocol], List[str]]:
    """Build one AppliedProtocol per stage; also return leftover non-empty cells."""
    pos = 0
    leading = []
    for handler in header.leading:
        datum, width = handler.consume(cells, pos)
        leading.append(datum)
        pos += width
    applied_protocols = []
    for handler in header.protocols:
        applied_protocol, width = handler.consume(cells, pos)
        if intern is not None:
            applied_protocol.protocol = intern(applied_protocol.protocol)
        applied_protocols.append(applied_protocol)
        pos += width
    # leading data feed the first stage whatever their declared direction
    for datum in leading:
        applied_protocols[0].add_input_datum(datum)
    leftover = [cell for cell in cells[pos:] if cell]
    return applied_protocols, leftover


class SDRFParser:
    """Parse one SDRF file into an :class:`Experiment` holding reconciled slots."""

    def __init__(self, logger: Optional[ErrorLogger] = None) -> None:
        self.logger = logger or get_error_logger()
        self.protocols: List[Protocol] = []

    def intern_protocol(self, protocol: Protocol) -> Protocol:
        for existing in self.protocols:
            if existing == protocol:
                return existing
        self.protocols.append(protocol)
        return protocol

    def parse(self, path: str) -> Experiment:
        sdrf_path = Path(path)
        try:
            text = sdrf_path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            self.logger.error(f"Can't read SDRF file {sdrf_path}: {exc}")
            raise ParseError(f"Can't read SDRF file {sdrf_path}") from exc
        self.logger.notice(f"Parsing SDRF {sdrf_path}", ">")
        try:
            return self.parse_text(text)
        finally:
            self.logger.notice("Done.", "<")

    def parse_text(self, text: str) -> Experiment:
        self.protocols = []
        lines = normalize_newlines(text).split("\n")
        header: Optional[CompiledHeader] = None
        slots: List[List[AppliedProtocol]] = []
        for lineno, line in enumerate(lines, start=1):
            if is_skippable(line):
                continue
            cells = split_cells(line)
            if header is None:
                try:
                    header = compile_header(cells, lineno)
                except GrammarError as exc:
                    self.logger.error(f"Couldn't parse header line of SDRF: {exc}")
                    raise
                slots = [[] for _ in range(header.stage_count)]
                continue
            applied_protocols, leftover = materialize_row(header, cells, self.intern_protocol)
            if leftover:
                self.logger.warning(f"Line {lineno} not fully processed: " + "\t".join(leftover))
            if len(applied_protocols) != header.stage_count:
                message = (
                    f"Got back {len(applied_protocols)} applied protocols when "
                    f"{header.stage_count} were expected"
                )
                self.logger.error(message)
                raise ParseError(message, lineno)
            for slot, applied_protocol in zip(slots, applied_protocols):
                slot.append(applied_protocol)
        if header is None:
            self.logger.error("SDRF has no header line")
            raise ParseError("SDRF has no header line")
        return Experiment(applied_protocol_slots=reconcile(slots))


__all__ = [
    "DatumRule",
    "DATUM_RULES",
    "DatumHandler",
    "ProtocolHandler",
    "CompiledHeader",
    "compile_header",
    "materialize_row",
    "SDRFParser",
]
