"""
MIT License

IDF (Investigation Description Format) parser.

Every IDF line is ``Heading<TAB>value<TAB>value...``. Headings are compiled
against :data:`IDF_RULES` into :class:`IDFLineHandler` values; applying the
handlers in file order fills an :class:`IDFAccumulator`, from which the
experiment properties, protocols and term sources are built. The SDRF files
named by the IDF are parsed and their protocol chain is attached to the
experiment.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from .model import (
    CVTerm,
    DB,
    DBXref,
    Experiment,
    ExperimentProperty,
    Protocol,
    Attribute,
    ontology_entry_type,
    string_type,
)
from .sdrf import SDRFParser
from .vocab import CVRegistry, get_registry
from ..util.errors import GrammarError, ModtabError, ParseError
from ..util.logging import ErrorLogger, get_error_logger
from ..util.text import is_skippable, normalize_newlines, split_cells

EXPERIMENT = "experiment"
METADATA = "optional metadata"
CONTACT = "contact"
INSTANCE = "experiment instance"
PROTOCOL = "protocol"
SDRF = "SDRF file"
TERM_SOURCE = "term source"

SECTION_ORDER: Tuple[str, ...] = (
    EXPERIMENT,
    METADATA,
    CONTACT,
    METADATA,
    INSTANCE,
    METADATA,
    PROTOCOL,
    SDRF,
    TERM_SOURCE,
)

DESCRIPTION_URL_PREFIX = "http://wiki.modencode.org/project/index.php?title="
UNIQUENAME_TITLE_LENGTH = 235

PERSON_FIELDS = (
    "Person Last Name",
    "Person First Name",
    "Person Mid Initials",
    "Person Email",
    "Person Phone",
    "Person Address",
    "Person Affiliation",
)


@dataclass(frozen=True)
class IDFRule:
    section: str
    field: str
    pattern: Pattern[str]


def _rule(section: str, name: str, pattern: str) -> IDFRule:
    return IDFRule(section, name, re.compile(pattern, re.IGNORECASE))


IDF_RULES: Tuple[IDFRule, ...] = (
    _rule(EXPERIMENT, "Investigation Title", r"Investigation *Title"),
    _rule(EXPERIMENT, "Experimental Design", r"Experimental *Design"),
    _rule(EXPERIMENT, "Experimental Design Term Source REF", r"Experimental *Design *Term *Source *REF"),
    _rule(EXPERIMENT, "Experimental Factor Name", r"Experimental *Factor *Name"),
    _rule(EXPERIMENT, "Experimental Factor Type", r"Experimental *Factor *Type"),
    _rule(EXPERIMENT, "Experimental Factor Term Source REF", r"Experimental *Factor *(?:Type *)?Term *Source *REF"),
    _rule(CONTACT, "Person Last Name", r"Person *Last *Name"),
    _rule(CONTACT, "Person First Name", r"Person *First *Name"),
    _rule(CONTACT, "Person Mid Initials", r"Person *Mid(?:dle)? *Initials?"),
    _rule(CONTACT, "Person Email", r"Person *Email *(?:Address)?"),
    _rule(CONTACT, "Person Phone", r"Person *Phone"),
    _rule(CONTACT, "Person Address", r"Person *Address"),
    _rule(CONTACT, "Person Affiliation", r"Person *Affiliation"),
    _rule(CONTACT, "Person Roles", r"Person *Roles?"),
    _rule(CONTACT, "Person Roles Term Source REF", r"Person *Roles? *Term *Source *REF"),
    _rule(INSTANCE, "Quality Control Type", r"Quality *Control *Type"),
    _rule(INSTANCE, "Quality Control Term Source REF", r"Quality *Control *(?:Type)? *Term *Source *REF"),
    _rule(INSTANCE, "Replicate Type", r"Replicate *Type"),
    _rule(INSTANCE, "Replicate Term Source REF", r"Replicate *(?:Type)? *Term *Source *REF"),
    _rule(INSTANCE, "Date of Experiment", r"Date *of *Experiment"),
    _rule(INSTANCE, "Public Release Date", r"(?:Public)? *Release *Date"),
    _rule(METADATA, "PubMed ID", r"PubMed *ID"),
    _rule(METADATA, "Experiment Description", r"Experiment *Description *(?:REF)?"),
    _rule(METADATA, "Project", r"Project *Group|Project"),
    _rule(METADATA, "Lab", r"Project *Subgroup|Lab"),
    _rule(PROTOCOL, "Protocol Name", r"Protocol *Name"),
    _rule(PROTOCOL, "Protocol Type", r"Protocol *Type"),
    _rule(PROTOCOL, "Protocol Description", r"Protocol *Description"),
    _rule(PROTOCOL, "Protocol Parameters", r"Protocol *Parameters?"),
    _rule(PROTOCOL, "Protocol Type Term Source REF", r"Protocol *(?:Type)? *Term *Source *REF"),
    _rule(SDRF, "SDRF File", r"SDRF *Files?"),
    _rule(TERM_SOURCE, "Term Source Name", r"Term *Source *Name"),
    _rule(TERM_SOURCE, "Term Source File", r"Term *Source *(?:File|URL|URI)"),
    _rule(TERM_SOURCE, "Term Source Version", r"Term *Source *Version"),
    _rule(TERM_SOURCE, "Term Source Type", r"Term *Source *Type"),
)


def next_section_position(position: int, section: str) -> Optional[int]:
    """Position of ``section`` at or after ``position`` in :data:`SECTION_ORDER`."""
    for idx in range(max(position, 0), len(SECTION_ORDER)):
        if SECTION_ORDER[idx] == section:
            return idx
    return None


@dataclass
class IDFAccumulator:
    """Everything read from one IDF so far, keyed by canonical field name."""

    fields: Dict[str, List[str]] = field(default_factory=dict)
    sections: List[str] = field(default_factory=list)
    position: int = -1

    def values(self, name: str) -> List[str]:
        return self.fields.get(name, [])

    def value(self, name: str, idx: int = 0) -> str:
        values = self.values(name)
        return values[idx] if idx < len(values) else ""

    def count(self, *names: str) -> int:
        return max((len(self.values(name)) for name in names), default=0)


@dataclass(frozen=True)
class IDFLineHandler:
    rule: IDFRule
    values: Tuple[str, ...]
    line: int

    def apply(self, acc: IDFAccumulator) -> IDFAccumulator:
        position = next_section_position(acc.position, self.rule.section)
        if position is None:
            raise GrammarError(
                f"{self.rule.field} belongs to the {self.rule.section} section, "
                f"which may not follow the {SECTION_ORDER[acc.position]} section",
                self.line,
                1,
            )
        acc.position = position
        if self.rule.section not in acc.sections:
            acc.sections.append(self.rule.section)
        acc.fields.setdefault(self.rule.field, []).extend(self.values)
        return acc


def compile_line(cells: Sequence[str], line: int) -> IDFLineHandler:
    heading = cells[0] if cells else ""
    for rule in IDF_RULES:
        if rule.pattern.fullmatch(heading):
            break
    else:
        raise GrammarError(f"Unknown IDF heading {heading!r}", line, 1)
    values = list(cells[1:])
    while values and not values[-1]:
        values.pop()
    return IDFLineHandler(rule=rule, values=tuple(values), line=line)


def compile_idf(text: str) -> List[IDFLineHandler]:
    handlers = []
    for lineno, line in enumerate(normalize_newlines(text).split("\n"), start=1):
        if is_skippable(line):
            continue
        handlers.append(compile_line(split_cells(line), lineno))
    return handlers


def _string_property(name: str, value: str, rank: int = 0) -> ExperimentProperty:
    return ExperimentProperty(name=name, value=value, type=string_type(), rank=rank)


def _term_properties(acc: IDFAccumulator, name: str, termsource_field: str) -> List[ExperimentProperty]:
    """Properties for a multi-valued field with a parallel Term Source REF line."""
    properties = []
    for rank, value in enumerate(acc.values(name)):
        if not value:
            continue
        prop = _string_property(name, value, rank)
        termsource = acc.value(termsource_field, rank)
        if termsource:
            prop.type = ontology_entry_type()
            prop.termsource = DBXref(db=DB(name=termsource), accession=value)
        properties.append(prop)
    return properties


def experiment_properties(acc: IDFAccumulator) -> List[ExperimentProperty]:
    title = acc.value("Investigation Title")
    if not title:
        raise ParseError("The Investigation Title field is missing from the IDF.")
    properties = [_string_property("Investigation Title", title)]
    properties.extend(_term_properties(acc, "Experimental Design", "Experimental Design Term Source REF"))
    for rank, factor in enumerate(acc.values("Experimental Factor Name")):
        if factor:
            properties.append(_string_property("Experimental Factor Name", factor, rank))
    properties.extend(_term_properties(acc, "Experimental Factor Type", "Experimental Factor Term Source REF"))
    return properties


def contact_properties(acc: IDFAccumulator) -> List[ExperimentProperty]:
    properties = []
    for rank in range(acc.count(*PERSON_FIELDS, "Person Roles")):
        for name in PERSON_FIELDS:
            value = acc.value(name, rank)
            if value:
                properties.append(_string_property(name, value, rank))
        role = acc.value("Person Roles", rank)
        if role:
            prop = _string_property("Person Roles", role, rank)
            termsource = acc.value("Person Roles Term Source REF", rank)
            if termsource:
                prop.type = ontology_entry_type()
                prop.termsource = DBXref(db=DB(name=termsource), accession=role)
            properties.append(prop)
    return properties


def instance_properties(acc: IDFAccumulator) -> List[ExperimentProperty]:
    properties = _term_properties(acc, "Quality Control Type", "Quality Control Term Source REF")
    properties.extend(_term_properties(acc, "Replicate Type", "Replicate Term Source REF"))
    return properties


def metadata_properties(acc: IDFAccumulator) -> List[ExperimentProperty]:
    properties = []
    date = acc.value("Date of Experiment")
    if date:
        properties.append(
            ExperimentProperty(name="Date of Experiment", value=date, type=CVTerm(name="date", cv="xsd"))
        )
    for name in ("Public Release Date", "PubMed ID"):
        value = acc.value(name)
        if value:
            properties.append(_string_property(name, value))
    for name in ("Project", "Lab"):
        values = [value for value in acc.values(name) if value]
        properties.extend(_string_property(name, value, rank) for rank, value in enumerate(values))
    description = acc.value("Experiment Description")
    if description:
        if not description.startswith(("http://", "https://")):
            description = DESCRIPTION_URL_PREFIX + description
        properties.append(_string_property("Experiment Description", description))
    return properties


def _split_terms(text: str) -> List[str]:
    return [term.strip() for term in re.split(r"[;,]+", text) if term.strip()]


def protocol_type_attributes(
    protocol_name: str,
    protocol_type: str,
    termsource_ref: str,
    logger: ErrorLogger,
) -> List[Attribute]:
    """Turn a Protocol Type cell into ranked OntologyEntry attributes.

    Each term is ``SOURCE:name``; a bare name is allowed only when exactly
    one term source is given for the protocol.
    """
    if not protocol_type:
        raise ParseError(f"The Protocol Type field for {protocol_name} is missing from the IDF.")
    if not termsource_ref:
        raise ParseError(
            f"The Protocol (Type) Term Source REF field for {protocol_name} is missing from the IDF."
        )
    sources = _split_terms(termsource_ref)
    attributes = []
    for rank, term in enumerate(_split_terms(protocol_type)):
        source, sep, name = term.partition(":")
        if not sep or not name:
            if len(sources) != 1:
                raise ParseError(
                    "Each term in Protocol Type must have a prefix if there is more than one "
                    f"term source (e.g. MO:grow, SO:gene); got '{term}' for {protocol_name}."
                )
            source, name = sources[0], term
            logger.warning(
                f"Protocol Type '{term}' for {protocol_name} has no prefix; assuming {source}:{name}."
            )
        if source not in sources:
            raise ParseError(
                f"The term source {source} for Protocol Type '{term}' is not mentioned "
                "in the Protocol Term Source REF field."
            )
        attributes.append(
            Attribute(
                heading="Protocol Type",
                value=name,
                type=ontology_entry_type(),
                termsource=DBXref(db=DB(name=source), accession=name),
                rank=rank,
            )
        )
    return attributes


def build_protocols(acc: IDFAccumulator, logger: ErrorLogger) -> List[Protocol]:
    protocols = []
    for idx, name in enumerate(acc.values("Protocol Name")):
        if not name:
            continue
        protocol = Protocol(name=name, description=acc.value("Protocol Description", idx) or None)
        for attribute in protocol_type_attributes(
            name,
            acc.value("Protocol Type", idx),
            acc.value("Protocol Type Term Source REF", idx),
            logger,
        ):
            protocol.add_attribute(attribute)
        parameters = acc.value("Protocol Parameters", idx)
        if parameters:
            protocol.add_attribute(
                Attribute(heading="Protocol Parameters", value=parameters, type=string_type())
            )
        protocols.append(protocol)
    return protocols


def build_term_sources(acc: IDFAccumulator, registry: CVRegistry) -> List[DBXref]:
    term_sources = []
    for idx, name in enumerate(acc.values("Term Source Name")):
        if not name:
            continue
        url = acc.value("Term Source File", idx) or None
        description = acc.value("Term Source Type", idx) or None
        version = acc.value("Term Source Version", idx) or None
        registry.register(name, url, description)
        term_sources.append(DBXref(db=DB(name=name, url=url, description=description), version=version))
    return term_sources


def merge_protocols(experiment: Experiment, protocols: Sequence[Protocol], logger: ErrorLogger) -> None:
    """Copy IDF descriptions and attributes onto the SDRF protocols of the same name."""
    by_name = {protocol.name: protocol for protocol in protocols}
    merged = set()
    for applied_protocol in experiment.iter_applied_protocols():
        protocol = applied_protocol.protocol
        if id(protocol) in merged:
            continue
        merged.add(id(protocol))
        declared = by_name.get(protocol.name)
        if declared is None:
            logger.warning(f"Protocol {protocol.name} is used in the SDRF but not described in the IDF")
            continue
        if not protocol.description:
            protocol.description = declared.description
        for attribute in declared.attributes:
            protocol.add_attribute(attribute)


def attach_term_sources(experiment: Experiment, term_sources: Sequence[DBXref]) -> None:
    """Point SDRF term-source references at the DB records declared in the IDF."""
    declared = {dbxref.db.name: dbxref.db for dbxref in term_sources}

    def attach(dbxref: Optional[DBXref]) -> None:
        if dbxref is not None and dbxref.db.name in declared:
            dbxref.db = declared[dbxref.db.name]

    for applied_protocol in experiment.iter_applied_protocols():
        attach(applied_protocol.protocol.termsource)
        for attribute in applied_protocol.protocol.attributes:
            attach(attribute.termsource)
    for datum in experiment.iter_data():
        attach(datum.termsource)
        for attribute in datum.attributes:
            attach(attribute.termsource)


@dataclass
class IDFResult:
    experiment: Experiment
    protocols: List[Protocol]
    sdrf_experiments: List[Experiment]
    term_sources: List[DBXref]


class IDFParser:
    def __init__(self, logger: Optional[ErrorLogger] = None, registry: Optional[CVRegistry] = None) -> None:
        self.logger = logger or get_error_logger()
        self.registry = registry or get_registry()

    def parse(self, path: str) -> IDFResult:
        idf_path = Path(path)
        try:
            text = idf_path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            self.logger.error(f"Can't read IDF file {idf_path}: {exc}")
            raise ParseError(f"Can't read IDF file {idf_path}") from exc
        self.logger.notice(f"Parsing IDF file {idf_path}.", ">")
        try:
            return self.parse_text(text, base_dir=idf_path.parent)
        finally:
            self.logger.notice("Done.", "<")

    def parse_text(self, text: str, base_dir: Optional[Path] = None) -> IDFResult:
        try:
            return self._build(text, Path(base_dir) if base_dir is not None else Path("."))
        except ModtabError as exc:
            self.logger.error(str(exc))
            raise

    def _build(self, text: str, base_dir: Path) -> IDFResult:
        acc = IDFAccumulator()
        for handler in compile_idf(text):
            acc = handler.apply(acc)

        experiment = Experiment()
        experiment.add_properties(experiment_properties(acc))
        title = acc.value("Investigation Title")
        experiment.uniquename = f"{title[:UNIQUENAME_TITLE_LENGTH]}:{time.time()}"
        experiment.add_properties(contact_properties(acc))
        experiment.add_properties(instance_properties(acc))
        experiment.add_properties(metadata_properties(acc))

        for section, heading in (
            (CONTACT, "Person Last Name"),
            (PROTOCOL, "Protocol Name"),
            (SDRF, "SDRF File"),
            (TERM_SOURCE, "Term Source Name"),
        ):
            if section not in acc.sections:
                raise GrammarError(f"The IDF has no {section} section ({heading} line)")

        protocols = build_protocols(acc, self.logger)
        term_sources = build_term_sources(acc, self.registry)

        sdrf_experiments = []
        for sdrf_file in acc.values("SDRF File"):
            if not sdrf_file:
                continue
            sdrf_path = Path(sdrf_file)
            if not sdrf_path.is_absolute():
                sdrf_path = base_dir / sdrf_path
            sdrf_experiments.append(SDRFParser(logger=self.logger).parse(str(sdrf_path)))
        if not sdrf_experiments:
            raise ParseError("The SDRF File field is empty.")
        if len(sdrf_experiments) > 1:
            self.logger.warning("More than one SDRF file given; only the first one's protocols are attached")
        experiment.applied_protocol_slots = sdrf_experiments[0].applied_protocol_slots

        merge_protocols(experiment, protocols, self.logger)
        attach_term_sources(experiment, term_sources)
        self.registry.check_term_sources(experiment)
        return IDFResult(
            experiment=experiment,
            protocols=protocols,
            sdrf_experiments=sdrf_experiments,
            term_sources=term_sources,
        )


__all__ = [
    "IDFRule",
    "IDF_RULES",
    "SECTION_ORDER",
    "IDFAccumulator",
    "IDFLineHandler",
    "IDFResult",
    "IDFParser",
    "compile_line",
    "compile_idf",
    "next_section_position",
    "experiment_properties",
    "contact_properties",
    "instance_properties",
    "metadata_properties",
    "protocol_type_attributes",
    "build_protocols",
    "build_term_sources",
    "merge_protocols",
    "attach_term_sources",
]
