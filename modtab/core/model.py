"""
MIT License

Typed records built from IDF, SDRF and GFF3 input.

Experiment-side records (Datum, Attribute, Protocol, AppliedProtocol) compare
by value so that identical protocol chains coming from different SDRF rows can
be collapsed. Features compare by identity and refer to each other through
:data:`FeatureKey` values, never through object references; the feature store
resolves keys back to objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

FeatureKey = Tuple[str, str]


@dataclass
class DB:
    name: str
    url: Optional[str] = None
    description: Optional[str] = None


@dataclass
class DBXref:
    """Term-source reference: a database plus an accession in it."""

    db: DB
    accession: Optional[str] = None
    version: Optional[str] = None


@dataclass
class CVTerm:
    name: Optional[str]
    cv: Optional[str] = None
    dbxref: Optional[DBXref] = field(default=None, compare=False)

    @classmethod
    def parse(cls, text: str) -> "CVTerm":
        """Build a term from ``cv:name`` notation; a bare word has no CV."""
        cv, sep, name = text.partition(":")
        if not sep:
            return cls(name=text)
        return cls(name=name, cv=cv)

    def __str__(self) -> str:
        return f"{self.cv}:{self.name}" if self.cv else str(self.name)


def string_type() -> CVTerm:
    return CVTerm(name="string", cv="xsd")


def ontology_entry_type() -> CVTerm:
    return CVTerm(name="OntologyEntry", cv="MO")


@dataclass
class Attribute:
    heading: str
    value: str
    name: Optional[str] = None
    type: Optional[CVTerm] = None
    termsource: Optional[DBXref] = None
    rank: int = 0


@dataclass
class Datum:
    """One data column value; equality covers heading, name, type and value."""

    heading: str
    value: str = ""
    name: Optional[str] = None
    type: Optional[CVTerm] = None
    termsource: Optional[DBXref] = field(default=None, compare=False)
    attributes: List[Attribute] = field(default_factory=list, compare=False)
    anonymous: bool = field(default=False, compare=False)

    def add_attribute(self, attribute: Attribute) -> None:
        self.attributes.append(attribute)


@dataclass
class Protocol:
    name: str
    description: Optional[str] = None
    attributes: List[Attribute] = field(default_factory=list)
    termsource: Optional[DBXref] = None

    def add_attribute(self, attribute: Attribute) -> None:
        self.attributes.append(attribute)


def same_data(left: Sequence[Datum], right: Sequence[Datum]) -> bool:
    """Multiset equality of two data lists under :class:`Datum` equality."""
    if len(left) != len(right):
        return False
    remaining = list(right)
    for datum in left:
        for idx, candidate in enumerate(remaining):
            if candidate == datum:
                del remaining[idx]
                break
        else:
            return False
    return True


@dataclass(eq=False)
class AppliedProtocol:
    protocol: Protocol
    input_data: List[Datum] = field(default_factory=list)
    output_data: List[Datum] = field(default_factory=list)

    def add_input_datum(self, datum: Datum) -> None:
        self.input_data.append(datum)

    def add_output_datum(self, datum: Datum) -> None:
        self.output_data.append(datum)

    def clone(self) -> "AppliedProtocol":
        """Snapshot with its own data lists; the data themselves are shared."""
        return AppliedProtocol(self.protocol, list(self.input_data), list(self.output_data))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AppliedProtocol):
            return NotImplemented
        return (
            self.protocol == other.protocol
            and same_data(self.input_data, other.input_data)
            and same_data(self.output_data, other.output_data)
        )

    __hash__ = None  # type: ignore[assignment]


@dataclass
class ExperimentProperty:
    name: str
    value: str
    type: CVTerm = field(default_factory=string_type)
    termsource: Optional[DBXref] = None
    rank: int = 0


@dataclass(eq=False)
class Experiment:
    uniquename: Optional[str] = None
    properties: List[ExperimentProperty] = field(default_factory=list)
    applied_protocol_slots: List[List[AppliedProtocol]] = field(default_factory=list)

    def add_properties(self, properties: Sequence[ExperimentProperty]) -> None:
        self.properties.extend(properties)

    def get_properties(self, name: str) -> List[ExperimentProperty]:
        return [prop for prop in self.properties if prop.name == name]

    def iter_applied_protocols(self):
        for slot in self.applied_protocol_slots:
            yield from slot

    def iter_data(self):
        """Yield every datum of every applied protocol (inputs before outputs)."""
        for applied_protocol in self.iter_applied_protocols():
            yield from applied_protocol.input_data
            yield from applied_protocol.output_data


@dataclass
class Organism:
    genus: Optional[str]
    species: Optional[str] = None

    @classmethod
    def from_string(cls, text: str) -> "Organism":
        """``"Drosophila melanogaster"`` -> genus ``Drosophila``, species ``melanogaster``."""
        parts = text.strip().split(None, 1) if text else []
        genus = parts[0] if parts else None
        species = parts[1] if len(parts) > 1 else None
        return cls(genus=genus, species=species)

    def __str__(self) -> str:
        return " ".join(part for part in (self.genus, self.species) if part)


@dataclass
class Analysis:
    program: str
    programversion: str = "1"


@dataclass
class AnalysisFeature:
    analysis: Analysis
    rawscore: Optional[float] = None
    normscore: Optional[float] = None


@dataclass
class FeatureLocation:
    """Zero-based, half-open interval on a source feature."""

    fmin: Optional[int]
    fmax: Optional[int]
    strand: int = 0
    srcfeature: Optional[FeatureKey] = None
    rank: int = 0
    residue_info: Optional[str] = None

    def one_based(self) -> Tuple[Optional[int], Optional[int]]:
        """Return the GFF3 (one-based, closed) start/end of this location."""
        start = self.fmin + 1 if self.fmin is not None else None
        return start, self.fmax


@dataclass
class FeatureProperty:
    value: str
    type: CVTerm
    rank: int = 0


@dataclass
class FeatureRelationship:
    subject: FeatureKey
    object: FeatureKey
    type: CVTerm = field(default_factory=lambda: CVTerm(name="part_of", cv="SO"))
    rank: int = 0


@dataclass(eq=False)
class Feature:
    uniquename: str
    type: CVTerm
    name: Optional[str] = None
    organism: Optional[Organism] = None
    locations: List[FeatureLocation] = field(default_factory=list)
    relationships: List[FeatureRelationship] = field(default_factory=list)
    properties: List[FeatureProperty] = field(default_factory=list)
    dbxrefs: List[DBXref] = field(default_factory=list)
    analysisfeatures: List[AnalysisFeature] = field(default_factory=list)
    is_analysis: bool = False
    dirty: bool = False

    @property
    def key(self) -> FeatureKey:
        return (self.uniquename, self.type.name or "")

    def mark_dirty(self) -> None:
        self.dirty = True

    def add_location(self, location: FeatureLocation) -> None:
        self.locations.append(location)
        self.dirty = True

    def add_relationship(self, relationship: FeatureRelationship) -> None:
        self.relationships.append(relationship)
        self.dirty = True

    def add_property(self, prop: FeatureProperty) -> None:
        self.properties.append(prop)
        self.dirty = True

    def add_dbxref(self, dbxref: DBXref) -> None:
        self.dbxrefs.append(dbxref)
        self.dirty = True

    def add_analysisfeature(self, analysisfeature: AnalysisFeature) -> None:
        self.analysisfeatures.append(analysisfeature)
        self.dirty = True

    def parents(self) -> List[FeatureKey]:
        return [rel.object for rel in self.relationships if rel.subject == self.key]

    def children(self) -> List[FeatureKey]:
        return [rel.subject for rel in self.relationships if rel.object == self.key]


__all__ = [
    "FeatureKey",
    "DB",
    "DBXref",
    "CVTerm",
    "string_type",
    "ontology_entry_type",
    "Attribute",
    "Datum",
    "Protocol",
    "same_data",
    "AppliedProtocol",
    "ExperimentProperty",
    "Experiment",
    "Organism",
    "Analysis",
    "AnalysisFeature",
    "FeatureLocation",
    "FeatureProperty",
    "FeatureRelationship",
    "Feature",
]
