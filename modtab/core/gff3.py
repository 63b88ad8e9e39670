"""
MIT License

GFF3 reference resolver.

Each :meth:`GFF3Parser.parse` call reads one subgroup (up to ``###`` or end of
input) and returns the features it defined. Parent and Target ids are
resolved against the features of the current subgroup; sequence ids are
resolved against source features seen so far in the subgroup and then the
genome-build table. Features are created through a :class:`FeatureStore`, so
a feature already known there under the same ``(uniquename, type)`` is
extended rather than duplicated.

Usage::

    parser = GFF3Parser("annotations.gff3", builds=builds)
    for subgroup in parser:
        for feature in subgroup:
            ...
"""

from __future__ import annotations

from collections import defaultdict
from pathlib import Path
from typing import IO, Callable, Dict, List, Optional, Union

from .model import (
    Analysis,
    AnalysisFeature,
    CVTerm,
    DB,
    DBXref,
    Feature,
    FeatureLocation,
    FeatureProperty,
    FeatureRelationship,
    Organism,
)
from .store import FeatureStore
from ..io.builds import Builds, strip_chr_prefix
from ..io.gff import (
    SUBGROUP_TERMINATOR,
    GFFRecord,
    canonical_build,
    parse_genome_build,
    parse_line,
)
from ..util.errors import ParseError
from ..util.logging import ErrorLogger, get_error_logger

FEATURE_CV = "SO"
PROPERTY_CV = "GFF"
DEFAULT_RELATIONSHIP = "part_of"
SUBMISSION_DB = "modencode_submission"
SUBMISSION_PREFIX = "modENCODE_"
PROGRESS_INTERVAL = 10000
# lower-case attributes that are consumed elsewhere rather than stored
NON_PROPERTY_ATTRIBUTES = frozenset({"gene", "parental_relationship", "normscore"})

IdCallback = Callable[..., Optional[str]]


def to_strand(text: Optional[str]) -> int:
    if text == "+":
        return 1
    if text == "-":
        return -1
    return 0


def make_location(
    start: Optional[int],
    end: Optional[int],
    strand: Optional[str],
    srcfeature=None,
    residue_info: Optional[str] = None,
    rank: int = 0,
) -> FeatureLocation:
    """GFF3 one-based closed coordinates -> zero-based half-open location."""
    if start is not None and end is not None and end < start:
        raise ParseError(f"Start ({start}) is greater than end ({end})")
    return FeatureLocation(
        fmin=start - 1 if start is not None else None,
        fmax=end,
        strand=to_strand(strand),
        srcfeature=srcfeature,
        rank=rank,
        residue_info=residue_info,
    )


class GFF3Parser:
    def __init__(
        self,
        gff3: Union[str, Path, IO[str]],
        builds: Optional[Builds] = None,
        id_callback: Optional[IdCallback] = None,
        source_prefix: Optional[str] = None,
        store: Optional[FeatureStore] = None,
        strip_chr: bool = False,
        logger: Optional[ErrorLogger] = None,
    ) -> None:
        if gff3 is None:
            raise ParseError("No GFF3 file passed")
        if isinstance(gff3, (str, Path)):
            try:
                self.handle: IO[str] = open(gff3, "r", encoding="utf-8")
            except OSError as exc:
                raise ParseError(f"Error reading {gff3}: {exc}") from exc
            self._owns_handle = True
        else:
            self.handle = gff3
            self._owns_handle = False
        self.builds: Builds = builds or {}
        self.build: Optional[Dict[str, Dict[str, object]]] = None
        self.id_callback = id_callback
        self.source_prefix = source_prefix
        self.store = store if store is not None else FeatureStore()
        self.strip_chr = strip_chr
        self.logger = logger or get_error_logger()
        self.counter = 0
        self.line_number = 0
        self.id_counts: Dict[str, int] = defaultdict(int)
        self.src_features: Dict[str, Feature] = {}
        self.analyses: Dict[str, Analysis] = {}
        self._pending: Optional[str] = None

    # -- input ---------------------------------------------------------------

    def _readline(self) -> str:
        if self._pending is not None:
            line, self._pending = self._pending, None
        else:
            line = self.handle.readline()
        if line:
            self.line_number += 1
            if self.line_number % PROGRESS_INTERVAL == 0:
                self.logger.notice(f"Reading line #{self.line_number}.")
        return line

    def has_next(self) -> bool:
        """True while unread input remains."""
        if self._pending is None:
            self._pending = self.handle.readline()
        return bool(self._pending)

    def __iter__(self):
        while self.has_next():
            yield self.parse()

    def close(self) -> None:
        if self._owns_handle:
            self.handle.close()

    def __enter__(self) -> "GFF3Parser":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def cleanup_cache(self) -> None:
        self.src_features = {}
        self.analyses = {}

    # -- record construction -------------------------------------------------

    def _callback(self, *args) -> Optional[str]:
        return self.id_callback(*args) if self.id_callback else None

    def _normalize_seqid(self, seqid: str) -> str:
        return strip_chr_prefix(seqid) if self.strip_chr else seqid

    def set_build(self, source: str, build_name: str) -> None:
        canonical = canonical_build(source, build_name)
        if canonical != build_name:
            self.logger.notice(f"Setting {source} build {build_name} to {canonical} for consistency.")
        build = self.builds.get(source, {}).get(canonical)
        if not build:
            raise ParseError(f"Build data for {source} {build_name} not found", self.line_number)
        self.build = build

    def create_feature(self, uniquename: str, name: Optional[str], type_name: str, organism: Organism) -> Feature:
        existing = self.store.find_feature(uniquename, type_name)
        if existing is not None:
            self.logger.debug(f"Found already created feature {uniquename} to represent feature in GFF.")
            if existing.organism != organism:
                self.logger.warning(
                    f'The previously seen feature "{uniquename}" of type "{type_name}" was created with '
                    f"{existing.organism} as an organism, rather than the GFF's {organism}. "
                    "Assuming the original organism is correct!"
                )
            return existing
        feature = Feature(
            uniquename=uniquename,
            type=CVTerm(name=type_name, cv=FEATURE_CV),
            name=name,
            organism=organism,
            dirty=True,
        )
        return self.store.add(feature)

    def get_src_feature(self, seqid: str) -> Feature:
        if self.build is None:
            raise ParseError("No genome-build directive found", self.line_number)
        src_feature = self.src_features.get(seqid)
        if src_feature is not None:
            return src_feature
        build_data = self.build.get(seqid)
        if not build_data:
            raise ParseError(f"No build info for {seqid} found", self.line_number)
        if not build_data.get("type"):
            raise ParseError(f"No SO type in genome-build definition for {seqid}", self.line_number)
        if build_data.get("start") is None or build_data.get("end") is None:
            raise ParseError(f"Missing start/end coordinate for genomic region {seqid}", self.line_number)
        src_feature = self.create_feature(
            seqid, seqid, str(build_data["type"]), Organism.from_string(str(build_data.get("organism") or ""))
        )
        self.src_features[seqid] = src_feature
        if not src_feature.locations:
            src_feature.add_location(make_location(int(build_data["start"]), int(build_data["end"]), "+"))
        return src_feature

    def get_analysis(self, source: str) -> Analysis:
        analysis = self.analyses.get(source)
        if analysis is None:
            program = f"{self.source_prefix}:{source}" if self.source_prefix else source
            analysis = Analysis(program=program, programversion="1")
            self.analyses[source] = analysis
        return analysis

    def create_analysis_feature(self, record: GFFRecord) -> AnalysisFeature:
        analysis_feature = AnalysisFeature(
            analysis=self.get_analysis(record.source),
            rawscore=float(record.score) if record.score != "." else None,
        )
        normscore = record.first("normscore")
        if normscore is not None:
            analysis_feature.normscore = float(normscore)
        return analysis_feature

    def _add_properties(self, feature: Feature, record: GFFRecord) -> None:
        for attr_name, values in record.attributes.items():
            if attr_name != "Note" and not attr_name[:1].islower():
                continue
            if attr_name in NON_PROPERTY_ATTRIBUTES:
                continue
            if attr_name == "external_evidence":
                for value in values:
                    if value.startswith(SUBMISSION_PREFIX):
                        submission = value[len(SUBMISSION_PREFIX):]
                        dbxref = DBXref(
                            db=DB(name=SUBMISSION_DB, url=submission, description=SUBMISSION_DB),
                            accession=value,
                        )
                        if dbxref not in feature.dbxrefs:
                            feature.add_dbxref(dbxref)
                    else:
                        self.logger.warning(
                            f'Unknown external_evidence ID type "{value}" in GFF. Not creating DBXref.'
                        )
            prop_type = CVTerm(
                name=attr_name,
                cv=PROPERTY_CV,
                dbxref=DBXref(db=DB(name=PROPERTY_CV, description="database"), accession=attr_name),
            )
            for rank, value in enumerate(values):
                prop = FeatureProperty(value=value, type=prop_type, rank=rank)
                if prop not in feature.properties:
                    feature.add_property(prop)

    def _resolve(self, features: Dict[str, Feature], ref_id: str) -> Optional[Feature]:
        if ref_id not in features:
            ref_id = self._callback(ref_id) or ref_id
        return features.get(ref_id)

    def _add_target(self, feature: Feature, record: GFFRecord, features: Dict[str, Feature]) -> None:
        target = record.first("Target")
        parts = target.split(" ")
        target_id = self._normalize_seqid(parts[0])
        target_start = parts[1] if len(parts) > 1 else ""
        target_end = parts[2] if len(parts) > 2 else ""
        target_strand = parts[3] if len(parts) > 3 and parts[3] else "+"
        target_feature = self._resolve(features, target_id)
        if target_feature is None:
            raise ParseError(f"No feature found for target {target_id}", self.line_number)
        if not (target_start.isdigit() and target_end.isdigit()):
            raise ParseError(f"Provided a target missing a start and/or end: {target}", self.line_number)
        feature.add_location(
            make_location(
                int(target_start),
                int(target_end),
                target_strand,
                srcfeature=target_feature.key,
                residue_info=record.first("Gap"),
                rank=1,
            )
        )
        feature.is_analysis = True

    def _add_parents(self, feature: Feature, record: GFFRecord, features: Dict[str, Feature]) -> None:
        relationships: Dict[str, str] = {}
        for value in record.attributes.get("parental_relationship", []):
            rel, _, parent = value.partition("/")
            if not rel or not parent:
                raise ParseError(f"Malformed parental relationship {value!r}", self.line_number)
            relationships[parent] = rel
        for rank, object_id in enumerate(record.attributes.get("Parent", [])):
            rel_type = relationships.get(object_id, DEFAULT_RELATIONSHIP)
            parent = self._resolve(features, object_id)
            if parent is None:
                raise ParseError(
                    f"{object_id} for relationship with {feature.uniquename} not found", self.line_number
                )
            relationship = FeatureRelationship(
                subject=feature.key,
                object=parent.key,
                type=CVTerm(name=rel_type, cv=FEATURE_CV),
                rank=rank,
            )
            # repeated CDS lines resolve the same parents again
            if relationship not in feature.relationships:
                feature.add_relationship(relationship)
            if relationship not in parent.relationships:
                parent.add_relationship(relationship)

    def process_record(self, record: GFFRecord, features: Dict[str, Feature]) -> Feature:
        name = record.first("Name")
        if self.id_callback:
            feature_id = self._callback(
                record.first("ID"), name, record.seqid, record.source, record.type,
                record.start, record.end, record.score, record.strand, record.phase,
            )
        else:
            feature_id = record.first("ID")
        if not feature_id:
            if name:
                feature_id = name
            else:
                self.counter += 1
                feature_id = f"ID{self.counter:06d}"

        repeats = self.id_counts[feature_id]
        if repeats and record.type != "CDS":
            raise ParseError(f"Duplicate id {feature_id} found", self.line_number)
        self.id_counts[feature_id] += 1

        orig_seqid = self._normalize_seqid(record.seqid)
        seqid = orig_seqid
        canonical_seqid = self._callback(seqid, seqid, seqid, record.source)
        if canonical_seqid == feature_id:
            seqid = canonical_seqid
        src_feature: Optional[Feature] = None
        self_located = seqid == feature_id
        if not self_located:
            src_feature = self.get_src_feature(seqid)

        if src_feature is not None and src_feature.organism is not None:
            organism = src_feature.organism
        else:
            if self.build is None:
                raise ParseError("No genome-build directive found", self.line_number)
            first_entry = next(iter(self.build.values()))
            organism = Organism.from_string(str(first_entry.get("organism") or ""))

        feature = self.create_feature(feature_id, name or feature_id, record.type, organism)
        if self_located:
            self.src_features[orig_seqid] = feature

        self._add_properties(feature, record)

        if record.has_coordinates():
            rank = repeats if record.type == "CDS" else 0
            try:
                location = make_location(
                    int(record.start),
                    int(record.end),
                    record.strand,
                    srcfeature=src_feature.key if src_feature is not None else None,
                    rank=rank,
                )
            except ParseError as exc:
                raise ParseError(exc.message, self.line_number) from exc
            feature.add_location(location)

        if record.first("Target"):
            self._add_target(feature, record, features)
            feature.add_analysisfeature(self.create_analysis_feature(record))
        elif record.score != ".":
            feature.add_analysisfeature(self.create_analysis_feature(record))

        if "Parent" in record.attributes:
            self._add_parents(feature, record, features)

        prediction_status = record.first("prediction_status")
        if prediction_status:
            status = FeatureProperty(
                value=prediction_status,
                type=CVTerm(name="prediction_status", cv="modencode"),
                rank=0,
            )
            if status not in feature.properties:
                feature.add_property(status)

        features[feature.uniquename] = feature
        return feature

    def parse(self) -> List[Feature]:
        """Read one subgroup and return its features in first-seen order."""
        features: Dict[str, Feature] = {}
        self.cleanup_cache()
        while True:
            line = self._readline()
            if not line:
                break
            line = line.rstrip("\r\n")
            if line == SUBGROUP_TERMINATOR:
                break
            if not line.strip():
                continue
            try:
                build = parse_genome_build(line)
                if build is not None:
                    self.set_build(*build)
                    continue
                if line.startswith("#"):
                    continue
                record = parse_line(line, self.line_number)
                self.process_record(record, features)
            except ParseError as exc:
                self.logger.error(str(exc))
                raise
            except ValueError as exc:
                message = f"Bad value on line {self.line_number}: {exc}"
                self.logger.error(message)
                raise ParseError(message, self.line_number) from exc
        return list(features.values())


__all__ = ["GFF3Parser", "IdCallback", "make_location", "to_strand"]
