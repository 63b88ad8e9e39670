"""
MIT License

Flatten experiments and features into warehouse-shaped DataFrames.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional

import pandas as pd

from .model import CVTerm, DBXref, Datum, Experiment, Feature, FeatureKey
from ..util.text import comma_join

PROPERTY_COLUMNS = ["experiment", "name", "value", "type", "termsource", "accession", "rank"]
APPLIED_PROTOCOL_COLUMNS = ["slot", "index", "protocol", "description", "inputs", "outputs"]
DATA_COLUMNS = ["heading", "name", "type", "value", "termsource", "anonymous", "n_attributes"]
FEATURE_COLUMNS = ["uniquename", "name", "type", "organism", "is_analysis", "n_locations", "dbxrefs"]
LOCATION_COLUMNS = [
    "uniquename",
    "type",
    "rank",
    "srcfeature",
    "fmin",
    "fmax",
    "strand",
    "start",
    "end",
    "residue_info",
]
RELATIONSHIP_COLUMNS = ["subject", "subject_type", "object", "object_type", "type", "rank"]
FEATURE_PROPERTY_COLUMNS = ["uniquename", "type", "property", "cv", "value", "rank"]


def _term(term: Optional[CVTerm]) -> str:
    return str(term) if term is not None else ""


def _dbxref(dbxref: Optional[DBXref]) -> str:
    if dbxref is None:
        return ""
    return f"{dbxref.db.name}:{dbxref.accession}" if dbxref.accession else dbxref.db.name


def _key(key: Optional[FeatureKey]) -> str:
    return key[0] if key else ""


def datum_label(datum: Datum) -> str:
    heading = f"{datum.heading} [{datum.name}]" if datum.name else datum.heading
    return f"{heading}={datum.value}"


def experiment_properties_frame(experiment: Experiment) -> pd.DataFrame:
    rows = [
        {
            "experiment": experiment.uniquename,
            "name": prop.name,
            "value": prop.value,
            "type": _term(prop.type),
            "termsource": prop.termsource.db.name if prop.termsource else "",
            "accession": prop.termsource.accession if prop.termsource else "",
            "rank": prop.rank,
        }
        for prop in experiment.properties
    ]
    return pd.DataFrame(rows, columns=PROPERTY_COLUMNS)


def applied_protocols_frame(experiment: Experiment) -> pd.DataFrame:
    rows = []
    for slot, applied_protocols in enumerate(experiment.applied_protocol_slots):
        for index, applied_protocol in enumerate(applied_protocols):
            rows.append(
                {
                    "slot": slot,
                    "index": index,
                    "protocol": applied_protocol.protocol.name,
                    "description": applied_protocol.protocol.description or "",
                    "inputs": "; ".join(datum_label(d) for d in applied_protocol.input_data),
                    "outputs": "; ".join(datum_label(d) for d in applied_protocol.output_data),
                }
            )
    return pd.DataFrame(rows, columns=APPLIED_PROTOCOL_COLUMNS)


def data_frame(experiment: Experiment) -> pd.DataFrame:
    """One row per distinct datum object, in first-use order."""
    seen = set()
    rows = []
    for datum in experiment.iter_data():
        if id(datum) in seen:
            continue
        seen.add(id(datum))
        rows.append(
            {
                "heading": datum.heading,
                "name": datum.name or "",
                "type": _term(datum.type),
                "value": datum.value,
                "termsource": _dbxref(datum.termsource),
                "anonymous": datum.anonymous,
                "n_attributes": len(datum.attributes),
            }
        )
    return pd.DataFrame(rows, columns=DATA_COLUMNS)


def features_frame(features: Iterable[Feature]) -> pd.DataFrame:
    rows = [
        {
            "uniquename": feature.uniquename,
            "name": feature.name or "",
            "type": feature.type.name,
            "organism": str(feature.organism) if feature.organism else "",
            "is_analysis": feature.is_analysis,
            "n_locations": len(feature.locations),
            "dbxrefs": comma_join(_dbxref(dbxref) for dbxref in feature.dbxrefs),
        }
        for feature in features
    ]
    return pd.DataFrame(rows, columns=FEATURE_COLUMNS)


def locations_frame(features: Iterable[Feature]) -> pd.DataFrame:
    """Zero-based ``fmin``/``fmax`` next to the one-based ``start``/``end`` they encode."""
    rows = []
    for feature in features:
        for location in feature.locations:
            start, end = location.one_based()
            rows.append(
                {
                    "uniquename": feature.uniquename,
                    "type": feature.type.name,
                    "rank": location.rank,
                    "srcfeature": _key(location.srcfeature),
                    "fmin": location.fmin,
                    "fmax": location.fmax,
                    "strand": location.strand,
                    "start": start,
                    "end": end,
                    "residue_info": location.residue_info or "",
                }
            )
    df = pd.DataFrame(rows, columns=LOCATION_COLUMNS)
    return df.astype({"fmin": "Int64", "fmax": "Int64", "start": "Int64", "end": "Int64"})


def relationships_frame(features: Iterable[Feature]) -> pd.DataFrame:
    rows = []
    for feature in features:
        # both ends hold the relationship; emit it from the subject side only
        for rel in feature.relationships:
            if rel.subject != feature.key:
                continue
            rows.append(
                {
                    "subject": rel.subject[0],
                    "subject_type": rel.subject[1],
                    "object": rel.object[0],
                    "object_type": rel.object[1],
                    "type": rel.type.name,
                    "rank": rel.rank,
                }
            )
    return pd.DataFrame(rows, columns=RELATIONSHIP_COLUMNS)


def feature_properties_frame(features: Iterable[Feature]) -> pd.DataFrame:
    rows = [
        {
            "uniquename": feature.uniquename,
            "type": feature.type.name,
            "property": prop.type.name,
            "cv": prop.type.cv or "",
            "value": prop.value,
            "rank": prop.rank,
        }
        for feature in features
        for prop in feature.properties
    ]
    return pd.DataFrame(rows, columns=FEATURE_PROPERTY_COLUMNS)


def experiment_tables(experiment: Experiment) -> Dict[str, pd.DataFrame]:
    return {
        "experiment_properties": experiment_properties_frame(experiment),
        "applied_protocols": applied_protocols_frame(experiment),
        "data": data_frame(experiment),
    }


def feature_tables(features: Iterable[Feature]) -> Dict[str, pd.DataFrame]:
    feature_list = list(features)
    return {
        "features": features_frame(feature_list),
        "feature_locations": locations_frame(feature_list),
        "feature_relationships": relationships_frame(feature_list),
        "feature_properties": feature_properties_frame(feature_list),
    }


__all__ = [
    "datum_label",
    "experiment_properties_frame",
    "applied_protocols_frame",
    "data_frame",
    "features_frame",
    "locations_frame",
    "relationships_frame",
    "feature_properties_frame",
    "experiment_tables",
    "feature_tables",
]
