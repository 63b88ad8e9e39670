"""
MIT License

High-level orchestration for IDF/SDRF and GFF3 loads.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from .assemble import write_run_metadata, write_summary_txt
from .export import experiment_tables, feature_tables
from .gff3 import GFF3Parser
from .idf import IDFParser
from .readcounts import validate_read_counts
from .store import FeatureStore
from .vocab import get_registry
from ..io.builds import Builds, builds_from_fasta, builds_table_frame, read_builds_table
from ..io.tsv import write_tables
from ..util.errors import ModtabError
from ..util.logging import get_error_logger, get_logger

LOGGER = get_logger()
VERSION = "0.1.0"


@dataclass
class LoadConfig:
    command: str
    out_dir: str
    idf: Optional[str] = None
    gff3: Optional[str] = None
    builds: Optional[str] = None
    fasta: Optional[str] = None
    source: Optional[str] = None
    build: Optional[str] = None
    organism: Optional[str] = None
    seq_type: str = "chromosome"
    source_prefix: Optional[str] = None
    strip_chr: bool = False
    emit: str = "tsv"


@dataclass
class LoadResult:
    config: LoadConfig
    tables: Dict[str, pd.DataFrame]
    counts: Dict[str, int] = field(default_factory=dict)
    checks: Dict[str, bool] = field(default_factory=dict)


def run_idf(config: LoadConfig) -> LoadResult:
    """Parse an IDF (and the SDRF it names) into experiment tables."""

    if not config.idf:
        raise ModtabError("An IDF load needs --idf")
    LOGGER.info("Loading IDF %s", config.idf)
    result = IDFParser(logger=get_error_logger(), registry=get_registry()).parse(config.idf)
    experiment = result.experiment
    read_counts_ok = validate_read_counts(experiment)
    counts = {
        "properties": len(experiment.properties),
        "protocols": len(result.protocols),
        "slots": len(experiment.applied_protocol_slots),
        "applied_protocols": sum(len(slot) for slot in experiment.applied_protocol_slots),
        "term_sources": len(result.term_sources),
        "sdrf_files": len(result.sdrf_experiments),
    }
    return LoadResult(
        config=config,
        tables=experiment_tables(experiment),
        counts=counts,
        checks={"read_counts": read_counts_ok},
    )


def load_builds(config: LoadConfig) -> Builds:
    if config.builds:
        return read_builds_table(config.builds)
    if config.fasta:
        missing = [name for name in ("source", "build", "organism") if not getattr(config, name)]
        if missing:
            raise ModtabError(f"--fasta also needs: {', '.join('--' + name for name in missing)}")
        return builds_from_fasta(
            config.fasta,
            source=config.source,
            build=config.build,
            organism=config.organism,
            seq_type=config.seq_type,
            strip_chr=config.strip_chr,
        )
    raise ModtabError("A GFF3 load needs --builds or --fasta")


def run_gff3(config: LoadConfig) -> LoadResult:
    """Resolve a GFF3 file against build coordinates into feature tables."""

    if not config.gff3:
        raise ModtabError("A GFF3 load needs --gff3")
    builds = load_builds(config)
    store = FeatureStore()
    subgroups = 0
    LOGGER.info("Loading GFF3 %s", config.gff3)
    with GFF3Parser(
        config.gff3,
        builds=builds,
        source_prefix=config.source_prefix,
        store=store,
        strip_chr=config.strip_chr,
        logger=get_error_logger(),
    ) as parser:
        for subgroup in parser:
            subgroups += 1
            flushed = store.flush()
            LOGGER.debug("Subgroup %d: %d features, %d written", subgroups, len(subgroup), len(flushed))
    features = list(store)
    counts = {
        "subgroups": subgroups,
        "features": len(features),
        "locations": sum(len(feature.locations) for feature in features),
        "analysis_features": sum(1 for feature in features if feature.is_analysis),
    }
    tables = feature_tables(features)
    tables["genome_builds"] = builds_table_frame(builds)
    return LoadResult(config=config, tables=tables, counts=counts)


def write_outputs(result: LoadResult) -> List[str]:
    """Write the warehouse tables, SUMMARY.txt and run.jsonl; return written paths."""

    config = result.config
    out_dir = Path(config.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    written: List[str] = [str(path) for path in write_tables(result.tables, out_dir, config.emit)]

    now = datetime.now(timezone.utc).isoformat()
    context = {
        "version": VERSION,
        "date_utc": now,
        "command": config.command,
        "input": config.idf if config.command == "idf" else config.gff3,
        "counts": result.counts,
        "tables": {name: len(df) for name, df in result.tables.items()},
        "checks": result.checks,
    }
    written.append(str(write_summary_txt(context, out_dir)))

    run_metadata = {
        "date_utc": now,
        "version": VERSION,
        "config": asdict(config),
        "counts": result.counts,
        "checks": result.checks,
        "files": written,
    }
    write_run_metadata(out_dir / "run.jsonl", run_metadata)
    written.append(str(out_dir / "run.jsonl"))
    return written


__all__ = ["LoadConfig", "LoadResult", "run_idf", "run_gff3", "load_builds", "write_outputs"]
