"""
MIT License

Genome-build coordinate tables for the GFF3 resolver.

A build table maps ``source -> build -> seqid -> {organism, type, start, end}``
and is loaded either from a TSV (one row per sequence) or derived from a
reference FASTA.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from .fasta import FastaResource
from ..util.errors import ParseError

REQUIRED_COLUMNS = ["source", "build", "seqid", "organism", "type", "start", "end"]
CHR_PREFIX = "chr"

BuildEntry = Dict[str, object]
Builds = Dict[str, Dict[str, Dict[str, BuildEntry]]]


def strip_chr_prefix(name: str) -> str:
    """``chr2L`` -> ``2L``; a bare ``chr`` is left alone."""
    if len(name) > len(CHR_PREFIX) and name.startswith(CHR_PREFIX):
        return name[len(CHR_PREFIX):]
    return name


def sequence_dictionary(targets: Iterable[Tuple[str, int]], strip_chr: bool = True) -> List[str]:
    """Regenerate ``@SQ`` header lines, renaming targets but keeping their lengths."""
    lines = []
    for name, length in targets:
        if strip_chr:
            name = strip_chr_prefix(name)
        lines.append(f"@SQ\tSN:{name}\tLN:{length}")
    return lines


def _coordinate(value: str) -> Optional[int]:
    value = value.strip()
    return int(value) if value else None


def read_builds_table(path: str | Path) -> Builds:
    builds_path = Path(path)
    df = pd.read_csv(builds_path, sep="\t", dtype=str).fillna("")
    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ParseError(f"Builds table {builds_path} missing columns: {', '.join(missing)}")
    builds: Builds = {}
    for row in df.itertuples(index=False):
        try:
            start, end = _coordinate(row.start), _coordinate(row.end)
        except ValueError as exc:
            raise ParseError(f"Bad coordinates for {row.seqid} in {builds_path}: {exc}") from exc
        builds.setdefault(row.source, {}).setdefault(row.build, {})[row.seqid] = {
            "organism": row.organism,
            "type": row.type,
            "start": start,
            "end": end,
        }
    return builds


def builds_from_fasta(
    path: str | Path,
    source: str,
    build: str,
    organism: str,
    seq_type: str = "chromosome",
    strip_chr: bool = True,
) -> Builds:
    fasta = FastaResource(path)
    entries: Dict[str, BuildEntry] = {}
    for seq_id, length in fasta.iter_lengths():
        if strip_chr:
            seq_id = strip_chr_prefix(seq_id)
        entries[seq_id] = {"organism": organism, "type": seq_type, "start": 1, "end": length}
    if not entries:
        raise ParseError(f"No sequences found in {path}")
    return {source: {build: entries}}


def builds_table_frame(builds: Builds) -> pd.DataFrame:
    rows = [
        {"source": source, "build": build, "seqid": seqid, **entry}
        for source, by_build in builds.items()
        for build, seqids in by_build.items()
        for seqid, entry in seqids.items()
    ]
    return pd.DataFrame(rows, columns=REQUIRED_COLUMNS)


__all__ = [
    "REQUIRED_COLUMNS",
    "Builds",
    "strip_chr_prefix",
    "sequence_dictionary",
    "read_builds_table",
    "builds_from_fasta",
    "builds_table_frame",
]
