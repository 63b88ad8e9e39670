"""
MIT License

GFF3 line tokenizer.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..util.errors import ParseError

SUBGROUP_TERMINATOR = "###"
GENOME_BUILD_RE = re.compile(r"^##genome-build\s+([\w-]+)\s+([\w.]+)")
FLYBASE_R5_RE = re.compile(r"^r5\..+$")


@dataclass
class GFFRecord:
    """One GFF3 feature line; coordinates stay text until they are validated."""

    seqid: str
    source: str
    type: str
    start: str
    end: str
    score: str
    strand: str
    phase: str
    attributes: Dict[str, List[str]] = field(default_factory=dict)

    def first(self, key: str) -> Optional[str]:
        values = self.attributes.get(key)
        return values[0] if values else None

    def has_coordinates(self) -> bool:
        return self.start.isdigit() and self.end.isdigit()


def parse_attributes(text: str, line: Optional[int] = None) -> Dict[str, List[str]]:
    """``key=v1,v2;key2=v3`` -> ``{"key": ["v1", "v2"], "key2": ["v3"]}``."""
    out: Dict[str, List[str]] = {}
    for chunk in text.split(";"):
        if not chunk.strip():
            continue
        if "=" not in chunk:
            raise ParseError(
                f"Field 9 must be of the form var=val (or ID=name), not just a string like {text}",
                line,
            )
        key, value = chunk.split("=", 1)
        if value:
            out.setdefault(key.strip(), []).extend(v for v in value.split(",") if v)
    return out


def parse_line(line: str, lineno: Optional[int] = None) -> GFFRecord:
    parts = line.rstrip("\r\n").split("\t")
    if len(parts) != 9:
        raise ParseError(f"Invalid number of fields: {len(parts)}", lineno)
    seqid, source, ftype, start, end, score, strand, phase, attrs = parts
    return GFFRecord(
        seqid=seqid,
        source=source,
        type=ftype,
        start=start,
        end=end,
        score=score,
        strand=strand,
        phase=phase,
        attributes=parse_attributes(attrs, lineno),
    )


def canonical_build(source: str, build: str) -> str:
    """FlyBase point releases (``r5.3``) share the ``r5`` coordinates."""
    if source == "FlyBase" and FLYBASE_R5_RE.match(build):
        return "r5"
    return build


def parse_genome_build(line: str) -> Optional[Tuple[str, str]]:
    match = GENOME_BUILD_RE.match(line)
    if match is None:
        return None
    return match.group(1), match.group(2)


__all__ = [
    "GFFRecord",
    "SUBGROUP_TERMINATOR",
    "parse_attributes",
    "parse_line",
    "canonical_build",
    "parse_genome_build",
]
