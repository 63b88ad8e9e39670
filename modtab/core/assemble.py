"""
MIT License

Human-readable rollup and run record for a modtab load.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

from ..io.tsv import write_lines


def write_summary_txt(context: Dict[str, object], out_dir: str | Path) -> Path:
    """Render SUMMARY.txt with ordered sections."""

    out_path = Path(out_dir) / "SUMMARY.txt"
    lines: List[str] = []
    lines.append("# MODTAB LOAD")
    lines.append(f"version: {context['version']}")
    lines.append(f"date_utc: {context['date_utc']}")
    lines.append(f"command: {context['command']}")
    lines.append(f"input: {context['input']}")
    lines.append("")

    lines.append("## COUNTS")
    for name, value in context.get("counts", {}).items():
        lines.append(f"{name}: {value}")
    lines.append("")

    tables = context.get("tables", {})
    if tables:
        lines.append("## TABLES (rows)")
        for name, rows in tables.items():
            lines.append(f"{name}: {rows}")
        lines.append("")

    checks = context.get("checks", {})
    if checks:
        lines.append("## CHECKS")
        for name, passed in checks.items():
            lines.append(f"{name}: {'pass' if passed else 'FAIL'}")

    write_lines(lines, out_path)
    return out_path


def write_run_metadata(path: str | Path, metadata: Dict[str, object]) -> None:
    """Write run.jsonl with a single NDJSON record."""

    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    metadata = dict(metadata)
    if "date_utc" not in metadata:
        metadata["date_utc"] = datetime.now(timezone.utc).isoformat()
    with out_path.open("w", encoding="utf-8") as handle:
        handle.write(json.dumps(metadata, default=str) + "\n")


__all__ = ["write_summary_txt", "write_run_metadata"]
