"""
MIT License

Warehouse table files: one file per table, named ``<table>.<format>``
inside the output directory. Delimited formats leave missing values as
empty cells; JSON lines writes them as ``null``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Iterable, List

import pandas as pd

SEPARATORS = {"tsv": "\t", "csv": ","}
FORMATS = (*SEPARATORS, "jsonl")


def table_path(out_dir: str | Path, name: str, fmt: str = "tsv") -> Path:
    """``out/features`` + ``jsonl`` -> ``out/features.jsonl``."""
    if fmt not in FORMATS:
        raise ValueError(f"Unsupported format: {fmt}")
    return Path(out_dir) / f"{name}.{fmt}"


def _jsonl_records(df: pd.DataFrame) -> Iterable[str]:
    clean = df.astype(object).where(pd.notna(df), None)
    for record in clean.to_dict(orient="records"):
        yield json.dumps(record, default=str)


def write_table(df: pd.DataFrame, path: str | Path, fmt: str = "tsv") -> None:
    """
    Write one warehouse table.

    Parameters
    ----------
    df:
        Table rows, one column per warehouse field.
    path:
        Output file, usually from :func:`table_path`.
    fmt:
        One of ``FORMATS``.
    """
    if fmt not in FORMATS:
        raise ValueError(f"Unsupported format: {fmt}")
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "jsonl":
        write_lines(_jsonl_records(df), out_path)
    else:
        df.to_csv(out_path, sep=SEPARATORS[fmt], index=False)


def write_tables(tables: Dict[str, pd.DataFrame], out_dir: str | Path, fmt: str = "tsv") -> List[Path]:
    """Write every table under ``out_dir`` and return the paths in table order."""
    paths = []
    for name, df in tables.items():
        path = table_path(out_dir, name, fmt)
        write_table(df, path, fmt=fmt)
        paths.append(path)
    return paths


def write_lines(lines: Iterable[str], path: str | Path) -> None:
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with out_path.open("w", encoding="utf-8") as handle:
        for line in lines:
            handle.write(f"{line}\n")


__all__ = ["FORMATS", "SEPARATORS", "table_path", "write_table", "write_tables", "write_lines"]
