"""
MIT License

Reference FASTA access, used to derive genome-build coordinates.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

from Bio import SeqIO
from Bio.SeqRecord import SeqRecord

LOGGER = logging.getLogger(__name__)


class FastaResource:
    """Sequence lengths from a reference FASTA, keyed by the first id token."""

    def __init__(self, path: str | Path | None) -> None:
        self.path = Path(path) if path else None
        self._index = None
        self._records: Optional[Dict[str, SeqRecord]] = None
        if self.path:
            try:
                self._index = SeqIO.index(str(self.path), "fasta")
            except ValueError:
                LOGGER.warning("FASTA %s has duplicate IDs; keeping the first of each", self.path)
                self._records = {}
                for record in SeqIO.parse(str(self.path), "fasta"):
                    self._records.setdefault(record.id, record)

    @staticmethod
    def normalize_id(seq_id: str) -> str:
        return seq_id.split()[0] if seq_id.strip() else seq_id

    def available(self) -> bool:
        return self._index is not None or self._records is not None

    def _store(self):
        return self._index if self._index is not None else self._records

    def iter_lengths(self) -> Iterator[Tuple[str, int]]:
        store = self._store()
        if store is None:
            return
        seen = set()
        for key in store.keys():
            seq_id = self.normalize_id(key)
            if seq_id in seen:
                continue
            seen.add(seq_id)
            yield seq_id, len(store[key].seq)

    def get_length(self, seq_id: str) -> Optional[int]:
        store = self._store()
        if store is None or seq_id not in store:
            return None
        return len(store[seq_id].seq)


__all__ = ["FastaResource"]
