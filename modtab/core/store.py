"""
MIT License

In-memory feature store keyed by ``(uniquename, type)``.
"""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional

from .model import Feature, FeatureKey


class FeatureStore:
    """Arena of features; relationships and locations refer back here by key."""

    def __init__(self) -> None:
        self._features: Dict[FeatureKey, Feature] = {}

    def find_feature(self, uniquename: str, type_name: str) -> Optional[Feature]:
        return self._features.get((uniquename, type_name))

    def get(self, key: FeatureKey) -> Optional[Feature]:
        return self._features.get(key)

    def add(self, feature: Feature) -> Feature:
        """Register ``feature`` unless its key is taken; return the stored one."""
        return self._features.setdefault(feature.key, feature)

    def dirty_features(self) -> List[Feature]:
        return [feature for feature in self._features.values() if feature.dirty]

    def flush(self) -> List[Feature]:
        """Return the dirty features and mark them clean."""
        flushed = self.dirty_features()
        for feature in flushed:
            feature.dirty = False
        return flushed

    def __contains__(self, key: object) -> bool:
        return key in self._features

    def __len__(self) -> int:
        return len(self._features)

    def __iter__(self) -> Iterator[Feature]:
        return iter(self._features.values())


__all__ = ["FeatureStore"]
