"""
MIT License

Process-wide registry of controlled vocabularies (IDF term sources).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from .model import Experiment
from ..util.logging import ErrorLogger, get_error_logger


@dataclass(frozen=True)
class ControlledVocabulary:
    name: str
    url: Optional[str] = None
    description: Optional[str] = None


class CVRegistry:
    """Append-only name -> vocabulary table; registering twice is harmless."""

    def __init__(self, logger: Optional[ErrorLogger] = None) -> None:
        self.logger = logger or get_error_logger()
        self._vocabularies: Dict[str, ControlledVocabulary] = {}

    def register(self, name: str, url: Optional[str] = None, description: Optional[str] = None) -> ControlledVocabulary:
        existing = self._vocabularies.get(name)
        if existing is not None:
            if url and existing.url and url != existing.url:
                self.logger.warning(
                    f"Term source {name} is already registered from {existing.url}; ignoring {url}"
                )
            return existing
        vocabulary = ControlledVocabulary(name=name, url=url, description=description)
        self._vocabularies[name] = vocabulary
        return vocabulary

    def is_registered(self, name: str) -> bool:
        return name in self._vocabularies

    def get(self, name: str) -> Optional[ControlledVocabulary]:
        return self._vocabularies.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._vocabularies

    def __len__(self) -> int:
        return len(self._vocabularies)

    def __iter__(self) -> Iterator[ControlledVocabulary]:
        return iter(self._vocabularies.values())

    def unregistered_term_sources(self, experiment: Experiment) -> List[str]:
        """Names of term sources referenced by ``experiment`` but never registered."""
        missing: List[str] = []

        def check(dbxref) -> None:
            if dbxref is None:
                return
            name = dbxref.db.name
            if name and not self.is_registered(name) and name not in missing:
                missing.append(name)

        for prop in experiment.properties:
            check(prop.termsource)
        for applied_protocol in experiment.iter_applied_protocols():
            check(applied_protocol.protocol.termsource)
            for attribute in applied_protocol.protocol.attributes:
                check(attribute.termsource)
        for datum in experiment.iter_data():
            check(datum.termsource)
            for attribute in datum.attributes:
                check(attribute.termsource)
        return missing

    def check_term_sources(self, experiment: Experiment) -> bool:
        missing = self.unregistered_term_sources(experiment)
        for name in missing:
            self.logger.warning(f"Term source {name} is used but not declared in the IDF")
        return not missing


_REGISTRY: Optional[CVRegistry] = None


def get_registry() -> CVRegistry:
    global _REGISTRY
    if _REGISTRY is None:
        _REGISTRY = CVRegistry()
    return _REGISTRY


__all__ = ["ControlledVocabulary", "CVRegistry", "get_registry"]
