"""
MIT License

Mapped-read sanity check for sequencing experiments.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Sequence

from .model import Experiment
from ..util.logging import ErrorLogger, get_error_logger

UNIQUE_READS = "uniquely_mapped_read_count"
MULTIPLE_READS = "multiply_mapped_read_count"
TOTAL_READS = "read_count"
SUBMISSION_DB = "modencode_submission"
MIN_MAPPED_PERCENT = 30

# submission id -> values of its ``read_count`` property
ReadCountLookup = Callable[[str], Sequence[str]]


def _property_value(experiment: Experiment, type_name: str) -> Optional[str]:
    for prop in experiment.properties:
        if prop.name == type_name or (prop.type is not None and prop.type.name == type_name):
            return prop.value
    return None


def referenced_submissions(experiment: Experiment) -> List[str]:
    """Ids of other submissions referenced through data attributes, in first-seen order."""
    found: List[str] = []
    for datum in experiment.iter_data():
        for attribute in datum.attributes:
            termsource = attribute.termsource
            if termsource is None or termsource.db.description != SUBMISSION_DB:
                continue
            submission = termsource.db.url
            if submission and submission not in found:
                found.append(submission)
            break
    return found


def validate_read_counts(
    experiment: Experiment,
    lookup: Optional[ReadCountLookup] = None,
    logger: Optional[ErrorLogger] = None,
) -> bool:
    """Require more than :data:`MIN_MAPPED_PERCENT` percent of reads to map.

    Experiments without any read-count property pass untouched. A missing
    total is looked up in referenced submissions when ``lookup`` is given.
    """
    logger = logger or get_error_logger()
    uniq_reads = _property_value(experiment, UNIQUE_READS)
    multi_reads = _property_value(experiment, MULTIPLE_READS)
    total_reads = _property_value(experiment, TOTAL_READS)
    if not (uniq_reads or multi_reads or total_reads):
        return True

    if uniq_reads:
        logger.notice(f"Found {uniq_reads} uniquely mapped reads.")
    if multi_reads:
        logger.notice(f"Found {multi_reads} multiply mapped reads.")
    if total_reads:
        logger.notice(f"Found {total_reads} total reads.")

    if not total_reads and lookup is not None:
        for submission in referenced_submissions(experiment):
            values = list(lookup(submission))
            if len(values) > 1:
                logger.warning(
                    f"Got back more than one total read count from referenced submission {submission}."
                )
            if values:
                total_reads = values[0]
                logger.notice(
                    f"Found (missing from this submission) {total_reads} total reads in submission {submission}."
                )
                break

    if not total_reads:
        logger.error("No total read count was found for this submission or any it references.")
        return False
    try:
        mapped = float(uniq_reads or 0) + float(multi_reads or 0)
        ratio = mapped / float(total_reads) * 100
    except (ValueError, ZeroDivisionError) as exc:
        logger.error(f"Can't compute the mapped read ratio: {exc}")
        return False
    if ratio <= MIN_MAPPED_PERCENT:
        logger.error(
            f"Only {int(ratio)}% of reads were mapped; your data set must map at least {MIN_MAPPED_PERCENT}%!"
        )
        return False
    logger.notice(f"{int(ratio)}% of reads were mapped (more than {MIN_MAPPED_PERCENT}%).")
    return True


__all__ = [
    "MIN_MAPPED_PERCENT",
    "ReadCountLookup",
    "referenced_submissions",
    "validate_read_counts",
]
