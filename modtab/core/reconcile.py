"""
MIT License

Protocol-chain reconciliation for parsed SDRF rows.

Rows are materialized independently, so after parsing each stage holds one
AppliedProtocol per row and nothing connects stage N to stage N+1. This
module threads data across stages, fills in anonymous links where a stage
produced no explicit output, and collapses identical chains.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from .model import AppliedProtocol, CVTerm, Datum

ANONYMOUS_DATUM_CV = "modencode"
ANONYMOUS_DATUM_TYPE = "anonymous_datum"

Slots = List[List[AppliedProtocol]]


def anonymous_datum(number: int) -> Datum:
    return Datum(
        heading=f"Anonymous Datum #{number}",
        type=CVTerm(name=ANONYMOUS_DATUM_TYPE, cv=ANONYMOUS_DATUM_CV),
        anonymous=True,
    )


def _connected(previous: Sequence[AppliedProtocol], following: Sequence[AppliedProtocol]) -> bool:
    outputs = {id(datum) for applied_protocol in previous for datum in applied_protocol.output_data}
    return any(id(datum) in outputs for applied_protocol in following for datum in applied_protocol.input_data)


def pending_stages(slots: Sequence[Sequence[AppliedProtocol]]) -> List[int]:
    """Indexes of stages whose outputs do not yet feed the next stage.

    Reconciled slots share datum objects between stages and are no longer
    row aligned once deduplicated, so they never come back as pending.
    """
    return [
        idx
        for idx in range(len(slots) - 1)
        if len(slots[idx]) == len(slots[idx + 1]) and not _connected(slots[idx], slots[idx + 1])
    ]


def _stage_pairs(slots: Sequence[Sequence[AppliedProtocol]], stages: Optional[Sequence[int]] = None):
    if stages is None:
        stages = pending_stages(slots)
    for idx in stages:
        yield from zip(slots[idx], slots[idx + 1])


def _feed(following: AppliedProtocol, datum: Datum) -> None:
    if not any(existing is datum for existing in following.input_data):
        following.add_input_datum(datum)


def thread_outputs(slots: Sequence[Sequence[AppliedProtocol]], stages: Optional[Sequence[int]] = None) -> None:
    """Append each instance's outputs to the inputs of the same row's next stage."""
    for previous, following in _stage_pairs(slots, stages):
        for datum in previous.output_data:
            _feed(following, datum)


def link_anonymous(
    slots: Sequence[Sequence[AppliedProtocol]], start: int = 0, stages: Optional[Sequence[int]] = None
) -> int:
    """Connect output-less instances to the next stage through anonymous data.

    Instances equal to one already linked (as it looked before its anonymous
    output was attached) share that datum. Returns the next free datum number.
    """
    number = start
    linked: List[Tuple[AppliedProtocol, Datum]] = []
    for previous, following in _stage_pairs(slots, stages):
        if previous.output_data:
            continue
        datum: Optional[Datum] = next(
            (existing for snapshot, existing in linked if snapshot == previous), None
        )
        if datum is None:
            datum = anonymous_datum(number)
            number += 1
            linked.append((previous.clone(), datum))
        previous.add_output_datum(datum)
        _feed(following, datum)
    return number


def reduce_applied_protocols(applied_protocols: Sequence[AppliedProtocol]) -> List[AppliedProtocol]:
    """Drop instances equal to an earlier one, keeping first-seen order."""
    reduced: List[AppliedProtocol] = []
    for applied_protocol in applied_protocols:
        if not any(kept == applied_protocol for kept in reduced):
            reduced.append(applied_protocol)
    return reduced


def reconcile(slots: Sequence[Sequence[AppliedProtocol]]) -> Slots:
    """Thread, link and deduplicate per-row slots into the final protocol DAG."""
    stages = pending_stages(slots)
    thread_outputs(slots, stages)
    link_anonymous(slots, stages=stages)
    return [reduce_applied_protocols(slot) for slot in slots]


__all__ = [
    "ANONYMOUS_DATUM_CV",
    "ANONYMOUS_DATUM_TYPE",
    "anonymous_datum",
    "pending_stages",
    "thread_outputs",
    "link_anonymous",
    "reduce_applied_protocols",
    "reconcile",
]
