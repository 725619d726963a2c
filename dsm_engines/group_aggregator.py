"""
Module: dsm_engines.group_aggregator
Responsibility:
    Aggregate the derived state of every document sharing a ``group_id``
    into a single ``DocumentGroup``: completion percentage, a flattened
    step sequence for progress display, the current step index and a
    group status.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import dsm_kernel/domain types and sibling engine modules.

Invariants enforced:
    - Idempotence: the same snapshot always yields an identical
      ``DocumentGroup``.
    - ``percent_complete`` is in [0, 100]; an empty group is 0 and
      "Not Started", never a division error.
    - Tombstoned documents are not members of any group.

Failure modes:
    - None.  Aggregation is total over any document snapshot.

Usage:
    from dsm_engines.group_aggregator import aggregate_group

    group = aggregate_group(documents, "mortgage")
    group.percent_complete   # 33 for one of three complete
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from dsm_kernel.domain.views import DocumentGroup, GroupStatus, GroupStep
from dsm_kernel.domain.workflow import Document, DocumentState, DocumentStatus
from dsm_engines.state_machine import derive_document_state
from dsm_engines.tracer import traced_engine


def percent_of(part: int, whole: int) -> int:
    """Whole-number percentage rounded half-up; 0 when ``whole`` is 0."""
    if whole <= 0:
        return 0
    ratio = Decimal(100 * part) / Decimal(whole)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def group_members(documents: Sequence[Document], group_id: str) -> list[Document]:
    """Live documents of ``group_id`` in iteration order."""
    return [
        doc for doc in documents
        if doc.group_id == group_id and not doc.is_tombstoned
    ]


def _group_status(states: Sequence[DocumentState]) -> GroupStatus:
    if not states:
        return GroupStatus.NOT_STARTED
    if all(state.is_complete for state in states):
        return GroupStatus.COMPLETE
    if all(state.status == DocumentStatus.NOT_STARTED for state in states):
        return GroupStatus.NOT_STARTED
    return GroupStatus.IN_PROGRESS


@traced_engine("group_aggregator", "1.0", fingerprint_fields=("group_id",))
def aggregate_group(documents: Sequence[Document], group_id: str) -> DocumentGroup:
    """Aggregate progress of all live documents in ``group_id``.

    ``ordered_steps`` is for progress display only; nothing drives
    control flow from it.
    """
    members = group_members(documents, group_id)
    states = [derive_document_state(doc) for doc in members]

    ordered_steps: list[GroupStep] = []
    current_step_index: int | None = None
    for doc, state in zip(members, states):
        for step in state.steps:
            if current_step_index is None and not state.is_complete:
                current_step_index = len(ordered_steps)
            ordered_steps.append(
                GroupStep(
                    document_id=doc.id,
                    document_name=doc.name,
                    action_type=step.action_type,
                    assignee=step.assignee,
                    is_satisfied=step.is_satisfied,
                    document_complete=state.is_complete,
                )
            )

    if current_step_index is None:
        current_step_index = len(ordered_steps)

    complete = sum(1 for state in states if state.is_complete)
    return DocumentGroup(
        group_id=group_id,
        document_ids=tuple(doc.id for doc in members),
        percent_complete=percent_of(complete, len(members)),
        ordered_steps=tuple(ordered_steps),
        current_step_index=current_step_index,
        status=_group_status(states),
    )


def aggregate_groups(documents: Sequence[Document]) -> tuple[DocumentGroup, ...]:
    """Aggregate every group present in ``documents``, in first-seen order."""
    group_ids: list[str] = []
    for doc in documents:
        if doc.is_tombstoned or doc.group_id in group_ids:
            continue
        group_ids.append(doc.group_id)
    return tuple(aggregate_group(documents, group_id) for group_id in group_ids)
