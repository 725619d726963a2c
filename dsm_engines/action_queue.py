"""
Module: dsm_engines.action_queue
Responsibility:
    Build the per-viewer pending action queue: what the viewer must do now,
    and which incomplete documents are waiting on somebody else.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import dsm_kernel/domain types and sibling engine modules.

Invariants enforced:
    - Identity comparison is case-insensitive (``normalize_email``).
    - Document iteration order is preserved; no urgency re-sorting.
    - Complete and tombstoned documents never appear in either list.

Failure modes:
    - None.
"""

from __future__ import annotations

from collections.abc import Sequence

from dsm_kernel.domain.views import BlockedAction, PendingAction, PendingActionView
from dsm_kernel.domain.workflow import (
    ACTION_LABELS,
    SIGNATURE_ACTIONS,
    Document,
    DocumentState,
    normalize_email,
)
from dsm_engines.state_machine import derive_document_state
from dsm_engines.tracer import traced_engine


def is_assigned_to(state: DocumentState, viewer_email: str) -> bool:
    """True when the pending step of ``state`` belongs to ``viewer_email``."""
    if state.is_complete:
        return False
    viewer = normalize_email(viewer_email)
    return bool(viewer) and normalize_email(state.next_assignee.email) == viewer


@traced_engine("action_queue", "1.0", fingerprint_fields=("viewer_email",))
def build_queue(documents: Sequence[Document], viewer_email: str) -> PendingActionView:
    """Split every incomplete document into the viewer's queue or the blocked list."""
    assigned: list[PendingAction] = []
    blocked: list[BlockedAction] = []

    for doc in documents:
        if doc.is_tombstoned:
            continue
        state = derive_document_state(doc)
        if state.is_complete:
            continue

        if is_assigned_to(state, viewer_email):
            assigned.append(
                PendingAction(
                    document_id=doc.id,
                    document_name=doc.name,
                    group_id=doc.group_id,
                    action_type=state.next_action,
                )
            )
        else:
            blocked.append(
                BlockedAction(
                    document_id=doc.id,
                    document_name=doc.name,
                    group_id=doc.group_id,
                    action_type=state.next_action,
                    assignee_display_name=state.next_assignee.label,
                    assignee_email=state.next_assignee.email,
                    assignee_role=state.next_assignee.role,
                )
            )

    return PendingActionView(
        viewer_email=viewer_email,
        actions_assigned_to_viewer=tuple(assigned),
        actions_blocking_on_others=tuple(blocked),
    )


def has_pending_actions(
    documents: Sequence[Document],
    group_id: str,
    viewer_email: str,
) -> bool:
    """Whether the viewer has anything to do in ``group_id``."""
    for doc in documents:
        if doc.group_id != group_id or doc.is_tombstoned:
            continue
        if is_assigned_to(derive_document_state(doc), viewer_email):
            return True
    return False


def requires_signature(document: Document, viewer_email: str) -> bool:
    """Whether the viewer's pending action on ``document`` is a signature."""
    if document.is_tombstoned:
        return False
    state = derive_document_state(document)
    return is_assigned_to(state, viewer_email) and state.next_action in SIGNATURE_ACTIONS


def action_status_text(document: Document, viewer_email: str) -> str:
    """Short status line for one document as seen by the viewer."""
    state = derive_document_state(document)
    if state.is_complete:
        return "Complete"
    if is_assigned_to(state, viewer_email):
        return f"Action required: {ACTION_LABELS[state.next_action]}"
    return f"Waiting on {state.next_assignee.label}"
