"""
Read models derived from a document snapshot (``dsm_kernel.domain.views``).

Responsibility
--------------
Frozen result types produced by the pure engines and consumed by the
presentation layer: group progress, per-viewer action queues and the
deal-level summary.  None of these are persisted.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from dsm_kernel.domain.workflow import ActionType, Assignee, Role


class GroupStatus(str, Enum):
    """Aggregate status of a document group."""

    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    COMPLETE = "Complete"


@dataclass(frozen=True)
class GroupStep:
    """One step of a group's combined progress sequence (display only)."""

    document_id: str
    document_name: str
    action_type: ActionType
    assignee: Assignee
    is_satisfied: bool
    document_complete: bool


@dataclass(frozen=True)
class DocumentGroup:
    """Aggregate progress of all documents sharing a ``group_id``."""

    group_id: str
    document_ids: tuple[str, ...]
    percent_complete: int
    ordered_steps: tuple[GroupStep, ...]
    current_step_index: int
    status: GroupStatus

    @property
    def is_complete(self) -> bool:
        return self.status == GroupStatus.COMPLETE


@dataclass(frozen=True)
class PendingAction:
    """An action the viewer must take."""

    document_id: str
    document_name: str
    group_id: str
    action_type: ActionType


@dataclass(frozen=True)
class BlockedAction:
    """An action someone else must take before the viewer's work is done."""

    document_id: str
    document_name: str
    group_id: str
    action_type: ActionType
    assignee_display_name: str
    assignee_email: str
    assignee_role: Role


@dataclass(frozen=True)
class PendingActionView:
    """Per-viewer split of outstanding actions."""

    viewer_email: str
    actions_assigned_to_viewer: tuple[PendingAction, ...] = ()
    actions_blocking_on_others: tuple[BlockedAction, ...] = ()

    @property
    def has_actions(self) -> bool:
        return bool(self.actions_assigned_to_viewer)


@dataclass(frozen=True)
class DealSummary:
    """Deal-level document completion summary."""

    total: int
    complete: int
    in_progress: int
    not_started: int
    disputed: int
    percent_complete: int
    all_complete: bool
    message: str
