"""
Pure domain layer.

This module contains pure value objects with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (apart from the injectable Clock abstraction)
- I/O

All domain objects are immutable and deterministic.
"""

from dsm_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from dsm_kernel.domain.views import (
    BlockedAction,
    DealSummary,
    DocumentGroup,
    GroupStatus,
    GroupStep,
    PendingAction,
    PendingActionView,
)
from dsm_kernel.domain.workflow import (
    ACTION_LABELS,
    ROLE_LABELS,
    SIGNATURE_ACTIONS,
    SYSTEM_ASSIGNEE,
    ActionHistoryEntry,
    ActionType,
    Assignee,
    ConfigIssue,
    Document,
    DocumentState,
    DocumentStatus,
    Role,
    RoleAssignment,
    WorkflowRequirements,
    WorkflowStep,
    normalize_email,
    normalize_signing_order,
    sort_by_signing_order,
)

__all__ = [
    "ACTION_LABELS",
    "ROLE_LABELS",
    "SIGNATURE_ACTIONS",
    "SYSTEM_ASSIGNEE",
    "ActionHistoryEntry",
    "ActionType",
    "Assignee",
    "BlockedAction",
    "Clock",
    "ConfigIssue",
    "DealSummary",
    "DeterministicClock",
    "Document",
    "DocumentGroup",
    "DocumentState",
    "DocumentStatus",
    "GroupStatus",
    "GroupStep",
    "PendingAction",
    "PendingActionView",
    "Role",
    "RoleAssignment",
    "SystemClock",
    "WorkflowRequirements",
    "WorkflowStep",
    "normalize_email",
    "normalize_signing_order",
    "sort_by_signing_order",
]
