"""
Document workflow domain types (``dsm_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the deal document workflow: roles and action types
as closed enums, role assignments, per-document workflow requirements, the
append-only action history, documents, and the derived per-document state.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``models/``, ``services/`` or outer packages.

Invariants enforced
-------------------
* Closed variants: ``Role`` and ``ActionType`` are the only legal values;
  nothing downstream compares raw strings.
* Signature mode exclusivity: ``WorkflowRequirements.with_changes`` and
  ``reconcile_with`` never produce ``requires_upload`` together with
  ``is_electronic_signature`` from a single-sided toggle.
* Append-only history: ``Document.with_entry`` returns a new document whose
  history extends the old one; nothing removes or rewrites entries.
* Tombstones: ``Document.tombstoned`` marks removal without erasing history.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4


# =========================================================================
# Closed variants
# =========================================================================


class Role(str, Enum):
    """Identity roles that can be assigned to a document."""

    BUYER = "BUYER"
    BUYER_LAWYER = "BUYER_LAWYER"
    BROKER = "BROKER"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"
    NONE = "NONE"


ROLE_LABELS: dict[Role, str] = {
    Role.BUYER: "Buyer",
    Role.BUYER_LAWYER: "Buyer's Lawyer",
    Role.BROKER: "Broker",
    Role.ADMIN: "Admin",
    Role.SYSTEM: "System",
    Role.NONE: "Unassigned",
}


class ActionType(str, Enum):
    """Actions recorded in a document's history."""

    PREPARE = "PREPARE"
    UPLOAD = "UPLOAD"
    UPLOAD_SIGNED = "UPLOAD_SIGNED"
    ESIGN = "ESIGN"
    APPROVE = "APPROVE"
    REVIEW = "REVIEW"
    DISPUTE = "DISPUTE"
    COMPLETE = "COMPLETE"


ACTION_LABELS: dict[ActionType, str] = {
    ActionType.PREPARE: "Prepare",
    ActionType.UPLOAD: "Upload",
    ActionType.UPLOAD_SIGNED: "Upload signed copy",
    ActionType.ESIGN: "E-sign",
    ActionType.APPROVE: "Approve",
    ActionType.REVIEW: "Review",
    ActionType.DISPUTE: "Dispute",
    ActionType.COMPLETE: "Complete",
}

SIGNATURE_ACTIONS: frozenset[ActionType] = frozenset({
    ActionType.ESIGN,
    ActionType.UPLOAD_SIGNED,
})


class DocumentStatus(str, Enum):
    """Derived lifecycle status of a single document."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    DISPUTED = "disputed"
    COMPLETE = "complete"


def normalize_email(email: str | None) -> str:
    """Canonical form for identity comparison (trimmed, case-folded)."""
    return (email or "").strip().casefold()


# =========================================================================
# Identities
# =========================================================================


@dataclass(frozen=True)
class Assignee:
    """Who must perform a step.

    Synthetic steps (prepare/upload) may be role-only: ``email`` is empty
    and any actor holding ``role`` satisfies them.
    """

    role: Role
    email: str = ""
    display_name: str = ""
    user_id: str | None = None

    @property
    def is_role_only(self) -> bool:
        return not self.email

    @property
    def label(self) -> str:
        return self.display_name or self.email or ROLE_LABELS[self.role]

    def matches(self, email: str | None, role: Role | None = None) -> bool:
        if self.email:
            return normalize_email(email) == normalize_email(self.email)
        return role == self.role


SYSTEM_ASSIGNEE = Assignee(role=Role.SYSTEM, display_name=ROLE_LABELS[Role.SYSTEM])


@dataclass(frozen=True)
class RoleAssignment:
    """Which identity must act on a document, and in what order.

    ``external_signing_reference`` is an opaque handle owned by the
    e-signature provider; the engine never interprets it.
    """

    user_id: str
    email: str
    display_name: str
    role: Role
    signing_order: int
    external_signing_reference: str | None = None

    def as_assignee(self) -> Assignee:
        return Assignee(
            role=self.role,
            email=self.email,
            display_name=self.display_name,
            user_id=self.user_id,
        )


def sort_by_signing_order(
    assignments: tuple[RoleAssignment, ...] | list[RoleAssignment],
) -> tuple[RoleAssignment, ...]:
    """Sort by ``signing_order``; ties keep their input order."""
    return tuple(sorted(assignments, key=lambda a: a.signing_order))


def normalize_signing_order(
    assignments: tuple[RoleAssignment, ...] | list[RoleAssignment],
) -> tuple[RoleAssignment, ...]:
    """Renumber assignments to the contiguous sequence 1..n, keeping order."""
    return tuple(
        replace(assignment, signing_order=position)
        for position, assignment in enumerate(sort_by_signing_order(assignments), start=1)
    )


# =========================================================================
# Requirements
# =========================================================================


@dataclass(frozen=True)
class WorkflowRequirements:
    """Static, independently settable workflow flags for one document."""

    requires_buyer_lawyer_approval: bool = False
    requires_buyer_signature: bool = False
    requires_broker_approval: bool = False
    requires_broker_signature: bool = False
    requires_prepare: bool = False
    requires_upload: bool = False
    is_electronic_signature: bool = False

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @property
    def has_exclusive_conflict(self) -> bool:
        return self.requires_upload and self.is_electronic_signature

    def with_changes(self, **changes: bool) -> WorkflowRequirements:
        """Apply flag changes, clearing the opposite signature mode.

        Turning ``requires_upload`` on clears ``is_electronic_signature``
        and vice versa.

        Raises:
            ValueError: unknown flag name, or both modes switched on at once.
        """
        unknown = set(changes) - set(self.field_names())
        if unknown:
            raise ValueError(f"Unknown requirement flags: {sorted(unknown)}")
        if changes.get("requires_upload") and changes.get("is_electronic_signature"):
            raise ValueError(
                "requires_upload and is_electronic_signature cannot both be enabled"
            )

        updated = dict(changes)
        if changes.get("requires_upload"):
            updated["is_electronic_signature"] = False
        if changes.get("is_electronic_signature"):
            updated["requires_upload"] = False
        return replace(self, **updated)

    def reconcile_with(self, previous: WorkflowRequirements) -> WorkflowRequirements:
        """Resolve a full replacement against the previous requirements.

        When the proposal has both signature modes on, the mode that was
        just switched on wins and the other is cleared.  If neither or both
        were just switched on the proposal is returned unchanged, and
        validation rejects it.
        """
        if not self.has_exclusive_conflict:
            return self
        upload_toggled = self.requires_upload and not previous.requires_upload
        esign_toggled = self.is_electronic_signature and not previous.is_electronic_signature
        if upload_toggled and not esign_toggled:
            return replace(self, is_electronic_signature=False)
        if esign_toggled and not upload_toggled:
            return replace(self, requires_upload=False)
        return self


# =========================================================================
# Action history
# =========================================================================


@dataclass(frozen=True)
class ActionHistoryEntry:
    """One thing that happened to a document. Immutable.

    ``target_action`` / ``target_email`` are only meaningful for DISPUTE
    entries: they name the previously satisfied step being disputed.
    """

    action_type: ActionType
    performed_by_role: Role
    performed_by_email: str
    timestamp: datetime
    entry_id: UUID = field(default_factory=uuid4)
    note: str = ""
    target_action: ActionType | None = None
    target_email: str | None = None


# =========================================================================
# Document
# =========================================================================


@dataclass(frozen=True)
class Document:
    """A deal document: static requirements plus its action history.

    Derived state is never stored here; see ``DocumentState``.
    ``revision`` increases by one on every mutation and backs optimistic
    locking in persistence.
    """

    id: str
    name: str
    group_id: str
    requirements: WorkflowRequirements = field(default_factory=WorkflowRequirements)
    role_assignments: tuple[RoleAssignment, ...] = ()
    action_history: tuple[ActionHistoryEntry, ...] = ()
    deal_id: str | None = None
    is_tombstoned: bool = False
    revision: int = 0

    def sorted_assignments(self) -> tuple[RoleAssignment, ...]:
        return sort_by_signing_order(self.role_assignments)

    def with_entry(self, entry: ActionHistoryEntry) -> Document:
        return replace(
            self,
            action_history=self.action_history + (entry,),
            revision=self.revision + 1,
        )

    def with_config(
        self,
        requirements: WorkflowRequirements,
        role_assignments: tuple[RoleAssignment, ...],
    ) -> Document:
        return replace(
            self,
            requirements=requirements,
            role_assignments=tuple(role_assignments),
            revision=self.revision + 1,
        )

    def tombstoned(self) -> Document:
        return replace(self, is_tombstoned=True, revision=self.revision + 1)


# =========================================================================
# Derived state
# =========================================================================


@dataclass(frozen=True)
class WorkflowStep:
    """One required action in a document's ordered workflow.

    ``signing_order`` is 0 for synthetic steps (prepare/upload) that do
    not come from a role assignment.
    """

    action_type: ActionType
    assignee: Assignee
    signing_order: int = 0
    is_synthetic: bool = False
    is_satisfied: bool = False
    is_disputed: bool = False


@dataclass(frozen=True)
class DocumentState:
    """Derived, never stored: what happens next for a document."""

    next_action: ActionType
    next_assignee: Assignee
    is_complete: bool
    status: DocumentStatus
    steps: tuple[WorkflowStep, ...] = ()
    current_step_index: int = 0

    @property
    def pending_step(self) -> WorkflowStep | None:
        if self.is_complete or self.current_step_index >= len(self.steps):
            return None
        return self.steps[self.current_step_index]


@dataclass(frozen=True)
class ConfigIssue:
    """A single configuration problem found at the mutation boundary."""

    code: str
    message: str
    field: str | None = None
