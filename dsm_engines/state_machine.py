"""
dsm_engines.state_machine -- Pure action state machine for one document.

Responsibility:
    Derive a document's next required action, its assignee and its
    completion state from the document's static requirements, its role
    assignments and its append-only action history.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import dsm_kernel/domain types.

Invariants enforced:
    - Signing order is authoritative: assignments are sorted by
      ``signing_order`` before evaluation, so input order never matters.
    - Exhaustive role mapping: ``REQUIRED_ACTION_TABLE`` has an entry for
      every ``Role``; within a role the first applicable rule wins.
    - E-signed documents are treated as uploaded by SYSTEM.  This is a
      derivation rule here, never a record in the history.
    - Completion latches: once a prefix of the history completes the
      document, later entries cannot reopen it.
    - Determinism: no clock, no randomness; identical inputs give
      identical ``DocumentState`` values.

Failure modes:
    - None.  ``derive_state`` is total and always returns a best-effort
      answer; malformed configurations are rejected at the command
      boundary (see ``dsm_engines.config_rules``).
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from dsm_kernel.domain.workflow import (
    ROLE_LABELS,
    SYSTEM_ASSIGNEE,
    ActionHistoryEntry,
    ActionType,
    Assignee,
    Document,
    DocumentState,
    DocumentStatus,
    Role,
    RoleAssignment,
    WorkflowRequirements,
    WorkflowStep,
    normalize_email,
    sort_by_signing_order,
)


# =========================================================================
# Role -> required action mapping
# =========================================================================


def _approval_action(requirements: WorkflowRequirements) -> ActionType:
    return ActionType.APPROVE


def _signature_action(requirements: WorkflowRequirements) -> ActionType:
    if requirements.is_electronic_signature:
        return ActionType.ESIGN
    return ActionType.UPLOAD_SIGNED


@dataclass(frozen=True)
class RequirementRule:
    """A requirement flag and the action it demands from a role."""

    flag: str
    resolve: Callable[[WorkflowRequirements], ActionType]


REQUIRED_ACTION_TABLE: dict[Role, tuple[RequirementRule, ...]] = {
    Role.BUYER_LAWYER: (
        RequirementRule("requires_buyer_lawyer_approval", _approval_action),
    ),
    Role.BROKER: (
        RequirementRule("requires_broker_approval", _approval_action),
        RequirementRule("requires_broker_signature", _signature_action),
    ),
    Role.BUYER: (
        RequirementRule("requires_buyer_signature", _signature_action),
    ),
    Role.ADMIN: (),
    Role.SYSTEM: (),
    Role.NONE: (),
}


def required_action_for(
    role: Role,
    requirements: WorkflowRequirements,
) -> ActionType | None:
    """Return the action ``role`` must take, or None if the role is skipped."""
    for rule in REQUIRED_ACTION_TABLE[role]:
        if getattr(requirements, rule.flag):
            return rule.resolve(requirements)
    return None


def _synthetic_assignee(
    role: Role,
    sorted_assignments: Sequence[RoleAssignment],
) -> Assignee:
    """Identity for a synthetic step: first assignment holding ``role``."""
    for assignment in sorted_assignments:
        if assignment.role == role:
            return assignment.as_assignee()
    return Assignee(role=role, display_name=ROLE_LABELS[role])


def build_workflow_steps(
    requirements: WorkflowRequirements,
    role_assignments: Sequence[RoleAssignment],
) -> tuple[WorkflowStep, ...]:
    """Build the ordered, not-yet-evaluated steps for a document.

    Synthetic PREPARE (admin) and UPLOAD (broker) steps lead the sequence
    when required; assignment steps follow in signing order.
    """
    sorted_assignments = sort_by_signing_order(role_assignments)

    assignment_steps: list[WorkflowStep] = []
    for assignment in sorted_assignments:
        action = required_action_for(assignment.role, requirements)
        if action is None:
            continue
        assignment_steps.append(
            WorkflowStep(
                action_type=action,
                assignee=assignment.as_assignee(),
                signing_order=assignment.signing_order,
            )
        )

    leading: list[WorkflowStep] = []
    if requirements.requires_prepare:
        leading.append(
            WorkflowStep(
                action_type=ActionType.PREPARE,
                assignee=_synthetic_assignee(Role.ADMIN, sorted_assignments),
                is_synthetic=True,
            )
        )

    # E-signed documents count as uploaded by SYSTEM.
    needs_upload_step = (
        requirements.requires_upload
        and not requirements.is_electronic_signature
        and not any(s.action_type == ActionType.UPLOAD for s in assignment_steps)
    )
    if needs_upload_step:
        leading.append(
            WorkflowStep(
                action_type=ActionType.UPLOAD,
                assignee=_synthetic_assignee(Role.BROKER, sorted_assignments),
                is_synthetic=True,
            )
        )

    return tuple(leading + assignment_steps)


# =========================================================================
# History fold
# =========================================================================


def _performed_by(step: WorkflowStep, entry: ActionHistoryEntry) -> bool:
    return step.assignee.matches(entry.performed_by_email, entry.performed_by_role)


def _match_step(
    steps: Sequence[WorkflowStep],
    satisfied: list[bool],
    entry: ActionHistoryEntry,
) -> int | None:
    """First unsatisfied step this entry fulfils."""
    for index, step in enumerate(steps):
        if satisfied[index]:
            continue
        if step.action_type == entry.action_type and _performed_by(step, entry):
            return index
    return None


def _dispute_target(
    steps: Sequence[WorkflowStep],
    satisfied: list[bool],
    entry: ActionHistoryEntry,
) -> int | None:
    """Step reopened (or flagged) by a DISPUTE entry.

    With a target, the first satisfied step matching it is reopened.
    Without one, the dispute flags the currently pending step.
    """
    if entry.target_action is None:
        for index in range(len(steps)):
            if not satisfied[index]:
                return index
        return None

    target_email = normalize_email(entry.target_email)
    for index, step in enumerate(steps):
        if not satisfied[index] or step.action_type != entry.target_action:
            continue
        if not target_email or step.assignee.is_role_only:
            return index
        if normalize_email(step.assignee.email) == target_email:
            return index
    return None


def derive_state(
    requirements: WorkflowRequirements,
    role_assignments: Sequence[RoleAssignment],
    action_history: Sequence[ActionHistoryEntry],
) -> DocumentState:
    """Fold the action history over the document's workflow steps.

    Args:
        requirements: The document's static workflow flags.
        role_assignments: Assignments in any order; signing order decides.
        action_history: Append-only history, oldest first.

    Returns:
        DocumentState with ``next_action``, ``next_assignee``,
        ``is_complete`` plus the evaluated steps and derived status.
    """
    steps = build_workflow_steps(requirements, role_assignments)
    satisfied = [False] * len(steps)
    disputed = [False] * len(steps)

    is_complete = all(satisfied)
    if not is_complete:
        for entry in action_history:
            if entry.action_type == ActionType.DISPUTE:
                index = _dispute_target(steps, satisfied, entry)
                if index is not None:
                    satisfied[index] = False
                    disputed[index] = True
            else:
                index = _match_step(steps, satisfied, entry)
                if index is not None:
                    satisfied[index] = True
                    disputed[index] = False

            if all(satisfied):
                is_complete = True
                break

    evaluated = tuple(
        WorkflowStep(
            action_type=step.action_type,
            assignee=step.assignee,
            signing_order=step.signing_order,
            is_synthetic=step.is_synthetic,
            is_satisfied=satisfied[index],
            is_disputed=disputed[index],
        )
        for index, step in enumerate(steps)
    )

    if is_complete:
        return DocumentState(
            next_action=ActionType.COMPLETE,
            next_assignee=SYSTEM_ASSIGNEE,
            is_complete=True,
            status=DocumentStatus.COMPLETE,
            steps=evaluated,
            current_step_index=len(evaluated),
        )

    current = satisfied.index(False)
    if any(disputed):
        status = DocumentStatus.DISPUTED
    elif any(satisfied):
        status = DocumentStatus.IN_PROGRESS
    else:
        status = DocumentStatus.NOT_STARTED

    pending = evaluated[current]
    return DocumentState(
        next_action=pending.action_type,
        next_assignee=pending.assignee,
        is_complete=False,
        status=status,
        steps=evaluated,
        current_step_index=current,
    )


def derive_document_state(document: Document) -> DocumentState:
    """``derive_state`` for a whole ``Document``."""
    return derive_state(
        document.requirements,
        document.role_assignments,
        document.action_history,
    )
