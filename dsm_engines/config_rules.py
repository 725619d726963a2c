"""
Module: dsm_engines.config_rules
Responsibility:
    Validate a document's requirements and role assignments before they
    are accepted by the store.  Everything the state machine tolerates but
    must never see in stored state is rejected here.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Returns issues; the caller decides whether to raise.

Issue codes:
    INVALID_SIGNING_ORDER     signing_order below 1
    DUPLICATE_SIGNING_ORDER   two assignments share a signing_order
    EXCLUSIVE_SIGNATURE_MODE  requires_upload and is_electronic_signature
    MISSING_ROLE_ASSIGNMENT   a requirement flag names a role nobody holds
    UNMAPPED_ROLE             assignment role can never produce an action
    MISSING_EMAIL             assignment without an email identity
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from dsm_kernel.domain.workflow import (
    ROLE_LABELS,
    ConfigIssue,
    Role,
    RoleAssignment,
    WorkflowRequirements,
)
from dsm_engines.state_machine import REQUIRED_ACTION_TABLE

# Requirement flag -> role that must hold an assignment for it.
FLAG_ROLES: dict[str, Role] = {
    "requires_buyer_lawyer_approval": Role.BUYER_LAWYER,
    "requires_buyer_signature": Role.BUYER,
    "requires_broker_approval": Role.BROKER,
    "requires_broker_signature": Role.BROKER,
}


def _role_is_mapped(role: Role, requirements: WorkflowRequirements) -> bool:
    if REQUIRED_ACTION_TABLE[role]:
        return True
    # Admin identity carries the synthetic prepare step.
    return role == Role.ADMIN and requirements.requires_prepare


def validate_document_config(
    requirements: WorkflowRequirements,
    role_assignments: Sequence[RoleAssignment],
) -> tuple[ConfigIssue, ...]:
    """Return every configuration issue; an empty tuple means acceptable."""
    issues: list[ConfigIssue] = []

    if requirements.has_exclusive_conflict:
        issues.append(ConfigIssue(
            code="EXCLUSIVE_SIGNATURE_MODE",
            message="requires_upload and is_electronic_signature are mutually exclusive",
            field="requirements",
        ))

    for assignment in role_assignments:
        if assignment.signing_order < 1:
            issues.append(ConfigIssue(
                code="INVALID_SIGNING_ORDER",
                message=(
                    f"Signing order {assignment.signing_order} for "
                    f"{assignment.email or assignment.role.value} must be at least 1"
                ),
                field="role_assignments",
            ))
        if not assignment.email.strip():
            issues.append(ConfigIssue(
                code="MISSING_EMAIL",
                message=f"{ROLE_LABELS[assignment.role]} assignment has no email",
                field="role_assignments",
            ))
        if not _role_is_mapped(assignment.role, requirements):
            issues.append(ConfigIssue(
                code="UNMAPPED_ROLE",
                message=f"Role {assignment.role.value} cannot act on this document",
                field="role_assignments",
            ))

    order_counts = Counter(a.signing_order for a in role_assignments)
    for order in sorted(order for order, count in order_counts.items() if count > 1):
        issues.append(ConfigIssue(
            code="DUPLICATE_SIGNING_ORDER",
            message=f"Signing order {order} is used by more than one assignment",
            field="role_assignments",
        ))

    assigned_roles = {a.role for a in role_assignments}
    missing: list[Role] = []
    for flag, role in FLAG_ROLES.items():
        if getattr(requirements, flag) and role not in assigned_roles and role not in missing:
            missing.append(role)
    for role in missing:
        issues.append(ConfigIssue(
            code="MISSING_ROLE_ASSIGNMENT",
            message=f"A {ROLE_LABELS[role]} assignment is required but none is configured",
            field="role_assignments",
        ))

    return tuple(issues)
