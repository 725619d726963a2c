"""
Config -> Kernel Bridges.

Functions that turn a ``WorkflowConfigSet`` into kernel domain objects.
They live in dsm_config (the producer) because the kernel must NEVER
import dsm_config.

Usage:
    from dsm_config import get_active_config
    from dsm_config.bridges import Participant, build_deal_documents

    config = get_active_config()
    documents = build_deal_documents(config, "deal-42", participants)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from dsm_config.schema import DocumentTemplateDef, WorkflowConfigSet
from dsm_kernel.domain.workflow import Document, Role, RoleAssignment


@dataclass(frozen=True)
class Participant:
    """A deal participant who can fill a template's role slot."""

    role: Role
    user_id: str
    email: str
    display_name: str = ""
    external_signing_reference: str | None = None


def document_id_for(deal_id: str, template_id: str) -> str:
    return f"{deal_id}:{template_id}"


def _assignments_for(
    template: DocumentTemplateDef,
    by_role: dict[Role, Participant],
) -> tuple[RoleAssignment, ...]:
    assignments: list[RoleAssignment] = []
    missing: list[str] = []
    for slot in template.roles:
        participant = by_role.get(slot.role)
        if participant is None:
            missing.append(slot.role.value)
            continue
        assignments.append(
            RoleAssignment(
                user_id=participant.user_id,
                email=participant.email,
                display_name=participant.display_name or participant.email,
                role=slot.role,
                signing_order=slot.signing_order,
                external_signing_reference=participant.external_signing_reference,
            )
        )
    if missing:
        raise ValueError(
            f"Template {template.template_id!r} needs participants for roles: {missing}"
        )
    return tuple(assignments)


def build_deal_documents(
    config: WorkflowConfigSet,
    deal_id: str,
    participants: Sequence[Participant],
) -> tuple[Document, ...]:
    """Instantiate every template for ``deal_id``.

    Documents come out grouped by the groups' ``sort_order`` and, within a
    group, in template order.  The first participant listed for a role
    fills every slot of that role.

    Raises:
        ValueError: a template has a role slot no participant can fill.
    """
    by_role: dict[Role, Participant] = {}
    for participant in participants:
        by_role.setdefault(participant.role, participant)

    group_rank = {g.name: (g.sort_order, i) for i, g in enumerate(config.groups)}
    templates = sorted(
        enumerate(config.document_templates),
        key=lambda pair: (group_rank.get(pair[1].group, (len(group_rank), 0)), pair[0]),
    )

    return tuple(
        Document(
            id=document_id_for(deal_id, template.template_id),
            name=template.name,
            group_id=template.group,
            requirements=template.requirements,
            role_assignments=_assignments_for(template, by_role),
            deal_id=deal_id,
        )
        for _, template in templates
    )


def group_display_name(config: WorkflowConfigSet, group_id: str) -> str:
    """Human-readable group name; the raw id when the group is unknown."""
    group = config.group(group_id)
    return group.display_name if group is not None else group_id
