"""
WorkflowConfigSet schema.

Defines the human-authored, reviewable configuration for deal documents:
the document groups a deal is organised into and the document templates
an admin instantiates for each deal.  YAML files are parsed into these
types by the loader and checked by the validator.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from dsm_kernel.domain.workflow import Role, WorkflowRequirements

# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GroupDef:
    """A named bucket of documents tracked in aggregate."""

    name: str
    display_name: str
    description: str = ""
    sort_order: int = 0


# ---------------------------------------------------------------------------
# Document templates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RoleSlotDef:
    """A role that must be filled by a deal participant, and its order."""

    role: Role
    signing_order: int


@dataclass(frozen=True)
class DocumentTemplateDef:
    """Blueprint for one document on every deal."""

    template_id: str
    name: str
    group: str
    requirements: WorkflowRequirements = field(default_factory=WorkflowRequirements)
    roles: tuple[RoleSlotDef, ...] = ()


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingDef:
    level: str = "INFO"


@dataclass(frozen=True)
class WorkflowConfigSet:
    """Root configuration artifact.

    ``checksum`` is the SHA-256 of the canonical source data; identical
    YAML always yields the same checksum.
    """

    config_id: str
    version: int
    groups: tuple[GroupDef, ...] = ()
    document_templates: tuple[DocumentTemplateDef, ...] = ()
    logging: LoggingDef = field(default_factory=LoggingDef)
    checksum: str = ""

    def group(self, name: str) -> GroupDef | None:
        for group in self.groups:
            if group.name == name:
                return group
        return None

    def templates_for_group(self, name: str) -> tuple[DocumentTemplateDef, ...]:
        return tuple(t for t in self.document_templates if t.group == name)
