"""ORM models for workflow persistence."""

from dsm_kernel.models.document import (
    ActionHistoryModel,
    DocumentModel,
    RoleAssignmentModel,
)

__all__ = [
    "ActionHistoryModel",
    "DocumentModel",
    "RoleAssignmentModel",
]
