"""
Module: dsm_kernel.models.document
Responsibility: ORM persistence for workflow documents, their role
    assignments and their append-only action history.
Architecture position: Kernel > Models.  May import from db/base.py,
    exceptions and domain DTOs (lazily, for conversion).

Invariants enforced:
    - Append-only history: no UPDATE or DELETE of ActionHistoryModel rows.
    - Tombstones: DocumentModel rows are never deleted; removal sets
      is_tombstoned.
    - UNIQUE(document_id, sequence) on history rejects two writers
      appending the same slot.
    - UNIQUE(document_id, signing_order) on assignments.

Failure modes:
    - ImmutabilityViolationError on history UPDATE/DELETE or document DELETE.
    - IntegrityError on duplicate document_key, history sequence or
      signing order.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dsm_kernel.db.base import Base, TrackedBase, UUIDString
from dsm_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from dsm_kernel.domain.workflow import (
        ActionHistoryEntry,
        Document,
        RoleAssignment,
        WorkflowRequirements,
    )


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DocumentModel(TrackedBase):
    """Persistent document: static requirements, revision and tombstone."""

    __tablename__ = "dsm_documents"

    __table_args__ = (
        Index("ix_dsm_documents_deal_id", "deal_id"),
        Index("ix_dsm_documents_group_id", "group_id"),
    )

    document_key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    group_id: Mapped[str] = mapped_column(String(50), nullable=False)
    deal_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    requires_buyer_lawyer_approval: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_buyer_signature: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_broker_approval: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_broker_signature: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_prepare: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_upload: Mapped[bool] = mapped_column(Boolean, default=False)
    is_electronic_signature: Mapped[bool] = mapped_column(Boolean, default=False)

    is_tombstoned: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    revision: Mapped[int] = mapped_column(default=0, nullable=False)

    role_assignments: Mapped[list[RoleAssignmentModel]] = relationship(
        back_populates="document",
        order_by="RoleAssignmentModel.signing_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    action_history: Mapped[list[ActionHistoryModel]] = relationship(
        back_populates="document",
        order_by="ActionHistoryModel.sequence",
        cascade="save-update, merge",
        lazy="selectin",
    )

    def apply_requirements(self, requirements: WorkflowRequirements) -> None:
        for name in requirements.field_names():
            setattr(self, name, getattr(requirements, name))

    def requirements_dto(self) -> WorkflowRequirements:
        from dsm_kernel.domain.workflow import WorkflowRequirements

        return WorkflowRequirements(**{
            name: bool(getattr(self, name))
            for name in WorkflowRequirements.field_names()
        })

    def to_dto(self) -> Document:
        """Convert ORM model to frozen domain DTO."""
        from dsm_kernel.domain.workflow import Document as DocumentDTO

        return DocumentDTO(
            id=self.document_key,
            name=self.name,
            group_id=self.group_id,
            requirements=self.requirements_dto(),
            role_assignments=tuple(a.to_dto() for a in self.role_assignments),
            action_history=tuple(h.to_dto() for h in self.action_history),
            deal_id=self.deal_id,
            is_tombstoned=self.is_tombstoned,
            revision=self.revision,
        )

    @classmethod
    def from_dto(cls, dto: Document) -> DocumentModel:
        """Create ORM model (with children) from domain DTO."""
        model = cls(
            document_key=dto.id,
            name=dto.name,
            group_id=dto.group_id,
            deal_id=dto.deal_id,
            is_tombstoned=dto.is_tombstoned,
            revision=dto.revision,
        )
        model.apply_requirements(dto.requirements)
        model.role_assignments = [
            RoleAssignmentModel.from_dto(a) for a in dto.role_assignments
        ]
        model.action_history = [
            ActionHistoryModel.from_dto(entry, sequence)
            for sequence, entry in enumerate(dto.action_history, start=1)
        ]
        return model


class RoleAssignmentModel(Base):
    """Persistent role assignment.  Replaced wholesale on config edits."""

    __tablename__ = "dsm_role_assignments"

    __table_args__ = (
        UniqueConstraint(
            "document_id", "signing_order",
            name="uq_dsm_role_assignments_order",
        ),
    )

    document_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("dsm_documents.id"), nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    signing_order: Mapped[int] = mapped_column(nullable=False)
    external_signing_reference: Mapped[str | None] = mapped_column(
        String(200), nullable=True,
    )

    document: Mapped[DocumentModel] = relationship(back_populates="role_assignments")

    def to_dto(self) -> RoleAssignment:
        from dsm_kernel.domain.workflow import Role, RoleAssignment as AssignmentDTO

        return AssignmentDTO(
            user_id=self.user_id,
            email=self.email,
            display_name=self.display_name,
            role=Role(self.role),
            signing_order=self.signing_order,
            external_signing_reference=self.external_signing_reference,
        )

    @classmethod
    def from_dto(cls, dto: RoleAssignment) -> RoleAssignmentModel:
        return cls(
            user_id=dto.user_id,
            email=dto.email,
            display_name=dto.display_name,
            role=dto.role.value,
            signing_order=dto.signing_order,
            external_signing_reference=dto.external_signing_reference,
        )


class ActionHistoryModel(Base):
    """Persistent action history entry. Append-only.

    ``id`` is the domain ``entry_id``; ``sequence`` is the 1-based position
    in the document's history.
    """

    __tablename__ = "dsm_action_history"

    __table_args__ = (
        UniqueConstraint(
            "document_id", "sequence",
            name="uq_dsm_action_history_sequence",
        ),
    )

    document_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("dsm_documents.id"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    action_type: Mapped[str] = mapped_column(String(20), nullable=False)
    performed_by_role: Mapped[str] = mapped_column(String(20), nullable=False)
    performed_by_email: Mapped[str] = mapped_column(String(320), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    note: Mapped[str] = mapped_column(Text, nullable=False, default="")
    target_action: Mapped[str | None] = mapped_column(String(20), nullable=True)
    target_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    document: Mapped[DocumentModel] = relationship(back_populates="action_history")

    def to_dto(self) -> ActionHistoryEntry:
        from dsm_kernel.domain.workflow import (
            ActionHistoryEntry as EntryDTO,
            ActionType,
            Role,
        )

        return EntryDTO(
            entry_id=self.id,
            action_type=ActionType(self.action_type),
            performed_by_role=Role(self.performed_by_role),
            performed_by_email=self.performed_by_email,
            timestamp=_as_utc(self.timestamp),
            note=self.note,
            target_action=ActionType(self.target_action) if self.target_action else None,
            target_email=self.target_email,
        )

    @classmethod
    def from_dto(cls, dto: ActionHistoryEntry, sequence: int) -> ActionHistoryModel:
        return cls(
            id=dto.entry_id,
            sequence=sequence,
            action_type=dto.action_type.value,
            performed_by_role=dto.performed_by_role.value,
            performed_by_email=dto.performed_by_email,
            timestamp=dto.timestamp,
            note=dto.note,
            target_action=dto.target_action.value if dto.target_action else None,
            target_email=dto.target_email,
        )


# =============================================================================
# ORM-Level Immutability
# =============================================================================


@event.listens_for(ActionHistoryModel, "before_update")
def prevent_history_update(mapper, connection, target):
    """Prevent updates to action history rows."""
    raise ImmutabilityViolationError(
        entity_type="ActionHistoryEntry",
        entity_id=str(target.id),
        reason="Action history is append-only -- cannot modify",
    )


@event.listens_for(ActionHistoryModel, "before_delete")
def prevent_history_delete(mapper, connection, target):
    """Prevent deletion of action history rows."""
    raise ImmutabilityViolationError(
        entity_type="ActionHistoryEntry",
        entity_id=str(target.id),
        reason="Action history is append-only -- cannot delete",
    )


@event.listens_for(DocumentModel, "before_delete")
def prevent_document_delete(mapper, connection, target):
    """Documents are tombstoned, never deleted."""
    raise ImmutabilityViolationError(
        entity_type="Document",
        entity_id=target.document_key,
        reason="Documents are tombstoned, not deleted",
    )
