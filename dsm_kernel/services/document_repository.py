"""
DocumentRepository -- durable storage for workflow documents.

Responsibility:
    Load document snapshots and persist the three kinds of mutation the
    workflow store performs: appending a history entry, replacing static
    configuration, and tombstoning.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by ``dsm_services.workflow_store.WorkflowStore`` inside its
    per-document lock, after a command has been validated.

Invariants enforced:
    - Optimistic revision check: every write locks the document row
      (``SELECT ... FOR UPDATE``) and compares the stored revision with
      the revision the caller derived its change from.
    - History rows are only ever inserted; the ORM listeners in
      ``dsm_kernel.models.document`` forbid updates and deletes.
    - One transaction per call: a failed write leaves nothing behind.

Failure modes:
    - OptimisticLockError: the stored revision moved (another process
      wrote first), or a concurrent writer took the same history slot.
    - UnknownDocumentError: the document row does not exist.
    - DuplicateDocumentError: insert of an id that is already stored.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from dsm_kernel.db.engine import session_scope
from dsm_kernel.domain.workflow import ActionHistoryEntry, Document
from dsm_kernel.exceptions import (
    DuplicateDocumentError,
    OptimisticLockError,
    UnknownDocumentError,
)
from dsm_kernel.logging_config import get_logger
from dsm_kernel.models.document import (
    ActionHistoryModel,
    DocumentModel,
    RoleAssignmentModel,
)

logger = get_logger("services.document_repository")


@runtime_checkable
class DocumentRepository(Protocol):
    """Persistence port used by the workflow store."""

    def load_documents(self, deal_id: str | None = None) -> list[Document]: ...

    def load_document(self, document_id: str) -> Document | None: ...

    def insert_document(self, document: Document) -> None: ...

    def append_action(
        self,
        document: Document,
        entry: ActionHistoryEntry,
        expected_revision: int,
    ) -> None: ...

    def save_config(self, document: Document, expected_revision: int) -> None: ...

    def tombstone(self, document: Document, expected_revision: int) -> None: ...


class SqlDocumentRepository:
    """SQLAlchemy implementation of ``DocumentRepository``."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load_documents(self, deal_id: str | None = None) -> list[Document]:
        with session_scope(self._session_factory) as session:
            stmt = select(DocumentModel).order_by(
                DocumentModel.group_id, DocumentModel.created_at, DocumentModel.document_key,
            )
            if deal_id is not None:
                stmt = stmt.where(DocumentModel.deal_id == deal_id)
            return [row.to_dto() for row in session.scalars(stmt)]

    def load_document(self, document_id: str) -> Document | None:
        with session_scope(self._session_factory) as session:
            row = session.scalars(
                select(DocumentModel).where(DocumentModel.document_key == document_id)
            ).one_or_none()
            return row.to_dto() if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_document(self, document: Document) -> None:
        try:
            with session_scope(self._session_factory) as session:
                session.add(DocumentModel.from_dto(document))
        except IntegrityError as exc:
            raise DuplicateDocumentError(document.id) from exc
        logger.info(
            "document_persisted",
            extra={"document_id": document.id, "revision": document.revision},
        )

    def append_action(
        self,
        document: Document,
        entry: ActionHistoryEntry,
        expected_revision: int,
    ) -> None:
        """Insert ``entry`` as the next history row and bump the revision."""
        try:
            with session_scope(self._session_factory) as session:
                row = self._lock_row(session, document.id, expected_revision)
                history_row = ActionHistoryModel.from_dto(entry, len(document.action_history))
                history_row.document_id = row.id
                session.add(history_row)
                row.revision = document.revision
        except IntegrityError as exc:
            raise OptimisticLockError(
                "Document", document.id, expected_revision=expected_revision,
            ) from exc
        logger.debug(
            "history_entry_persisted",
            extra={
                "document_id": document.id,
                "action_type": entry.action_type.value,
                "revision": document.revision,
            },
        )

    def save_config(self, document: Document, expected_revision: int) -> None:
        """Replace requirements and role assignments; history is untouched."""
        with session_scope(self._session_factory) as session:
            row = self._lock_row(session, document.id, expected_revision)
            row.apply_requirements(document.requirements)
            row.role_assignments.clear()
            # Old signing orders must be gone before the new ones land.
            session.flush()
            row.role_assignments.extend(
                RoleAssignmentModel.from_dto(a) for a in document.role_assignments
            )
            row.revision = document.revision

    def tombstone(self, document: Document, expected_revision: int) -> None:
        with session_scope(self._session_factory) as session:
            row = self._lock_row(session, document.id, expected_revision)
            row.is_tombstoned = True
            row.revision = document.revision

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _lock_row(session: Session, document_id: str, expected_revision: int) -> DocumentModel:
        row = session.scalars(
            select(DocumentModel)
            .where(DocumentModel.document_key == document_id)
            .with_for_update()
        ).one_or_none()
        if row is None:
            raise UnknownDocumentError(document_id)
        if row.revision != expected_revision:
            logger.warning(
                "revision_mismatch",
                extra={
                    "document_id": document_id,
                    "expected_revision": expected_revision,
                    "actual_revision": row.revision,
                },
            )
            raise OptimisticLockError(
                "Document",
                document_id,
                expected_revision=expected_revision,
                actual_revision=row.revision,
            )
        return row

