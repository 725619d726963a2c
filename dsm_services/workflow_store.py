"""
WorkflowStore -- the stateful shell around the pure workflow engines.

Responsibility:
    Hold the current set of documents, accept commands that append to a
    document's action history or replace its static configuration, and
    answer queries by running the pure engines over an immutable snapshot.
    Publishes a ``DocumentChanged`` event after every committed command.

Architecture position:
    Services -- imperative shell.  The only component with mutable state.
    Imports kernel domain types, the engines and (optionally) a kernel
    ``DocumentRepository`` for durability.  Explicitly constructed and
    injected; there is no module-level instance.

Invariants enforced:
    - Per-document serialization: every command runs under that
      document's lock, so two ``RecordAction`` commands aimed at the same
      pending step cannot both succeed.  Read-modify-write edits such as
      ``set_requirement_flags`` read the current document under the lock.
    - Event order: ``DocumentChanged`` is published before the document's
      lock is released, so one document's events arrive in revision order.
      The lock is re-entrant; a listener may issue further commands.
    - Seeded documents pass the same validation as ``add_document``.
    - Validate, persist, then swap: in-memory state changes only after the
      repository accepted the write; a rejected command changes nothing.
    - Mutual exclusivity of signature modes: edits are reconciled and
      validated before storage, so stored requirements never have both
      ``requires_upload`` and ``is_electronic_signature``.
    - Signing order is renumbered to 1..n on every configuration change.
    - History is append-only; configuration edits never touch it.

Failure modes:
    - ActionConflictError: action or actor does not match the pending step,
      the document is complete, or a concurrent writer won.  Carries the
      authoritative current state.
    - ConfigurationError: requirements / assignments fail validation.
    - UnknownDocumentError / DocumentTombstonedError /
      DuplicateDocumentError: command targets the wrong document.

Usage:
    store = WorkflowStore(documents, clock=SystemClock())
    store.record_action(RecordAction(
        document_id="deal-42:commitment_letter",
        action_type=ActionType.APPROVE,
        performed_by_email="lawyer@example.com",
    ))
    view = store.get_pending_actions("buyer@example.com")
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace

from dsm_engines.action_queue import build_queue
from dsm_engines.config_rules import validate_document_config
from dsm_engines.deal_summary import ready_for_funds_transfer, summarize_deal
from dsm_engines.group_aggregator import aggregate_group, aggregate_groups
from dsm_engines.state_machine import derive_document_state
from dsm_kernel.domain.clock import Clock, SystemClock
from dsm_kernel.domain.views import DealSummary, DocumentGroup, PendingActionView
from dsm_kernel.domain.workflow import (
    ActionHistoryEntry,
    ActionType,
    ConfigIssue,
    Document,
    DocumentState,
    Role,
    RoleAssignment,
    WorkflowRequirements,
    normalize_email,
    normalize_signing_order,
)
from dsm_kernel.exceptions import (
    ActionConflictError,
    ConfigurationError,
    DocumentTombstonedError,
    DuplicateDocumentError,
    OptimisticLockError,
    UnknownDocumentError,
)
from dsm_kernel.logging_config import LogContext, get_logger
from dsm_kernel.services.document_repository import DocumentRepository
from dsm_services.events import ChangeType, DocumentChanged, EventPublisher, Listener

logger = get_logger("services.workflow_store")


# =========================================================================
# Commands and results
# =========================================================================


@dataclass(frozen=True)
class RecordAction:
    """Record that ``performed_by_email`` took ``action_type`` on a document.

    ``performed_by_role`` defaults to the pending step's role.  For a
    ``DISPUTE``, ``target_action`` / ``target_email`` name a previously
    satisfied step to reopen; without them the pending step is disputed.
    """

    document_id: str
    action_type: ActionType
    performed_by_email: str
    performed_by_role: Role | None = None
    note: str = ""
    target_action: ActionType | None = None
    target_email: str | None = None


@dataclass(frozen=True)
class EditDocumentConfig:
    """Replace a document's requirements and/or role assignments.

    ``None`` leaves that part unchanged.
    """

    document_id: str
    performed_by_email: str
    requirements: WorkflowRequirements | None = None
    role_assignments: tuple[RoleAssignment, ...] | None = None


@dataclass(frozen=True)
class RecordActionResult:
    document: Document
    entry: ActionHistoryEntry
    state: DocumentState
    previous_state: DocumentState


# =========================================================================
# Store
# =========================================================================


class WorkflowStore:
    """In-process document store with per-document command serialization."""

    def __init__(
        self,
        documents: Iterable[Document] = (),
        *,
        clock: Clock | None = None,
        repository: DocumentRepository | None = None,
        publisher: EventPublisher | None = None,
    ):
        """Seeded documents are validated and renumbered like ``add_document``.

        Raises:
            ConfigurationError: a seeded document fails validation.
            DuplicateDocumentError: two seeded documents share an id.
        """
        self._clock = clock or SystemClock()
        self._repository = repository
        self._publisher = publisher or EventPublisher()
        self._registry_lock = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}
        self._documents: dict[str, Document] = {}
        for document in documents:
            document = self._accepted(document)
            if document.id in self._documents:
                raise DuplicateDocumentError(document.id)
            self._documents[document.id] = document

    @classmethod
    def from_repository(
        cls,
        repository: DocumentRepository,
        *,
        deal_id: str | None = None,
        clock: Clock | None = None,
        publisher: EventPublisher | None = None,
    ) -> WorkflowStore:
        """Build a store primed with the repository's stored documents."""
        documents = repository.load_documents(deal_id)
        logger.info(
            "store_loaded",
            extra={"deal_id": deal_id, "document_count": len(documents)},
        )
        return cls(documents, clock=clock, repository=repository, publisher=publisher)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for ``DocumentChanged``; returns unsubscribe."""
        return self._publisher.subscribe(listener)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def add_document(self, document: Document) -> DocumentState:
        """Register a newly configured document.

        Raises:
            DuplicateDocumentError: the id is already registered.
            ConfigurationError: the configuration fails validation.
        """
        document = self._accepted(document)
        with self._lock_for(document.id):
            with self._registry_lock:
                if document.id in self._documents:
                    raise DuplicateDocumentError(document.id)
            if self._repository is not None:
                self._repository.insert_document(document)
            with self._registry_lock:
                self._documents[document.id] = document

            state = derive_document_state(document)
            logger.info(
                "document_added",
                extra={
                    "document_id": document.id,
                    "group_id": document.group_id,
                    "deal_id": document.deal_id,
                },
            )
            self._publish(ChangeType.DOCUMENT_ADDED, document, state, None)
        return state

    def record_action(self, command: RecordAction) -> RecordActionResult:
        """Append an action to a document's history.

        Raises:
            UnknownDocumentError: no such document.
            DocumentTombstonedError: the document was removed.
            ActionConflictError: the action or actor is not the pending
                step, or a concurrent writer advanced the document first.
        """
        with LogContext.bind(
            document_id=command.document_id,
            actor_email=command.performed_by_email,
        ):
            with self._lock_for(command.document_id):
                current = self._require_live(command.document_id)
                previous_state = derive_document_state(current)
                entry = self._build_entry(current, previous_state, command)
                updated = current.with_entry(entry)

                if self._repository is not None:
                    try:
                        self._repository.append_action(updated, entry, current.revision)
                    except OptimisticLockError:
                        fresh = self._reload(command.document_id)
                        raise self._conflict(
                            command, derive_document_state(fresh),
                            "document was changed by another writer",
                        ) from None

                with self._registry_lock:
                    self._documents[updated.id] = updated

                state = derive_document_state(updated)
                logger.info(
                    "action_recorded",
                    extra={
                        "action_type": entry.action_type.value,
                        "performed_by_role": entry.performed_by_role.value,
                        "next_action": state.next_action.value,
                        "status": state.status.value,
                        "revision": updated.revision,
                    },
                )
                if state.is_complete and not previous_state.is_complete:
                    logger.info("document_completed", extra={"group_id": updated.group_id})

                self._publish(ChangeType.ACTION_RECORDED, updated, state, previous_state)

        return RecordActionResult(
            document=updated,
            entry=entry,
            state=state,
            previous_state=previous_state,
        )

    def edit_document_config(self, command: EditDocumentConfig) -> DocumentState:
        """Replace static configuration; history is never touched.

        A replacement that switches on one signature mode while the other
        is still on keeps the newly switched-on mode.

        Raises:
            UnknownDocumentError / DocumentTombstonedError
            ConfigurationError: the resulting configuration is invalid.
            OptimisticLockError: persistence saw a newer revision.
        """
        proposal = command.requirements

        def resolve(current: WorkflowRequirements) -> WorkflowRequirements:
            if proposal is None:
                return current
            return proposal.reconcile_with(current)

        return self._edit_locked(
            command.document_id,
            command.performed_by_email,
            resolve,
            command.role_assignments,
        )

    def set_requirement_flags(
        self,
        document_id: str,
        performed_by_email: str,
        **changes: bool,
    ) -> DocumentState:
        """Toggle individual requirement flags (see ``WorkflowRequirements.with_changes``).

        The toggle is applied to the requirements current at the moment the
        document lock is taken, so concurrent toggles of different flags
        all survive.
        """
        return self._edit_locked(
            document_id,
            performed_by_email,
            lambda current: current.with_changes(**changes),
            None,
        )

    def tombstone_document(self, document_id: str, performed_by_email: str) -> Document:
        """Remove a document from its deal, keeping its full history."""
        with LogContext.bind(document_id=document_id, actor_email=performed_by_email):
            with self._lock_for(document_id):
                current = self._require_live(document_id)
                previous_state = derive_document_state(current)
                updated = current.tombstoned()
                if self._repository is not None:
                    try:
                        self._repository.tombstone(updated, current.revision)
                    except OptimisticLockError:
                        self._reload(document_id)
                        raise
                with self._registry_lock:
                    self._documents[document_id] = updated
                logger.info("document_tombstoned", extra={"group_id": updated.group_id})

                self._publish(
                    ChangeType.DOCUMENT_TOMBSTONED,
                    updated,
                    derive_document_state(updated),
                    previous_state,
                )
        return updated

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def snapshot(self) -> tuple[Document, ...]:
        """Immutable view of every document, tombstoned ones included."""
        with self._registry_lock:
            return tuple(self._documents.values())

    def documents_for_deal(self, deal_id: str) -> tuple[Document, ...]:
        return tuple(doc for doc in self.snapshot() if doc.deal_id == deal_id)

    def get_document(self, document_id: str) -> Document:
        with self._registry_lock:
            document = self._documents.get(document_id)
        if document is None:
            raise UnknownDocumentError(document_id)
        return document

    def get_document_state(self, document_id: str) -> DocumentState:
        return derive_document_state(self.get_document(document_id))

    def get_group_state(self, group_id: str, deal_id: str | None = None) -> DocumentGroup:
        return aggregate_group(self._scope(deal_id), group_id)

    def get_groups(self, deal_id: str | None = None) -> tuple[DocumentGroup, ...]:
        return aggregate_groups(self._scope(deal_id))

    def get_pending_actions(
        self,
        viewer_email: str,
        deal_id: str | None = None,
    ) -> PendingActionView:
        return build_queue(self._scope(deal_id), viewer_email)

    def get_deal_summary(self, deal_id: str | None = None) -> DealSummary:
        return summarize_deal(self._scope(deal_id))

    def is_ready_for_funds_transfer(self, deal_id: str, deal_state: str) -> bool:
        return ready_for_funds_transfer(self.documents_for_deal(deal_id), deal_state)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _accepted(self, document: Document) -> Document:
        """Validate a new document's configuration and renumber its signing order."""
        issues = validate_document_config(document.requirements, document.role_assignments)
        if issues:
            self._log_config_rejected(document.id, issues)
            raise ConfigurationError(document.id, issues)
        return replace(
            document,
            role_assignments=normalize_signing_order(document.role_assignments),
        )

    def _edit_locked(
        self,
        document_id: str,
        performed_by_email: str,
        resolve_requirements: Callable[[WorkflowRequirements], WorkflowRequirements],
        role_assignments: tuple[RoleAssignment, ...] | None,
    ) -> DocumentState:
        with LogContext.bind(document_id=document_id, actor_email=performed_by_email):
            with self._lock_for(document_id):
                current = self._require_live(document_id)
                previous_state = derive_document_state(current)

                try:
                    requirements = resolve_requirements(current.requirements)
                except ValueError as exc:
                    issues = (_issue_from_value_error(exc),)
                    self._log_config_rejected(document_id, issues)
                    raise ConfigurationError(document_id, issues) from exc
                assignments = current.role_assignments
                if role_assignments is not None:
                    assignments = tuple(role_assignments)

                issues = validate_document_config(requirements, assignments)
                if issues:
                    self._log_config_rejected(document_id, issues)
                    raise ConfigurationError(document_id, issues)

                updated = current.with_config(requirements, normalize_signing_order(assignments))
                if self._repository is not None:
                    try:
                        self._repository.save_config(updated, current.revision)
                    except OptimisticLockError:
                        self._reload(document_id)
                        raise

                with self._registry_lock:
                    self._documents[updated.id] = updated

                state = derive_document_state(updated)
                logger.info(
                    "document_config_edited",
                    extra={
                        "next_action": state.next_action.value,
                        "status": state.status.value,
                        "revision": updated.revision,
                    },
                )
                self._publish(ChangeType.CONFIG_EDITED, updated, state, previous_state)
        return state

    def _scope(self, deal_id: str | None) -> tuple[Document, ...]:
        if deal_id is None:
            return self.snapshot()
        return self.documents_for_deal(deal_id)

    def _lock_for(self, document_id: str) -> threading.RLock:
        with self._registry_lock:
            return self._locks.setdefault(document_id, threading.RLock())

    def _require_live(self, document_id: str) -> Document:
        document = self.get_document(document_id)
        if document.is_tombstoned:
            raise DocumentTombstonedError(document_id)
        return document

    def _reload(self, document_id: str) -> Document:
        """Replace the in-memory copy with the repository's."""
        fresh = self._repository.load_document(document_id) if self._repository else None
        if fresh is None:
            return self.get_document(document_id)
        with self._registry_lock:
            self._documents[document_id] = fresh
        logger.warning("document_reloaded", extra={"revision": fresh.revision})
        return fresh

    def _build_entry(
        self,
        document: Document,
        state: DocumentState,
        command: RecordAction,
    ) -> ActionHistoryEntry:
        if state.is_complete:
            raise self._conflict(command, state, "document is already complete")

        assignee = state.next_assignee
        if not assignee.matches(command.performed_by_email, command.performed_by_role):
            raise self._conflict(
                command, state, f"pending step is assigned to {assignee.label}",
            )

        if command.action_type == ActionType.DISPUTE:
            if command.target_action is not None and not _has_satisfied_step(
                state, command.target_action, command.target_email,
            ):
                raise self._conflict(command, state, "no completed step matches the dispute")
        elif command.action_type != state.next_action:
            raise self._conflict(
                command, state, f"pending action is {state.next_action.value}",
            )

        return ActionHistoryEntry(
            action_type=command.action_type,
            performed_by_role=command.performed_by_role or assignee.role,
            performed_by_email=command.performed_by_email,
            timestamp=self._clock.now(),
            note=command.note,
            target_action=command.target_action,
            target_email=command.target_email,
        )

    def _conflict(
        self,
        command: RecordAction,
        state: DocumentState,
        reason: str,
    ) -> ActionConflictError:
        logger.warning(
            "action_conflict",
            extra={
                "attempted_action": command.action_type.value,
                "next_action": state.next_action.value,
                "reason": reason,
            },
        )
        return ActionConflictError(
            document_id=command.document_id,
            attempted_action=command.action_type.value,
            attempted_by=command.performed_by_email,
            current_state=state,
            reason=reason,
        )

    def _log_config_rejected(
        self,
        document_id: str,
        issues: tuple[ConfigIssue, ...],
    ) -> None:
        logger.warning(
            "document_config_rejected",
            extra={
                "document_id": document_id,
                "issue_codes": [issue.code for issue in issues],
            },
        )

    def _publish(
        self,
        change_type: ChangeType,
        document: Document,
        state: DocumentState,
        previous_state: DocumentState | None,
    ) -> None:
        self._publisher.publish(
            DocumentChanged(
                change_type=change_type,
                document=document,
                state=state,
                previous_state=previous_state,
                occurred_at=self._clock.now(),
            )
        )


def _has_satisfied_step(
    state: DocumentState,
    action_type: ActionType,
    email: str | None,
) -> bool:
    target = normalize_email(email)
    for step in state.steps:
        if not step.is_satisfied or step.action_type != action_type:
            continue
        if not target or step.assignee.is_role_only:
            return True
        if normalize_email(step.assignee.email) == target:
            return True
    return False


def _issue_from_value_error(exc: ValueError) -> ConfigIssue:
    return ConfigIssue(code="INVALID_REQUIREMENTS", message=str(exc), field="requirements")
