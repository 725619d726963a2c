"""
E-signature callback bridge (``dsm_services.esign_bridge``).

Responsibility:
    Translate completion callbacks from the e-signature provider into
    ``RecordAction`` commands on the workflow store.  The engine never
    calls the provider; the provider's own signing order is informational
    only and the store's signing order decides who may act.

Architecture position:
    Services -- adapter at the e-signature collaborator boundary.

Invariants enforced:
    - Only terminal "done" statuses produce an action; pending, draft and
      rejected statuses never touch history.
    - Idempotence: a callback whose action is already in the history is a
      duplicate delivery and is acknowledged without a second entry.

Failure modes:
    - ActionConflictError propagates for out-of-order callbacks (the
      provider reports a signer the store is not yet waiting on).
    - UnknownDocumentError propagates for callbacks about documents the
      store does not hold.
"""

from __future__ import annotations

from dataclasses import dataclass

from dsm_kernel.domain.workflow import (
    ActionType,
    Document,
    DocumentState,
    normalize_email,
)
from dsm_kernel.logging_config import LogContext, get_logger
from dsm_services.workflow_store import RecordAction, RecordActionResult, WorkflowStore

logger = get_logger("services.esign_bridge")

COMPLETED_STATUSES: frozenset[str] = frozenset({"COMPLETED", "SIGNED", "APPROVED"})
IGNORED_STATUSES: frozenset[str] = frozenset({"PENDING", "DRAFT", "REJECTED"})

# Provider recipient role -> action recorded on completion.
RECIPIENT_ROLE_ACTIONS: dict[str, ActionType] = {
    "SIGNER": ActionType.ESIGN,
    "APPROVER": ActionType.APPROVE,
}


@dataclass(frozen=True)
class EsignCallback:
    """One recipient status notification from the provider."""

    document_id: str
    recipient_email: str
    recipient_role: str
    status: str
    provider_document_id: str | None = None


def action_for_callback(callback: EsignCallback) -> ActionType | None:
    """The action a callback represents, or None when it records nothing."""
    status = callback.status.strip().upper()
    if status not in COMPLETED_STATUSES:
        return None
    return RECIPIENT_ROLE_ACTIONS.get(callback.recipient_role.strip().upper())


def _already_recorded(document: Document, action: ActionType, email: str) -> bool:
    actor = normalize_email(email)
    return any(
        entry.action_type == action and normalize_email(entry.performed_by_email) == actor
        for entry in document.action_history
    )


def _is_pending_for(state: DocumentState, action: ActionType, email: str) -> bool:
    # A disputed step may legitimately be signed again.
    return (
        not state.is_complete
        and state.next_action == action
        and state.next_assignee.matches(email)
    )


class EsignCallbackHandler:
    """Applies provider callbacks to a ``WorkflowStore``."""

    def __init__(self, store: WorkflowStore):
        self._store = store

    def handle(self, callback: EsignCallback) -> RecordActionResult | None:
        """Record the callback's action.

        Returns:
            The store result, or None when the callback carries no action
            or is a duplicate delivery.
        """
        with LogContext.bind(
            document_id=callback.document_id,
            actor_email=callback.recipient_email,
        ):
            action = action_for_callback(callback)
            if action is None:
                logger.info(
                    "esign_callback_ignored",
                    extra={
                        "status": callback.status,
                        "recipient_role": callback.recipient_role,
                        "provider_document_id": callback.provider_document_id,
                    },
                )
                return None

            document = self._store.get_document(callback.document_id)
            if _already_recorded(document, action, callback.recipient_email) and not _is_pending_for(
                self._store.get_document_state(document.id), action, callback.recipient_email,
            ):
                logger.info(
                    "esign_callback_duplicate",
                    extra={
                        "action_type": action.value,
                        "provider_document_id": callback.provider_document_id,
                    },
                )
                return None

            result = self._store.record_action(
                RecordAction(
                    document_id=callback.document_id,
                    action_type=action,
                    performed_by_email=callback.recipient_email,
                    note=_provider_note(callback),
                )
            )
            logger.info(
                "esign_callback_recorded",
                extra={
                    "action_type": action.value,
                    "provider_document_id": callback.provider_document_id,
                },
            )
            return result


def _provider_note(callback: EsignCallback) -> str:
    if callback.provider_document_id:
        return f"e-signature provider document {callback.provider_document_id}"
    return "e-signature provider callback"


__all__ = [
    "COMPLETED_STATUSES",
    "EsignCallback",
    "EsignCallbackHandler",
    "IGNORED_STATUSES",
    "action_for_callback",
]
