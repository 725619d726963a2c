"""
Document change notifications (``dsm_services.events``).

Responsibility:
    Carry "document changed" notifications from the workflow store to
    subscribers, so consumers react to commands instead of polling.

Architecture position:
    Services -- stateful shell support.  Used only by ``WorkflowStore``.

Invariants enforced:
    - Events are published after a command has committed, while the
      store still holds that document's lock, so one document's events
      reach listeners in revision order.
    - A failing listener never undoes the command and never stops other
      listeners.
    - Subscription is explicit: ``subscribe`` returns the callable that
      removes the listener again.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from dsm_kernel.domain.workflow import Document, DocumentState
from dsm_kernel.logging_config import get_logger

logger = get_logger("services.events")


class ChangeType(str, Enum):
    DOCUMENT_ADDED = "document_added"
    ACTION_RECORDED = "action_recorded"
    CONFIG_EDITED = "config_edited"
    DOCUMENT_TOMBSTONED = "document_tombstoned"


@dataclass(frozen=True)
class DocumentChanged:
    """A committed change to one document, with its new derived state."""

    change_type: ChangeType
    document: Document
    state: DocumentState
    previous_state: DocumentState | None
    occurred_at: datetime

    @property
    def document_id(self) -> str:
        return self.document.id

    @property
    def completed(self) -> bool:
        """True when this change moved the document into COMPLETE."""
        was_complete = self.previous_state is not None and self.previous_state.is_complete
        return self.state.is_complete and not was_complete


Listener = Callable[[DocumentChanged], None]


class EventPublisher:
    """Synchronous fan-out of ``DocumentChanged`` events."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def publish(self, event: DocumentChanged) -> None:
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.error(
                    "event_listener_failed",
                    exc_info=True,
                    extra={
                        "document_id": event.document_id,
                        "change_type": event.change_type.value,
                    },
                )
