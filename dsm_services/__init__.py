"""
dsm_services -- the stateful shell over the pure workflow engines.

Exposes the injectable ``WorkflowStore`` with its commands, change events
and the e-signature callback bridge.
"""

from dsm_services.esign_bridge import EsignCallback, EsignCallbackHandler
from dsm_services.events import ChangeType, DocumentChanged, EventPublisher
from dsm_services.workflow_store import (
    EditDocumentConfig,
    RecordAction,
    RecordActionResult,
    WorkflowStore,
)

__all__ = [
    "ChangeType",
    "DocumentChanged",
    "EditDocumentConfig",
    "EsignCallback",
    "EsignCallbackHandler",
    "EventPublisher",
    "RecordAction",
    "RecordActionResult",
    "WorkflowStore",
]
