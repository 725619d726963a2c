"""
Module: dsm_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    workflow engines.  This is the canonical import surface for higher
    layers (dsm_config, dsm_services).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import dsm_kernel.domain and dsm_kernel.logging_config
    (and sibling engine modules).  MUST NOT import dsm_services,
    dsm_config or SQLAlchemy.

Invariants enforced:
    - Purity: engines never read the clock.  Timestamps arrive inside
      the history entries the caller passes in.
    - Determinism: identical inputs always produce identical outputs.
    - Totality: derivation functions never raise; validation is a
      separate function whose result the caller acts on.

Audit relevance:
    Aggregation entry points are traced via ``@traced_engine``
    (see ``dsm_engines.tracer``), emitting DSM_ENGINE_TRACE records.

Usage:
    from dsm_engines import derive_state, aggregate_group, build_queue
"""

from dsm_kernel.logging_config import get_logger

logger = get_logger("engines")

from dsm_engines.action_queue import (
    action_status_text,
    build_queue,
    has_pending_actions,
    requires_signature,
)
from dsm_engines.config_rules import validate_document_config
from dsm_engines.deal_summary import (
    all_documents_complete,
    ready_for_funds_transfer,
    summarize_deal,
)
from dsm_engines.group_aggregator import (
    aggregate_group,
    aggregate_groups,
    percent_of,
)
from dsm_engines.state_machine import (
    REQUIRED_ACTION_TABLE,
    build_workflow_steps,
    derive_document_state,
    derive_state,
    required_action_for,
)
from dsm_engines.tracer import traced_engine

__all__ = [
    "REQUIRED_ACTION_TABLE",
    "action_status_text",
    "aggregate_group",
    "aggregate_groups",
    "all_documents_complete",
    "build_queue",
    "build_workflow_steps",
    "derive_document_state",
    "derive_state",
    "has_pending_actions",
    "percent_of",
    "ready_for_funds_transfer",
    "required_action_for",
    "requires_signature",
    "summarize_deal",
    "traced_engine",
    "validate_document_config",
]
