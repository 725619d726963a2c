"""
Module: dsm_engines.deal_summary
Responsibility:
    Deal-level roll-up of document completion, and the "all documents
    complete" boolean a caller may use to decide whether the deal can
    move on to funds transfer.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Exposes a boolean for the ledger side; never calls the ledger.

Invariants enforced:
    - An empty deal is never "all complete".
    - Tombstoned documents are not counted.
"""

from __future__ import annotations

from collections.abc import Sequence

from dsm_kernel.domain.views import DealSummary
from dsm_kernel.domain.workflow import Document, DocumentStatus
from dsm_engines.group_aggregator import percent_of
from dsm_engines.state_machine import derive_document_state
from dsm_engines.tracer import traced_engine

# Deal lifecycle state in which documents are being collected.
PENDING_DOCS_STATE = "pending_docs"


def _plural(count: int) -> str:
    return f"{count} document{'s' if count != 1 else ''}"


def _summary_message(total: int, counts: dict[DocumentStatus, int]) -> str:
    if total == 0:
        return "No documents configured"
    if counts[DocumentStatus.DISPUTED]:
        return f"{_plural(counts[DocumentStatus.DISPUTED])} disputed - review required"
    if counts[DocumentStatus.IN_PROGRESS]:
        return f"{_plural(counts[DocumentStatus.IN_PROGRESS])} awaiting action"
    if counts[DocumentStatus.NOT_STARTED]:
        return f"{_plural(counts[DocumentStatus.NOT_STARTED])} not started"
    return "All documents complete"


@traced_engine("deal_summary", "1.0")
def summarize_deal(documents: Sequence[Document]) -> DealSummary:
    """Count live documents by derived status."""
    live = [doc for doc in documents if not doc.is_tombstoned]
    counts = {status: 0 for status in DocumentStatus}
    for doc in live:
        counts[derive_document_state(doc).status] += 1

    total = len(live)
    complete = counts[DocumentStatus.COMPLETE]
    return DealSummary(
        total=total,
        complete=complete,
        in_progress=counts[DocumentStatus.IN_PROGRESS],
        not_started=counts[DocumentStatus.NOT_STARTED],
        disputed=counts[DocumentStatus.DISPUTED],
        percent_complete=percent_of(complete, total),
        all_complete=total > 0 and complete == total,
        message=_summary_message(total, counts),
    )


def all_documents_complete(documents: Sequence[Document]) -> bool:
    live = [doc for doc in documents if not doc.is_tombstoned]
    if not live:
        return False
    return all(derive_document_state(doc).is_complete for doc in live)


def ready_for_funds_transfer(documents: Sequence[Document], deal_state: str) -> bool:
    """True only while collecting documents and every document is complete."""
    return deal_state == PENDING_DOCS_STATE and all_documents_complete(documents)
