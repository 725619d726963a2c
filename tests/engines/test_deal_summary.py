"""Tests for the deal-level completion summary."""

import pytest

from dsm_engines.deal_summary import (
    PENDING_DOCS_STATE,
    all_documents_complete,
    ready_for_funds_transfer,
    summarize_deal,
)
from dsm_kernel.domain.workflow import ActionType, Role
from tests.factories import (
    LAWYER,
    commitment_document,
    completed,
    entry,
    esign_buyer_document,
)


def _disputed(doc_id):
    return commitment_document(doc_id).with_entry(
        entry(ActionType.DISPUTE, LAWYER, Role.BUYER_LAWYER)
    )


def _in_progress(doc_id):
    return commitment_document(doc_id).with_entry(
        entry(ActionType.APPROVE, LAWYER, Role.BUYER_LAWYER)
    )


class TestSummarizeDeal:

    def test_empty_deal(self):
        summary = summarize_deal([])
        assert summary.total == 0
        assert summary.percent_complete == 0
        assert not summary.all_complete
        assert summary.message == "No documents configured"

    def test_counts_by_status(self):
        documents = [
            completed(esign_buyer_document("a")),
            _in_progress("b"),
            esign_buyer_document("c"),
            _disputed("d"),
        ]
        summary = summarize_deal(documents)
        assert (summary.total, summary.complete, summary.in_progress,
                summary.not_started, summary.disputed) == (4, 1, 1, 1, 1)
        assert summary.percent_complete == 25

    @pytest.mark.parametrize(
        "documents,message",
        [
            ([_disputed("a"), _in_progress("b")], "1 document disputed - review required"),
            ([_in_progress("a"), _in_progress("b")], "2 documents awaiting action"),
            ([esign_buyer_document("a"), completed(esign_buyer_document("b"))], "1 document not started"),
            ([completed(esign_buyer_document("a"))], "All documents complete"),
        ],
    )
    def test_message_priority(self, documents, message):
        assert summarize_deal(documents).message == message

    def test_all_complete(self):
        summary = summarize_deal([completed(esign_buyer_document("a"))])
        assert summary.all_complete
        assert summary.percent_complete == 100

    def test_tombstoned_not_counted(self):
        documents = [completed(esign_buyer_document("a")), esign_buyer_document("b").tombstoned()]
        summary = summarize_deal(documents)
        assert summary.total == 1
        assert summary.all_complete


class TestFundsTransferReadiness:

    def test_empty_deal_is_not_complete(self):
        assert not all_documents_complete([])
        assert not ready_for_funds_transfer([], PENDING_DOCS_STATE)

    def test_ready_when_collecting_and_complete(self):
        documents = [completed(esign_buyer_document("a"))]
        assert ready_for_funds_transfer(documents, PENDING_DOCS_STATE)

    def test_not_ready_in_other_deal_state(self):
        documents = [completed(esign_buyer_document("a"))]
        assert not ready_for_funds_transfer(documents, "funded")

    def test_not_ready_with_open_document(self):
        documents = [completed(esign_buyer_document("a")), esign_buyer_document("b")]
        assert not ready_for_funds_transfer(documents, PENDING_DOCS_STATE)
