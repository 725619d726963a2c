"""
Tests for the WorkflowStore command/query shell.

Tests cover:
- add_document: validation, signing order renumbering, duplicates
- record_action: happy path, every conflict reason, state unchanged on reject
- edit_document_config / set_requirement_flags: signature mode exclusivity
- tombstone_document: history kept, further commands rejected
- Queries: group state, pending actions, deal summary, funds readiness
- DocumentChanged events and structured logs
"""

import pytest

from dsm_engines.deal_summary import PENDING_DOCS_STATE
from dsm_kernel.domain.views import GroupStatus
from dsm_kernel.domain.workflow import (
    ActionType,
    DocumentStatus,
    Role,
    WorkflowRequirements,
)
from dsm_kernel.exceptions import (
    ActionConflictError,
    ConfigurationError,
    DocumentTombstonedError,
    DuplicateDocumentError,
    UnknownDocumentError,
)
from dsm_services.events import ChangeType
from dsm_services.workflow_store import EditDocumentConfig, RecordAction, WorkflowStore
from tests.factories import (
    ADMIN,
    BROKER,
    BUYER,
    LAWYER,
    assignment,
    commitment_document,
    esign_buyer_document,
    make_document,
    upload_document,
)


@pytest.fixture
def store(deterministic_clock):
    return WorkflowStore(clock=deterministic_clock)


@pytest.fixture
def events(store):
    received = []
    store.subscribe(received.append)
    return received


def _approve(document_id, email=LAWYER):
    return RecordAction(document_id=document_id, action_type=ActionType.APPROVE, performed_by_email=email)


def _esign(document_id, email=BUYER):
    return RecordAction(document_id=document_id, action_type=ActionType.ESIGN, performed_by_email=email)


# =========================================================================
# add_document
# =========================================================================


class TestAddDocument:

    def test_add_returns_initial_state(self, store):
        state = store.add_document(commitment_document("doc"))
        assert state.next_action == ActionType.APPROVE
        assert store.get_document("doc").revision == 0

    def test_signing_order_renumbered(self, store):
        document = make_document(
            "doc",
            requirements=commitment_document().requirements,
            assignments=(assignment(Role.BUYER, 20), assignment(Role.BUYER_LAWYER, 10)),
        )
        store.add_document(document)
        orders = [(a.role, a.signing_order) for a in store.get_document("doc").sorted_assignments()]
        assert orders == [(Role.BUYER_LAWYER, 1), (Role.BUYER, 2)]

    def test_invalid_configuration_rejected(self, store):
        document = make_document(
            "doc",
            requirements=WorkflowRequirements(requires_buyer_signature=True),
        )
        with pytest.raises(ConfigurationError) as exc_info:
            store.add_document(document)
        assert [i.code for i in exc_info.value.issues] == ["MISSING_ROLE_ASSIGNMENT"]
        with pytest.raises(UnknownDocumentError):
            store.get_document("doc")

    def test_duplicate_rejected(self, store):
        store.add_document(esign_buyer_document("doc"))
        with pytest.raises(DuplicateDocumentError):
            store.add_document(esign_buyer_document("doc"))

    def test_constructor_rejects_duplicates(self):
        with pytest.raises(DuplicateDocumentError):
            WorkflowStore([esign_buyer_document("doc"), esign_buyer_document("doc")])

    def test_constructor_rejects_invalid_configuration(self):
        seeded = make_document(
            "doc",
            requirements=WorkflowRequirements(
                requires_buyer_signature=True,
                requires_broker_approval=True,
                requires_upload=True,
                is_electronic_signature=True,
            ),
            assignments=(assignment(Role.BUYER, 5), assignment(Role.BROKER, 5)),
        )
        with pytest.raises(ConfigurationError) as exc_info:
            WorkflowStore([seeded])
        codes = [issue.code for issue in exc_info.value.issues]
        assert "EXCLUSIVE_SIGNATURE_MODE" in codes
        assert "DUPLICATE_SIGNING_ORDER" in codes

    def test_constructor_renumbers_signing_order(self):
        seeded = make_document(
            "doc",
            requirements=WorkflowRequirements(
                requires_buyer_lawyer_approval=True,
                requires_buyer_signature=True,
                is_electronic_signature=True,
            ),
            assignments=(assignment(Role.BUYER, 9), assignment(Role.BUYER_LAWYER, 4)),
        )
        store = WorkflowStore([seeded])
        document = store.get_document("doc")
        assert [(a.role, a.signing_order) for a in document.sorted_assignments()] == [
            (Role.BUYER_LAWYER, 1),
            (Role.BUYER, 2),
        ]
        assert document.revision == seeded.revision


# =========================================================================
# record_action
# =========================================================================


class TestRecordAction:

    def test_single_buyer_completes(self, store, deterministic_clock):
        store.add_document(esign_buyer_document("doc"))
        result = store.record_action(_esign("doc"))

        assert result.state.is_complete
        assert not result.previous_state.is_complete
        assert result.entry.performed_by_role == Role.BUYER
        assert result.entry.timestamp == deterministic_clock.now()
        assert result.document.revision == 1
        assert store.get_document_state("doc").is_complete

    def test_lawyer_then_buyer(self, store):
        store.add_document(commitment_document("doc"))
        first = store.record_action(_approve("doc"))
        assert first.state.next_action == ActionType.ESIGN
        assert first.state.next_assignee.email == BUYER
        second = store.record_action(_esign("doc"))
        assert second.state.is_complete

    def test_wrong_action_rejected_and_state_unchanged(self, store):
        store.add_document(commitment_document("doc"))
        before = store.get_document("doc")

        with pytest.raises(ActionConflictError) as exc_info:
            store.record_action(_esign("doc", email=LAWYER))

        assert exc_info.value.current_state.next_action == ActionType.APPROVE
        assert store.get_document("doc") == before

    def test_wrong_actor_rejected_and_state_unchanged(self, store):
        store.add_document(commitment_document("doc"))
        before = store.get_document_state("doc")

        with pytest.raises(ActionConflictError) as exc_info:
            store.record_action(_approve("doc", email=BUYER))

        assert "Buyer Lawyer" in exc_info.value.reason
        assert exc_info.value.code == "ACTION_CONFLICT"
        assert store.get_document_state("doc") == before

    def test_actor_email_case_insensitive(self, store):
        store.add_document(esign_buyer_document("doc"))
        assert store.record_action(_esign("doc", email="BUYER@EXAMPLE.COM")).state.is_complete

    def test_complete_document_rejects_actions(self, store):
        store.add_document(esign_buyer_document("doc"))
        store.record_action(_esign("doc"))
        with pytest.raises(ActionConflictError, match="already complete"):
            store.record_action(_esign("doc"))
        assert len(store.get_document("doc").action_history) == 1

    def test_unknown_document(self, store):
        with pytest.raises(UnknownDocumentError):
            store.record_action(_esign("missing"))

    def test_role_only_step_requires_role(self, store):
        store.add_document(
            make_document("doc", requirements=WorkflowRequirements(requires_prepare=True))
        )
        with pytest.raises(ActionConflictError):
            store.record_action(
                RecordAction("doc", ActionType.PREPARE, ADMIN),
            )
        result = store.record_action(
            RecordAction("doc", ActionType.PREPARE, ADMIN, performed_by_role=Role.ADMIN),
        )
        assert result.state.is_complete

    def test_upload_sequence(self, store):
        store.add_document(upload_document("doc"))
        store.record_action(RecordAction("doc", ActionType.UPLOAD, BROKER))
        store.record_action(RecordAction("doc", ActionType.APPROVE, BROKER))
        result = store.record_action(RecordAction("doc", ActionType.UPLOAD_SIGNED, BUYER))
        assert result.state.is_complete


class TestDisputes:

    def test_buyer_disputes_lawyer_approval(self, store):
        store.add_document(commitment_document("doc"))
        store.record_action(_approve("doc"))

        result = store.record_action(
            RecordAction(
                "doc", ActionType.DISPUTE, BUYER,
                target_action=ActionType.APPROVE, target_email=LAWYER,
                note="wrong closing date",
            )
        )
        assert result.state.status == DocumentStatus.DISPUTED
        assert result.state.next_action == ActionType.APPROVE
        assert result.entry.note == "wrong closing date"

        store.record_action(_approve("doc"))
        assert store.get_document_state("doc").next_action == ActionType.ESIGN

    def test_dispute_of_unsatisfied_step_rejected(self, store):
        store.add_document(commitment_document("doc"))
        store.record_action(_approve("doc"))
        with pytest.raises(ActionConflictError, match="no completed step"):
            store.record_action(
                RecordAction("doc", ActionType.DISPUTE, BUYER, target_action=ActionType.ESIGN)
            )

    def test_dispute_only_by_pending_assignee(self, store):
        store.add_document(commitment_document("doc"))
        store.record_action(_approve("doc"))
        with pytest.raises(ActionConflictError):
            store.record_action(
                RecordAction("doc", ActionType.DISPUTE, LAWYER, target_action=ActionType.APPROVE)
            )


# =========================================================================
# Configuration edits
# =========================================================================


class TestEditDocumentConfig:

    def test_enabling_upload_clears_esign(self, store):
        store.add_document(esign_buyer_document("doc"))
        current = store.get_document("doc").requirements
        proposal = WorkflowRequirements(
            requires_buyer_signature=True,
            requires_upload=True,
            is_electronic_signature=current.is_electronic_signature,
        )
        state = store.edit_document_config(EditDocumentConfig("doc", ADMIN, requirements=proposal))

        stored = store.get_document("doc").requirements
        assert stored.requires_upload
        assert not stored.is_electronic_signature
        # No broker is assigned, so the upload step is role-only.
        assert state.next_action == ActionType.UPLOAD
        assert state.next_assignee.role == Role.BROKER
        assert state.next_assignee.is_role_only

    def test_set_requirement_flags_toggles_mode(self, store):
        store.add_document(esign_buyer_document("doc"))
        store.set_requirement_flags("doc", ADMIN, requires_upload=True)
        stored = store.get_document("doc").requirements
        assert stored.requires_upload and not stored.is_electronic_signature

    def test_set_both_modes_rejected(self, store):
        store.add_document(esign_buyer_document("doc"))
        with pytest.raises(ConfigurationError) as exc_info:
            store.set_requirement_flags(
                "doc", ADMIN, requires_upload=True, is_electronic_signature=True,
            )
        assert exc_info.value.issues[0].code == "INVALID_REQUIREMENTS"
        assert store.get_document("doc").requirements.is_electronic_signature

    def test_ambiguous_full_replacement_rejected(self, store):
        store.add_document(
            make_document(
                "doc",
                requirements=WorkflowRequirements(requires_buyer_signature=True),
                assignments=(assignment(Role.BUYER, 1),),
            )
        )
        proposal = WorkflowRequirements(
            requires_buyer_signature=True, requires_upload=True, is_electronic_signature=True,
        )
        with pytest.raises(ConfigurationError) as exc_info:
            store.edit_document_config(EditDocumentConfig("doc", ADMIN, requirements=proposal))
        assert [i.code for i in exc_info.value.issues] == ["EXCLUSIVE_SIGNATURE_MODE"]
        assert not store.get_document("doc").requirements.requires_upload

    def test_edit_keeps_history(self, store):
        store.add_document(commitment_document("doc"))
        store.record_action(_approve("doc"))
        store.edit_document_config(
            EditDocumentConfig(
                "doc", ADMIN,
                role_assignments=(
                    assignment(Role.BUYER_LAWYER, 3),
                    assignment(Role.BUYER, 7, email="new.buyer@example.com"),
                ),
            )
        )
        document = store.get_document("doc")
        assert len(document.action_history) == 1
        assert [a.signing_order for a in document.sorted_assignments()] == [1, 2]
        state = store.get_document_state("doc")
        assert state.next_assignee.email == "new.buyer@example.com"

    def test_edit_rejects_missing_role(self, store):
        store.add_document(commitment_document("doc"))
        with pytest.raises(ConfigurationError):
            store.edit_document_config(
                EditDocumentConfig("doc", ADMIN, role_assignments=(assignment(Role.BUYER, 1),))
            )
        assert len(store.get_document("doc").role_assignments) == 2


# =========================================================================
# Tombstones
# =========================================================================


class TestTombstone:

    def test_tombstone_keeps_history_and_blocks_commands(self, store):
        store.add_document(commitment_document("doc"))
        store.record_action(_approve("doc"))
        removed = store.tombstone_document("doc", ADMIN)

        assert removed.is_tombstoned
        assert len(removed.action_history) == 1
        with pytest.raises(DocumentTombstonedError):
            store.record_action(_esign("doc"))
        with pytest.raises(DocumentTombstonedError):
            store.tombstone_document("doc", ADMIN)

    def test_tombstoned_document_leaves_group(self, store):
        store.add_document(esign_buyer_document("a"))
        store.add_document(esign_buyer_document("b"))
        store.record_action(_esign("a"))
        store.tombstone_document("b", ADMIN)
        group = store.get_group_state("mortgage")
        assert group.document_ids == ("a",)
        assert group.status == GroupStatus.COMPLETE


# =========================================================================
# Queries
# =========================================================================


class TestQueries:

    def test_group_state(self, store):
        for doc_id in ("a", "b", "c"):
            store.add_document(esign_buyer_document(doc_id))
        store.record_action(_esign("a"))
        group = store.get_group_state("mortgage")
        assert group.percent_complete == 33
        assert group.current_step_index == 1

    def test_empty_group(self, store):
        group = store.get_group_state("mortgage")
        assert group.percent_complete == 0
        assert group.status == GroupStatus.NOT_STARTED

    def test_pending_actions(self, store):
        store.add_document(esign_buyer_document("a"))
        store.add_document(commitment_document("b"))
        view = store.get_pending_actions(BUYER)
        assert [a.document_id for a in view.actions_assigned_to_viewer] == ["a"]
        assert [b.document_id for b in view.actions_blocking_on_others] == ["b"]

    def test_queries_scoped_by_deal(self, store):
        store.add_document(esign_buyer_document("a", deal_id="deal-1"))
        store.add_document(esign_buyer_document("b", deal_id="deal-2"))
        assert store.get_group_state("mortgage", deal_id="deal-1").document_ids == ("a",)
        assert len(store.get_pending_actions(BUYER, deal_id="deal-2").actions_assigned_to_viewer) == 1
        assert store.get_deal_summary("deal-1").total == 1
        assert [g.group_id for g in store.get_groups("deal-2")] == ["mortgage"]

    def test_funds_transfer_readiness(self, store):
        store.add_document(esign_buyer_document("a", deal_id="deal-1"))
        assert not store.is_ready_for_funds_transfer("deal-1", PENDING_DOCS_STATE)
        store.record_action(_esign("a"))
        assert store.is_ready_for_funds_transfer("deal-1", PENDING_DOCS_STATE)
        assert not store.is_ready_for_funds_transfer("deal-unknown", PENDING_DOCS_STATE)

    def test_snapshot_is_immutable_copy(self, store):
        store.add_document(esign_buyer_document("a"))
        snapshot = store.snapshot()
        store.record_action(_esign("a"))
        assert snapshot[0].action_history == ()


# =========================================================================
# Events and logging
# =========================================================================


class TestEvents:

    def test_events_for_each_command(self, store, events):
        store.add_document(esign_buyer_document("a"))
        store.record_action(_esign("a"))
        store.tombstone_document("a", ADMIN)
        assert [e.change_type for e in events] == [
            ChangeType.DOCUMENT_ADDED,
            ChangeType.ACTION_RECORDED,
            ChangeType.DOCUMENT_TOMBSTONED,
        ]
        assert events[1].completed
        assert events[1].document_id == "a"
        assert not events[2].completed

    def test_config_edit_event(self, store, events):
        store.add_document(esign_buyer_document("a"))
        store.set_requirement_flags("a", ADMIN, requires_upload=True)
        assert events[-1].change_type == ChangeType.CONFIG_EDITED

    def test_rejected_command_publishes_nothing(self, store, events):
        store.add_document(commitment_document("a"))
        with pytest.raises(ActionConflictError):
            store.record_action(_esign("a"))
        assert [e.change_type for e in events] == [ChangeType.DOCUMENT_ADDED]

    def test_failing_listener_does_not_undo_command(self, store, events, captured_logs):
        def broken(event):
            raise RuntimeError("listener down")

        store.subscribe(broken)
        store.add_document(esign_buyer_document("a"))
        assert store.get_document("a")
        assert len(events) == 1
        assert any(r["message"] == "event_listener_failed" for r in captured_logs())

    def test_listener_may_issue_commands(self, store, events):
        def sign_after_approval(event):
            if event.change_type == ChangeType.ACTION_RECORDED and not event.state.is_complete:
                store.record_action(_esign(event.document_id))

        store.subscribe(sign_after_approval)
        store.add_document(commitment_document("a"))
        store.record_action(_approve("a"))

        assert store.get_document_state("a").is_complete
        assert [e.document.revision for e in events] == [0, 1, 2]

    def test_unsubscribe(self, store):
        received = []
        unsubscribe = store.subscribe(received.append)
        unsubscribe()
        store.add_document(esign_buyer_document("a"))
        assert received == []


class TestLogging:

    def test_action_recorded_log_carries_context(self, store, captured_logs):
        store.add_document(esign_buyer_document("a"))
        store.record_action(_esign("a"))
        records = captured_logs()

        recorded = next(r for r in records if r["message"] == "action_recorded")
        assert recorded["document_id"] == "a"
        assert recorded["actor_email"] == BUYER
        assert recorded["action_type"] == "ESIGN"
        assert any(r["message"] == "document_completed" for r in records)

    def test_conflict_logged_as_warning(self, store, captured_logs):
        store.add_document(commitment_document("a"))
        with pytest.raises(ActionConflictError):
            store.record_action(_esign("a"))
        conflict = next(r for r in captured_logs() if r["message"] == "action_conflict")
        assert conflict["level"] == "WARNING"
        assert conflict["attempted_action"] == "ESIGN"
