"""
Tests for the workflow domain value objects.

Tests cover:
- Assignee identity matching (email vs role-only)
- Signing order sorting and renumbering
- WorkflowRequirements signature mode exclusivity (with_changes, reconcile_with)
- Document append-only history and revision bumps
"""

from dataclasses import FrozenInstanceError

import pytest

from dsm_kernel.domain.workflow import (
    ACTION_LABELS,
    ROLE_LABELS,
    SYSTEM_ASSIGNEE,
    ActionType,
    Assignee,
    DocumentState,
    DocumentStatus,
    Role,
    WorkflowRequirements,
    WorkflowStep,
    normalize_email,
    normalize_signing_order,
    sort_by_signing_order,
)
from tests.factories import BUYER, LAWYER, assignment, entry, make_document


class TestClosedVariants:

    def test_every_role_has_a_label(self):
        assert set(ROLE_LABELS) == set(Role)

    def test_every_action_has_a_label(self):
        assert set(ACTION_LABELS) == set(ActionType)

    def test_unknown_role_rejected(self):
        with pytest.raises(ValueError):
            Role("LANDLORD")


class TestAssignee:

    def test_email_match_is_case_insensitive(self):
        assignee = Assignee(role=Role.BUYER, email="Buyer@Example.com")
        assert assignee.matches("  buyer@example.COM ")

    def test_email_assignee_ignores_role(self):
        assignee = Assignee(role=Role.BUYER, email=BUYER)
        assert not assignee.matches(LAWYER, Role.BUYER)

    def test_role_only_matches_role(self):
        assignee = Assignee(role=Role.ADMIN, display_name="Admin")
        assert assignee.is_role_only
        assert assignee.matches("anyone@example.com", Role.ADMIN)
        assert not assignee.matches("anyone@example.com", Role.BROKER)
        assert not assignee.matches("anyone@example.com")

    def test_label_falls_back_to_email_then_role(self):
        assert Assignee(role=Role.BUYER, email=BUYER, display_name="Pat").label == "Pat"
        assert Assignee(role=Role.BUYER, email=BUYER).label == BUYER
        assert Assignee(role=Role.BROKER).label == "Broker"

    def test_system_assignee(self):
        assert SYSTEM_ASSIGNEE.role == Role.SYSTEM
        assert SYSTEM_ASSIGNEE.label == "System"

    def test_normalize_email_handles_none(self):
        assert normalize_email(None) == ""


class TestSigningOrder:

    def test_sort_is_stable_on_ties(self):
        first = assignment(Role.BUYER, 2, email="a@example.com")
        second = assignment(Role.BUYER, 2, email="b@example.com")
        lawyer = assignment(Role.BUYER_LAWYER, 1)
        assert sort_by_signing_order([first, second, lawyer]) == (lawyer, first, second)

    def test_normalize_renumbers_contiguously(self):
        lawyer = assignment(Role.BUYER_LAWYER, 5)
        buyer = assignment(Role.BUYER, 10)
        result = normalize_signing_order([buyer, lawyer])
        assert [(a.role, a.signing_order) for a in result] == [
            (Role.BUYER_LAWYER, 1),
            (Role.BUYER, 2),
        ]


class TestWorkflowRequirements:

    def test_defaults_are_all_false(self):
        requirements = WorkflowRequirements()
        assert not any(getattr(requirements, name) for name in requirements.field_names())

    def test_field_names(self):
        assert len(WorkflowRequirements.field_names()) == 7

    def test_enabling_upload_clears_esign(self):
        requirements = WorkflowRequirements(is_electronic_signature=True)
        updated = requirements.with_changes(requires_upload=True)
        assert updated.requires_upload
        assert not updated.is_electronic_signature

    def test_enabling_esign_clears_upload(self):
        requirements = WorkflowRequirements(requires_upload=True)
        updated = requirements.with_changes(is_electronic_signature=True)
        assert updated.is_electronic_signature
        assert not updated.requires_upload

    def test_disabling_a_mode_leaves_the_other(self):
        requirements = WorkflowRequirements(requires_upload=True)
        updated = requirements.with_changes(is_electronic_signature=False)
        assert updated.requires_upload

    def test_both_modes_at_once_rejected(self):
        with pytest.raises(ValueError):
            WorkflowRequirements().with_changes(requires_upload=True, is_electronic_signature=True)

    def test_unknown_flag_rejected(self):
        with pytest.raises(ValueError, match="Unknown requirement flags"):
            WorkflowRequirements().with_changes(requires_notary=True)

    def test_with_changes_never_mutates(self):
        requirements = WorkflowRequirements()
        requirements.with_changes(requires_prepare=True)
        assert not requirements.requires_prepare

    def test_reconcile_keeps_newly_enabled_upload(self):
        previous = WorkflowRequirements(is_electronic_signature=True)
        proposal = WorkflowRequirements(requires_upload=True, is_electronic_signature=True)
        result = proposal.reconcile_with(previous)
        assert result.requires_upload and not result.is_electronic_signature

    def test_reconcile_keeps_newly_enabled_esign(self):
        previous = WorkflowRequirements(requires_upload=True)
        proposal = WorkflowRequirements(requires_upload=True, is_electronic_signature=True)
        result = proposal.reconcile_with(previous)
        assert result.is_electronic_signature and not result.requires_upload

    def test_reconcile_leaves_ambiguous_conflict(self):
        proposal = WorkflowRequirements(requires_upload=True, is_electronic_signature=True)
        assert proposal.reconcile_with(WorkflowRequirements()).has_exclusive_conflict

    def test_reconcile_without_conflict_is_identity(self):
        proposal = WorkflowRequirements(requires_buyer_signature=True)
        assert proposal.reconcile_with(WorkflowRequirements()) is proposal


class TestDocument:

    def test_with_entry_appends_and_bumps_revision(self):
        document = make_document()
        first = entry(ActionType.APPROVE, LAWYER, Role.BUYER_LAWYER)
        updated = document.with_entry(first)
        assert updated.action_history == (first,)
        assert updated.revision == document.revision + 1
        assert document.action_history == ()

    def test_with_config_keeps_history(self):
        first = entry(ActionType.APPROVE, LAWYER, Role.BUYER_LAWYER)
        document = make_document(history=(first,))
        updated = document.with_config(
            WorkflowRequirements(requires_buyer_signature=True),
            (assignment(Role.BUYER, 1),),
        )
        assert updated.action_history == (first,)
        assert updated.requirements.requires_buyer_signature
        assert updated.revision == 1

    def test_tombstoned_keeps_history(self):
        first = entry(ActionType.APPROVE, LAWYER, Role.BUYER_LAWYER)
        document = make_document(history=(first,)).tombstoned()
        assert document.is_tombstoned
        assert document.action_history == (first,)

    def test_document_is_frozen(self):
        document = make_document()
        with pytest.raises(FrozenInstanceError):
            document.name = "renamed"

    def test_entries_get_distinct_ids(self):
        first = entry(ActionType.APPROVE, LAWYER, Role.BUYER_LAWYER)
        second = entry(ActionType.APPROVE, LAWYER, Role.BUYER_LAWYER)
        assert first.entry_id != second.entry_id


class TestDocumentState:

    def test_pending_step(self):
        step = WorkflowStep(ActionType.ESIGN, Assignee(role=Role.BUYER, email=BUYER))
        state = DocumentState(
            next_action=ActionType.ESIGN,
            next_assignee=step.assignee,
            is_complete=False,
            status=DocumentStatus.NOT_STARTED,
            steps=(step,),
        )
        assert state.pending_step == step

    def test_complete_state_has_no_pending_step(self):
        state = DocumentState(
            next_action=ActionType.COMPLETE,
            next_assignee=SYSTEM_ASSIGNEE,
            is_complete=True,
            status=DocumentStatus.COMPLETE,
        )
        assert state.pending_step is None
