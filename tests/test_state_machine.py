"""Tests for payout run and adjustment state machines."""

import pytest

from comp_admin.errors import InvalidTransitionError
from comp_admin.services.state_machine import (
    AdjustmentStateMachine,
    PayoutRunStateMachine,
    PayoutRunStatus,
)


class TestPayoutRunStateMachine:
    """Test payout run transitions."""

    def test_valid_transitions(self):
        """The lifecycle only moves forward one step at a time."""
        assert PayoutRunStateMachine.can_transition("draft", "review") is True
        assert PayoutRunStateMachine.can_transition("review", "approved") is True
        assert PayoutRunStateMachine.can_transition("approved", "finalized") is True
        assert PayoutRunStateMachine.can_transition("finalized", "paid") is True

    def test_invalid_transitions(self):
        """Skipping steps and going backwards are blocked."""
        assert PayoutRunStateMachine.can_transition("draft", "approved") is False
        assert PayoutRunStateMachine.can_transition("review", "draft") is False
        assert PayoutRunStateMachine.can_transition("finalized", "approved") is False

        # Paid is terminal
        assert PayoutRunStateMachine.get_next_statuses("paid") == []

    def test_validate_transition_raises(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            PayoutRunStateMachine.validate_transition("draft", "finalized")

        assert exc_info.value.from_status == "draft"
        assert exc_info.value.to_status == "finalized"
        assert "Invalid transition from 'draft' to 'finalized'" in str(exc_info.value)

    def test_adjustment_windows(self):
        """Adjustments are raised in review and decided in review or approved."""
        assert PayoutRunStateMachine.can_create_adjustment("review") is True
        assert PayoutRunStateMachine.can_create_adjustment("draft") is False
        assert PayoutRunStateMachine.can_create_adjustment("approved") is False

        assert PayoutRunStateMachine.can_decide_adjustment("review") is True
        assert PayoutRunStateMachine.can_decide_adjustment("approved") is True
        assert PayoutRunStateMachine.can_decide_adjustment("finalized") is False

    def test_locking_and_deletion(self):
        assert PayoutRunStateMachine.is_locked(PayoutRunStatus.FINALIZED) is True
        assert PayoutRunStateMachine.is_locked("paid") is True
        assert PayoutRunStateMachine.is_locked("approved") is False

        assert PayoutRunStateMachine.can_delete("draft") is True
        assert PayoutRunStateMachine.can_delete("review") is False


class TestAdjustmentStateMachine:
    """Test adjustment transitions."""

    def test_pending_can_be_decided(self):
        assert AdjustmentStateMachine.can_transition("pending", "approved") is True
        assert AdjustmentStateMachine.can_transition("pending", "rejected") is True

    def test_decisions_are_final(self):
        assert AdjustmentStateMachine.can_transition("rejected", "approved") is False
        assert AdjustmentStateMachine.can_transition("approved", "rejected") is False
        assert AdjustmentStateMachine.can_transition("approved", "applied") is True

        with pytest.raises(InvalidTransitionError):
            AdjustmentStateMachine.validate_transition("applied", "pending")

    def test_only_pending_can_be_deleted(self):
        assert AdjustmentStateMachine.can_delete("pending") is True
        assert AdjustmentStateMachine.can_delete("approved") is False
