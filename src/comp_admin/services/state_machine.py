"""Payout run and adjustment state machines with transition validation."""

from __future__ import annotations

from enum import Enum

from comp_admin.errors import InvalidTransitionError


class PayoutRunStatus(str, Enum):
    """Payout run status values."""

    DRAFT = "draft"
    REVIEW = "review"
    APPROVED = "approved"
    FINALIZED = "finalized"
    PAID = "paid"


class AdjustmentStatus(str, Enum):
    """Payout adjustment status values."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    APPLIED = "applied"


class PayoutRunStateMachine:
    """State machine for payout run status transitions.

    Allowed transitions:
    - draft → review
    - review → approved
    - approved → finalized
    - finalized → paid
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayoutRunStatus.DRAFT: [PayoutRunStatus.REVIEW],
        PayoutRunStatus.REVIEW: [PayoutRunStatus.APPROVED],
        PayoutRunStatus.APPROVED: [PayoutRunStatus.FINALIZED],
        PayoutRunStatus.FINALIZED: [PayoutRunStatus.PAID],
        PayoutRunStatus.PAID: [],  # Terminal state
    }

    # Statuses where adjustments can be raised
    ADJUSTMENT_CREATE_ALLOWED = {PayoutRunStatus.REVIEW}

    # Statuses where pending adjustments can be decided
    ADJUSTMENT_DECISION_ALLOWED = {PayoutRunStatus.REVIEW, PayoutRunStatus.APPROVED}

    # Statuses where the run is locked against edits
    LOCKED = {PayoutRunStatus.FINALIZED, PayoutRunStatus.PAID}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def can_create_adjustment(cls, status: str) -> bool:
        return status in cls.ADJUSTMENT_CREATE_ALLOWED

    @classmethod
    def can_decide_adjustment(cls, status: str) -> bool:
        return status in cls.ADJUSTMENT_DECISION_ALLOWED

    @classmethod
    def is_locked(cls, status: str) -> bool:
        return status in cls.LOCKED

    @classmethod
    def can_delete(cls, status: str) -> bool:
        """Only drafts can be deleted."""
        return status == PayoutRunStatus.DRAFT


class AdjustmentStateMachine:
    """State machine for payout adjustments.

    Allowed transitions:
    - pending → approved
    - pending → rejected
    - approved → applied (payout finalization only)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        AdjustmentStatus.PENDING: [AdjustmentStatus.APPROVED, AdjustmentStatus.REJECTED],
        AdjustmentStatus.APPROVED: [AdjustmentStatus.APPLIED],
        AdjustmentStatus.REJECTED: [],
        AdjustmentStatus.APPLIED: [],
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        return to_status in cls.VALID_TRANSITIONS.get(from_status, [])

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def can_delete(cls, status: str) -> bool:
        return status == AdjustmentStatus.PENDING
