"""Payout adjustment workflow."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from comp_admin.errors import InvalidTransitionError, NotFoundError, ValidationError
from comp_admin.events import ChangeKind, EntityChanged, EntityType, EventEmitter
from comp_admin.models import AuditEvent, Employee, PayoutAdjustment, PayoutRun
from comp_admin.services.currency_service import CurrencyService
from comp_admin.services.state_machine import (
    AdjustmentStateMachine,
    AdjustmentStatus,
    PayoutRunStateMachine,
)

logger = logging.getLogger(__name__)

ADJUSTMENT_TYPES = ("correction", "clawback_reversal", "manual_override")

CENT = Decimal("0.01")


def to_local(amount_usd: Decimal, exchange_rate: Decimal) -> Decimal:
    """Convert a USD amount to local currency at the given rate."""
    return (amount_usd * exchange_rate).quantize(CENT, rounding=ROUND_HALF_UP)


class AdjustmentService:
    """Service for manual adjustments raised against a payout run.

    Adjustments are raised while the run is in review and decided while
    it is in review or approved. Only pending adjustments can be deleted.
    """

    def __init__(self, session: AsyncSession, events: EventEmitter | None = None):
        self.session = session
        self.events = events or EventEmitter()

    async def _get_run(self, run_id: UUID) -> PayoutRun:
        run = await self.session.get(PayoutRun, run_id)
        if run is None:
            raise NotFoundError("Payout run", run_id)
        return run

    async def get_adjustment(self, adjustment_id: UUID) -> PayoutAdjustment:
        adjustment = await self.session.get(PayoutAdjustment, adjustment_id)
        if adjustment is None:
            raise NotFoundError("Adjustment", adjustment_id)
        return adjustment

    async def list_adjustments(self, run_id: UUID) -> list[PayoutAdjustment]:
        result = await self.session.execute(
            select(PayoutAdjustment)
            .where(PayoutAdjustment.payout_run_id == run_id)
            .order_by(PayoutAdjustment.created_at)
        )
        return list(result.scalars().all())

    async def create(
        self,
        run_id: UUID,
        employee_id: UUID,
        adjustment_type: str,
        adjustment_amount_usd: Decimal,
        reason: str,
        original_amount_usd: Decimal = Decimal("0"),
        exchange_rate: Decimal | None = None,
        requested_by: UUID | None = None,
    ) -> PayoutAdjustment:
        """Raise an adjustment. The amount may be negative (a deduction)."""
        if adjustment_type not in ADJUSTMENT_TYPES:
            raise ValidationError(f"Unknown adjustment type '{adjustment_type}'")
        if not reason or not reason.strip():
            raise ValidationError("Reason is required")

        run = await self._get_run(run_id)
        if not PayoutRunStateMachine.can_create_adjustment(run.run_status):
            raise InvalidTransitionError(
                run.run_status,
                AdjustmentStatus.PENDING.value,
                "Adjustments can only be created while the payout run is in review",
            )

        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee", employee_id)

        if exchange_rate is None:
            exchange_rate = await CurrencyService(self.session).rate_for(
                employee.local_currency, run.month_year
            )

        adjustment = PayoutAdjustment(
            payout_run_id=run_id,
            employee_id=employee_id,
            adjustment_type=adjustment_type,
            original_amount_usd=original_amount_usd,
            adjustment_amount_usd=adjustment_amount_usd,
            original_amount_local=to_local(original_amount_usd, exchange_rate),
            adjustment_amount_local=to_local(adjustment_amount_usd, exchange_rate),
            local_currency=employee.local_currency,
            exchange_rate_used=exchange_rate,
            reason=reason.strip(),
            status=AdjustmentStatus.PENDING.value,
            requested_by=requested_by,
        )
        self.session.add(adjustment)
        await self.session.flush()

        self.events.emit(
            EntityChanged.of(
                EntityType.PAYOUT_ADJUSTMENT, ChangeKind.CREATED, adjustment.id, scope_id=run_id
            )
        )
        return adjustment

    async def approve(self, adjustment_id: UUID, actor_user_id: UUID | None = None) -> PayoutAdjustment:
        return await self._decide(adjustment_id, AdjustmentStatus.APPROVED, actor_user_id)

    async def reject(self, adjustment_id: UUID, actor_user_id: UUID | None = None) -> PayoutAdjustment:
        return await self._decide(adjustment_id, AdjustmentStatus.REJECTED, actor_user_id)

    async def _decide(
        self,
        adjustment_id: UUID,
        to_status: AdjustmentStatus,
        actor_user_id: UUID | None,
    ) -> PayoutAdjustment:
        adjustment = await self.get_adjustment(adjustment_id)
        run = await self._get_run(adjustment.payout_run_id)

        if not PayoutRunStateMachine.can_decide_adjustment(run.run_status):
            raise InvalidTransitionError(
                adjustment.status,
                to_status.value,
                f"Payout run is {run.run_status}; adjustments can only be decided "
                "while it is in review or approved",
            )
        AdjustmentStateMachine.validate_transition(adjustment.status, to_status)

        adjustment.status = to_status.value
        adjustment.approved_by = actor_user_id
        self.session.add(
            AuditEvent(
                actor_user_id=actor_user_id,
                entity_type="payout_adjustment",
                entity_id=adjustment.id,
                action=to_status.value,
                details={"payout_run_id": str(run.id)},
            )
        )
        await self.session.flush()
        logger.info("Adjustment %s %s", adjustment.id, to_status.value)

        self.events.emit(
            EntityChanged.of(
                EntityType.PAYOUT_ADJUSTMENT,
                ChangeKind.UPDATED,
                adjustment.id,
                scope_id=run.id,
            )
        )
        return adjustment

    async def delete(self, adjustment_id: UUID) -> None:
        adjustment = await self.get_adjustment(adjustment_id)
        if not AdjustmentStateMachine.can_delete(adjustment.status):
            raise InvalidTransitionError(
                adjustment.status, "deleted", "Only pending adjustments can be deleted"
            )

        run_id = adjustment.payout_run_id
        await self.session.delete(adjustment)
        await self.session.flush()

        self.events.emit(
            EntityChanged.of(
                EntityType.PAYOUT_ADJUSTMENT, ChangeKind.DELETED, adjustment_id, scope_id=run_id
            )
        )
