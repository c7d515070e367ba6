"""Payout run service - lifecycle of monthly payout runs."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from comp_admin.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from comp_admin.events import ChangeKind, EntityChanged, EntityType, EventEmitter
from comp_admin.models import AuditEvent, PayoutDealDetail, PayoutMetricDetail, PayoutRun
from comp_admin.services.state_machine import PayoutRunStateMachine, PayoutRunStatus

logger = logging.getLogger(__name__)

_MONTH_YEAR = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

# Actor/timestamp columns stamped on entering each status
_STATUS_STAMPS = {
    PayoutRunStatus.REVIEW: ("reviewed_by", "reviewed_at"),
    PayoutRunStatus.APPROVED: ("approved_by", "approved_at"),
    PayoutRunStatus.FINALIZED: ("finalized_by", "finalized_at"),
    PayoutRunStatus.PAID: ("paid_by", "paid_at"),
}


class PayoutRunService:
    """Service for managing payout run lifecycle.

    Operations:
    - create_run: open a draft run for a month (one run per month)
    - transition: draft → review → approved → finalized → paid
    - delete_run: remove a draft run and its workings rows
    """

    def __init__(self, session: AsyncSession, events: EventEmitter | None = None):
        self.session = session
        self.events = events or EventEmitter()

    async def get_run(self, run_id: UUID) -> PayoutRun:
        run = await self.session.get(PayoutRun, run_id)
        if run is None:
            raise NotFoundError("Payout run", run_id)
        return run

    async def get_run_for_month(self, month_year: str) -> PayoutRun | None:
        result = await self.session.execute(
            select(PayoutRun).where(PayoutRun.month_year == month_year)
        )
        return result.scalar_one_or_none()

    async def list_runs(self, year: int | None = None) -> list[PayoutRun]:
        query = select(PayoutRun).order_by(PayoutRun.month_year.desc())
        if year is not None:
            query = query.where(PayoutRun.month_year.like(f"{year}-%"))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def create_run(
        self,
        month_year: str,
        notes: str | None = None,
        actor_user_id: UUID | None = None,
    ) -> PayoutRun:
        if not _MONTH_YEAR.match(month_year or ""):
            raise ValidationError("Month must be in YYYY-MM format")
        if await self.get_run_for_month(month_year) is not None:
            raise ConflictError(f"Payout run already exists for {month_year}")

        run = PayoutRun(
            month_year=month_year,
            run_status=PayoutRunStatus.DRAFT.value,
            notes=notes,
            calculated_by=actor_user_id,
        )
        self.session.add(run)
        await self.session.flush()

        await self._record_audit(run, "created", actor_user_id)
        self.events.emit(EntityChanged.of(EntityType.PAYOUT_RUN, ChangeKind.CREATED, run.id))
        return run

    async def transition(
        self,
        run_id: UUID,
        to_status: str,
        actor_user_id: UUID | None = None,
        notes: str | None = None,
    ) -> PayoutRun:
        """Move a run to its next status, stamping who did it and when.

        Raises InvalidTransitionError if the transition is not allowed.
        """
        run = await self.get_run(run_id)
        from_status = run.run_status
        PayoutRunStateMachine.validate_transition(from_status, to_status)

        stamps = _STATUS_STAMPS.get(PayoutRunStatus(to_status))
        if stamps:
            by_field, at_field = stamps
            setattr(run, by_field, actor_user_id)
            setattr(run, at_field, datetime.now(timezone.utc))
        if to_status == PayoutRunStatus.FINALIZED:
            run.is_locked = True
        if notes:
            run.notes = notes

        run.run_status = PayoutRunStatus(to_status).value
        await self.session.flush()
        logger.info("Payout run %s moved %s -> %s", run.month_year, from_status, to_status)

        await self._record_audit(
            run,
            f"status_change:{from_status}:{to_status}",
            actor_user_id,
            {"notes": notes} if notes else None,
        )
        self.events.emit(
            EntityChanged.of(
                EntityType.PAYOUT_RUN,
                ChangeKind.UPDATED,
                run.id,
                scope_id=run.id,
                from_status=from_status,
                to_status=to_status,
            )
        )
        return run

    async def delete_run(self, run_id: UUID, actor_user_id: UUID | None = None) -> None:
        run = await self.get_run(run_id)
        if not PayoutRunStateMachine.can_delete(run.run_status):
            raise InvalidTransitionError(
                run.run_status, "deleted", "Only draft payout runs can be deleted"
            )

        await self.session.execute(
            delete(PayoutMetricDetail).where(PayoutMetricDetail.payout_run_id == run_id)
        )
        await self.session.execute(
            delete(PayoutDealDetail).where(PayoutDealDetail.payout_run_id == run_id)
        )
        await self._record_audit(run, "deleted", actor_user_id)
        await self.session.delete(run)
        await self.session.flush()
        logger.info("Deleted draft payout run %s", run.month_year)

        self.events.emit(
            EntityChanged.of(EntityType.PAYOUT_RUN, ChangeKind.DELETED, run_id, scope_id=run_id)
        )

    async def _record_audit(
        self,
        run: PayoutRun,
        action: str,
        actor_user_id: UUID | None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.session.add(
            AuditEvent(
                actor_user_id=actor_user_id,
                entity_type="payout_run",
                entity_id=run.id,
                action=action,
                details={"month_year": run.month_year, **(details or {})},
            )
        )
        await self.session.flush()
