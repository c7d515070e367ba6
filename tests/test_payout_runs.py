"""Tests for the payout run lifecycle and the adjustment workflow."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from comp_admin.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from comp_admin.events import ChangeKind, EntityType
from comp_admin.models import AuditEvent, PayoutAdjustment, PayoutMetricDetail, PayoutRun
from comp_admin.services.adjustment_service import AdjustmentService, to_local
from comp_admin.services.payout_run_service import PayoutRunService

pytestmark = pytest.mark.asyncio


async def run_in(session, status, month="2025-02"):
    """Create a run and walk it forward to the given status."""
    service = PayoutRunService(session)
    run = await service.create_run(month)
    for step in ("review", "approved", "finalized", "paid"):
        if run.run_status == status:
            break
        run = await service.transition(run.id, step)
    return run


async def audit_actions(session, entity_id) -> list[str]:
    result = await session.execute(
        select(AuditEvent.action).where(AuditEvent.entity_id == entity_id)
    )
    return list(result.scalars().all())


class TestPayoutRunService:
    async def test_one_run_per_month(self, session, events):
        service = PayoutRunService(session, events)
        run = await service.create_run("2025-03")

        assert run.run_status == "draft"
        assert run.is_locked is False
        with pytest.raises(ConflictError, match="Payout run already exists for 2025-03"):
            await service.create_run("2025-03")

    async def test_month_format(self, session):
        with pytest.raises(ValidationError):
            await PayoutRunService(session).create_run("2025-13")

    async def test_transitions_stamp_actor_and_lock(self, session, events):
        service = PayoutRunService(session, events)
        actor = uuid4()
        run = await service.create_run("2025-03")

        await service.transition(run.id, "review", actor)
        await service.transition(run.id, "approved", actor)
        assert run.approved_by == actor
        assert run.approved_at is not None
        assert run.is_locked is False

        await service.transition(run.id, "finalized", actor, notes="Sent to payroll")
        assert run.is_locked is True
        assert run.finalized_by == actor
        assert run.notes == "Sent to payroll"

        event = events.dispatched[-1]
        assert event.entity_type == EntityType.PAYOUT_RUN
        assert event.details == {"from_status": "approved", "to_status": "finalized"}

        actions = set(await audit_actions(session, run.id))
        assert {"created", "status_change:review:approved", "status_change:approved:finalized"} <= actions

    async def test_skipping_a_step_is_rejected(self, session):
        service = PayoutRunService(session)
        run = await service.create_run("2025-03")

        with pytest.raises(InvalidTransitionError):
            await service.transition(run.id, "approved")
        assert run.run_status == "draft"

    async def test_delete_draft_removes_workings(self, session, employee, events):
        service = PayoutRunService(session, events)
        run = await service.create_run("2025-03")
        session.add(
            PayoutMetricDetail(
                payout_run_id=run.id,
                employee_id=employee.id,
                component_type="variable_pay",
                metric_name="New Software Booking ARR",
            )
        )
        await session.flush()
        run_id = run.id

        await service.delete_run(run_id)

        assert await session.get(PayoutRun, run_id) is None
        details = await session.execute(select(PayoutMetricDetail).where(PayoutMetricDetail.payout_run_id == run_id))
        assert details.scalars().all() == []
        assert events.dispatched[-1].kind == ChangeKind.DELETED

        with pytest.raises(NotFoundError):
            await service.get_run(run_id)

    async def test_only_drafts_can_be_deleted(self, session):
        run = await run_in(session, "review")
        with pytest.raises(InvalidTransitionError, match="Only draft payout runs can be deleted"):
            await PayoutRunService(session).delete_run(run.id)

    async def test_list_runs_by_year(self, session):
        service = PayoutRunService(session)
        for month in ("2024-12", "2025-01", "2025-02"):
            await service.create_run(month)

        assert [r.month_year for r in await service.list_runs(2025)] == ["2025-02", "2025-01"]
        assert len(await service.list_runs()) == 3


class TestAdjustments:
    async def test_created_only_in_review(self, session, employee):
        draft = await run_in(session, "draft", "2025-01")
        approved = await run_in(session, "approved", "2025-02")
        service = AdjustmentService(session)

        for run in (draft, approved):
            with pytest.raises(InvalidTransitionError, match="only be created while the payout run is in review"):
                await service.create(run.id, employee.id, "correction", Decimal("100"), "Missed deal")

    async def test_local_amount_uses_month_rate(self, session, inr_employee, events):
        run = await run_in(session, "review")

        adjustment = await AdjustmentService(session, events).create(
            run.id,
            inr_employee.id,
            "correction",
            Decimal("-120.50"),
            "  Double-counted booking  ",
            original_amount_usd=Decimal("1000"),
        )

        assert adjustment.status == "pending"
        assert adjustment.local_currency == "INR"
        assert adjustment.exchange_rate_used == Decimal("84.00")
        assert adjustment.adjustment_amount_local == Decimal("-10122.00")
        assert adjustment.original_amount_local == Decimal("84000.00")
        assert adjustment.reason == "Double-counted booking"
        assert events.dispatched[-1].scope_id == run.id

    async def test_explicit_rate_overrides_lookup(self, session, employee):
        run = await run_in(session, "review")
        adjustment = await AdjustmentService(session).create(
            run.id, employee.id, "manual_override", Decimal("10"), "FX", exchange_rate=Decimal("1.333")
        )
        assert adjustment.adjustment_amount_local == Decimal("13.33")

    async def test_validation(self, session, employee):
        run = await run_in(session, "review")
        service = AdjustmentService(session)

        with pytest.raises(ValidationError, match="Reason is required"):
            await service.create(run.id, employee.id, "correction", Decimal("1"), "   ")
        with pytest.raises(ValidationError, match="Unknown adjustment type"):
            await service.create(run.id, employee.id, "bonus", Decimal("1"), "Why")

    async def test_decisions_are_audited_and_final(self, session, employee):
        run = await run_in(session, "review")
        service = AdjustmentService(session)
        actor = uuid4()
        adjustment = await service.create(run.id, employee.id, "correction", Decimal("50"), "Missed deal")

        await service.approve(adjustment.id, actor)
        assert adjustment.status == "approved"
        assert adjustment.approved_by == actor
        assert await audit_actions(session, adjustment.id) == ["approved"]

        with pytest.raises(InvalidTransitionError):
            await service.reject(adjustment.id, actor)
        with pytest.raises(InvalidTransitionError, match="Only pending adjustments can be deleted"):
            await service.delete(adjustment.id)

    async def test_decided_while_run_approved_but_not_after(self, session, employee):
        run = await run_in(session, "review")
        adjustments = AdjustmentService(session)
        first = await adjustments.create(run.id, employee.id, "correction", Decimal("50"), "One")
        second = await adjustments.create(run.id, employee.id, "correction", Decimal("75"), "Two")

        runs = PayoutRunService(session)
        await runs.transition(run.id, "approved")
        await adjustments.reject(first.id)
        assert first.status == "rejected"

        await runs.transition(run.id, "finalized")
        with pytest.raises(InvalidTransitionError, match="Payout run is finalized"):
            await adjustments.approve(second.id)

    async def test_delete_pending(self, session, employee, events):
        run = await run_in(session, "review")
        service = AdjustmentService(session, events)
        adjustment = await service.create(run.id, employee.id, "correction", Decimal("50"), "Typo")
        adjustment_id = adjustment.id

        await service.delete(adjustment_id)

        assert await session.get(PayoutAdjustment, adjustment_id) is None
        assert await service.list_adjustments(run.id) == []

    async def test_to_local_rounds_half_up(self):
        assert to_local(Decimal("0.125"), Decimal("1")) == Decimal("0.13")
        assert to_local(Decimal("100"), Decimal("83.505")) == Decimal("8350.50")
