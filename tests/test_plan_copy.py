"""Tests for plan management and the plan-copy cascade."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from comp_admin.errors import NotFoundError, ValidationError
from comp_admin.events import ChangeKind, EntityType
from comp_admin.models import CompPlan, MultiplierTier, PlanCommission, PlanMetric, PlanSpiff
from comp_admin.services.plan_service import PlanService, validate_metric

pytestmark = pytest.mark.asyncio


async def count(session, model) -> int:
    return await session.scalar(select(func.count()).select_from(model))


class TestCopyPlans:
    async def test_copy_duplicates_children_under_new_ids(self, session, plan, metric, events):
        copies = await PlanService(session, events).copy_plans([plan.id], 2026)

        assert len(copies) == 1
        copy = copies[0]
        assert copy.id != plan.id
        assert copy.name == plan.name
        assert copy.effective_year == 2026
        assert copy.is_active is False

        metrics = await PlanService(session).list_metrics(copy.id)
        assert [m.metric_name for m in metrics] == [metric.metric_name]
        assert metrics[0].id != metric.id
        assert metrics[0].logic_type == "Gated_Threshold"
        assert metrics[0].gate_threshold_percent == Decimal("85")
        assert [(t.min_pct, t.multiplier_value) for t in metrics[0].tiers] == [
            (Decimal("0"), Decimal("1.0")),
            (Decimal("100"), Decimal("1.5")),
        ]

        commissions = (
            await session.execute(select(PlanCommission).where(PlanCommission.plan_id == copy.id))
        ).scalars().all()
        assert [c.commission_type for c in commissions] == ["Managed Services"]

        spiffs = (
            await session.execute(select(PlanSpiff).where(PlanSpiff.plan_id == copy.id))
        ).scalars().all()
        assert [s.spiff_name for s in spiffs] == ["Large Deal SPIFF"]

    async def test_copy_is_not_idempotent(self, session, plan, events):
        """Copying twice yields two independent plans."""
        service = PlanService(session, events)
        first = await service.copy_plans([plan.id], 2026)
        second = await service.copy_plans([plan.id], 2026)

        assert first[0].id != second[0].id
        assert len(await service.list_plans(2026)) == 2
        assert await count(session, MultiplierTier) == 6

    async def test_failure_rolls_back_the_whole_batch(self, session, plan, events):
        service = PlanService(session, events)

        with pytest.raises(NotFoundError):
            await service.copy_plans([plan.id, uuid4()], 2026)

        assert await count(session, CompPlan) == 1
        assert await count(session, PlanMetric) == 1
        assert await count(session, MultiplierTier) == 2
        assert events.dispatched == []

    async def test_requires_at_least_one_plan(self, session, events):
        with pytest.raises(ValidationError, match="Select at least one plan to copy"):
            await PlanService(session, events).copy_plans([], 2026)

    async def test_single_event_after_copy(self, session, plan, events):
        await PlanService(session, events).copy_plans([plan.id], 2026)

        assert len(events.dispatched) == 1
        event = events.dispatched[0]
        assert event.entity_type == EntityType.COMP_PLAN
        assert event.kind == ChangeKind.CREATED
        assert event.details["target_year"] == 2026


class TestPlanService:
    async def test_find_plan_prefers_matching_year(self, session, plan, events):
        service = PlanService(session, events)
        await service.copy_plans([plan.id], 2026)

        found = await service.find_plan_by_name("Enterprise AE Plan", 2026)
        assert found is not None
        assert found.effective_year == 2026

        assert await service.find_plan_by_name("No Such Plan", 2026) is None

    async def test_list_plan_years(self, session, plan, events):
        service = PlanService(session, events)
        await service.create_plan("SE Plan", 2024)
        assert await service.list_plan_years() == [2025, 2024]

    async def test_update_plan(self, session, plan, events):
        updated = await PlanService(session, events).update_plan(plan.id, is_active=False)
        assert updated.is_active is False

    async def test_metric_validation(self):
        with pytest.raises(ValidationError):
            validate_metric("", Decimal("50"), "Linear", None)
        with pytest.raises(ValidationError):
            validate_metric("ARR", Decimal("50"), "Exponential", None)
        with pytest.raises(ValidationError, match="Gate threshold is required"):
            validate_metric("ARR", Decimal("50"), "Gated_Threshold", None)
