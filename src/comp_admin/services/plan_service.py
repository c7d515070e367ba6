"""Compensation plan service: plan and metric CRUD plus the year copy."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from comp_admin.errors import NotFoundError, ValidationError
from comp_admin.events import ChangeKind, EntityChanged, EntityType, EventEmitter
from comp_admin.models import (
    CompPlan,
    MultiplierTier,
    PlanCommission,
    PlanMetric,
    PlanSpiff,
)

logger = logging.getLogger(__name__)

LOGIC_TYPES = ("Linear", "Stepped_Accelerator", "Gated_Threshold")

PLAN_FIELDS = ("name", "description", "effective_year", "is_active", "payout_frequency", "clawback_period_days")


def validate_metric(
    metric_name: str,
    weightage_percent: Decimal,
    logic_type: str,
    gate_threshold_percent: Decimal | None,
) -> None:
    if not metric_name or not metric_name.strip():
        raise ValidationError("Metric name is required")
    if weightage_percent < 0 or weightage_percent > 100:
        raise ValidationError("Weightage must be between 0 and 100")
    if logic_type not in LOGIC_TYPES:
        raise ValidationError(f"Unknown logic type '{logic_type}'")
    if logic_type == "Gated_Threshold" and gate_threshold_percent is None:
        raise ValidationError("Gate threshold is required for Gated_Threshold metrics")


class PlanService:
    """Service for compensation plans and their metrics.

    Operations:
    - create_plan / update_plan / list_plans / list_plan_years
    - add_metric / get_metric / list_metrics
    - copy_plans: deep-copy plans into another year as one atomic batch
    """

    def __init__(self, session: AsyncSession, events: EventEmitter | None = None):
        self.session = session
        self.events = events or EventEmitter()

    # =========================================================================
    # Plans
    # =========================================================================

    async def get_plan(self, plan_id: UUID) -> CompPlan:
        plan = await self.session.get(CompPlan, plan_id)
        if plan is None:
            raise NotFoundError("Plan", plan_id)
        return plan

    async def find_plan_by_name(self, name: str, year: int | None = None) -> CompPlan | None:
        """Plan by name, preferring the one effective in `year`."""
        result = await self.session.execute(
            select(CompPlan).where(CompPlan.name == name).order_by(CompPlan.effective_year.desc())
        )
        plans = list(result.scalars().all())
        if year is not None:
            for plan in plans:
                if plan.effective_year == year:
                    return plan
        return plans[0] if plans else None

    async def list_plans(self, year: int | None = None) -> list[CompPlan]:
        query = select(CompPlan).order_by(CompPlan.effective_year.desc(), CompPlan.name)
        if year is not None:
            query = query.where(CompPlan.effective_year == year)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_plan_years(self) -> list[int]:
        result = await self.session.execute(
            select(CompPlan.effective_year).distinct().order_by(CompPlan.effective_year.desc())
        )
        return list(result.scalars().all())

    async def create_plan(
        self,
        name: str,
        effective_year: int,
        description: str | None = None,
        is_active: bool = True,
        payout_frequency: str = "monthly",
        clawback_period_days: int = 180,
    ) -> CompPlan:
        if not name or not name.strip():
            raise ValidationError("Plan name is required")

        plan = CompPlan(
            name=name.strip(),
            description=description,
            effective_year=effective_year,
            is_active=is_active,
            payout_frequency=payout_frequency,
            clawback_period_days=clawback_period_days,
        )
        self.session.add(plan)
        await self.session.flush()

        self.events.emit(EntityChanged.of(EntityType.COMP_PLAN, ChangeKind.CREATED, plan.id))
        return plan

    async def update_plan(self, plan_id: UUID, **changes: Any) -> CompPlan:
        plan = await self.get_plan(plan_id)
        for key, value in changes.items():
            if key not in PLAN_FIELDS:
                raise ValidationError(f"Unknown plan field '{key}'")
            setattr(plan, key, value)
        if not plan.name or not plan.name.strip():
            raise ValidationError("Plan name is required")
        await self.session.flush()

        self.events.emit(EntityChanged.of(EntityType.COMP_PLAN, ChangeKind.UPDATED, plan.id))
        return plan

    # =========================================================================
    # Metrics
    # =========================================================================

    async def get_metric(self, metric_id: UUID) -> PlanMetric:
        result = await self.session.execute(
            select(PlanMetric)
            .where(PlanMetric.id == metric_id)
            .options(selectinload(PlanMetric.tiers))
        )
        metric = result.scalar_one_or_none()
        if metric is None:
            raise NotFoundError("Plan metric", metric_id)
        return metric

    async def list_metrics(self, plan_id: UUID) -> list[PlanMetric]:
        """Metrics of a plan with their multiplier tiers loaded."""
        result = await self.session.execute(
            select(PlanMetric)
            .where(PlanMetric.plan_id == plan_id)
            .options(selectinload(PlanMetric.tiers))
            .order_by(PlanMetric.metric_name)
        )
        return list(result.scalars().all())

    async def add_metric(
        self,
        plan_id: UUID,
        metric_name: str,
        weightage_percent: Decimal,
        logic_type: str = "Linear",
        gate_threshold_percent: Decimal | None = None,
        payout_on_booking_pct: Decimal = Decimal("75"),
        payout_on_collection_pct: Decimal = Decimal("25"),
        payout_on_year_end_pct: Decimal = Decimal("0"),
    ) -> PlanMetric:
        validate_metric(metric_name, weightage_percent, logic_type, gate_threshold_percent)
        await self.get_plan(plan_id)

        metric = PlanMetric(
            plan_id=plan_id,
            metric_name=metric_name.strip(),
            weightage_percent=weightage_percent,
            logic_type=logic_type,
            gate_threshold_percent=gate_threshold_percent,
            payout_on_booking_pct=payout_on_booking_pct,
            payout_on_collection_pct=payout_on_collection_pct,
            payout_on_year_end_pct=payout_on_year_end_pct,
        )
        self.session.add(metric)
        await self.session.flush()

        self.events.emit(
            EntityChanged.of(EntityType.PLAN_METRIC, ChangeKind.CREATED, metric.id, scope_id=plan_id)
        )
        return metric

    # =========================================================================
    # Copy to year
    # =========================================================================

    async def copy_plans(self, plan_ids: Sequence[UUID], target_year: int) -> list[CompPlan]:
        """Deep-copy plans into `target_year` as inactive drafts.

        Each copy gets the source's metrics (with multiplier tiers),
        commissions and spiffs under fresh identifiers. The batch runs in
        one savepoint: if any plan fails, none of the copies persist and
        the underlying error is re-raised. Copying is not idempotent.
        """
        if not plan_ids:
            raise ValidationError("Select at least one plan to copy")

        logger.info("Copying %d plan(s) to %s", len(plan_ids), target_year)
        copies: list[CompPlan] = []

        with self.events.batch():
            try:
                async with self.session.begin_nested():
                    for plan_id in plan_ids:
                        copies.append(await self._copy_plan(plan_id, target_year))
            except Exception:
                logger.warning(
                    "Plan copy to %s aborted; rolled back %d staged plan(s)",
                    target_year,
                    len(copies),
                )
                raise

            self.events.emit(
                EntityChanged.of(
                    EntityType.COMP_PLAN,
                    ChangeKind.CREATED,
                    *(p.id for p in copies),
                    target_year=target_year,
                )
            )

        logger.info("Copied %d plan(s) to %s", len(copies), target_year)
        return copies

    async def _copy_plan(self, plan_id: UUID, target_year: int) -> CompPlan:
        source = await self.get_plan(plan_id)

        plan = CompPlan(
            name=source.name,
            description=source.description,
            effective_year=target_year,
            is_active=False,
            payout_frequency=source.payout_frequency,
            clawback_period_days=source.clawback_period_days,
        )
        self.session.add(plan)
        await self.session.flush()

        for metric in await self.list_metrics(plan_id):
            new_metric = PlanMetric(
                plan_id=plan.id,
                metric_name=metric.metric_name,
                weightage_percent=metric.weightage_percent,
                logic_type=metric.logic_type,
                gate_threshold_percent=metric.gate_threshold_percent,
                payout_on_booking_pct=metric.payout_on_booking_pct,
                payout_on_collection_pct=metric.payout_on_collection_pct,
                payout_on_year_end_pct=metric.payout_on_year_end_pct,
            )
            self.session.add(new_metric)
            await self.session.flush()

            self.session.add_all(
                MultiplierTier(
                    plan_metric_id=new_metric.id,
                    min_pct=tier.min_pct,
                    max_pct=tier.max_pct,
                    multiplier_value=tier.multiplier_value,
                )
                for tier in metric.tiers
            )

        commissions = await self.session.execute(
            select(PlanCommission).where(PlanCommission.plan_id == plan_id)
        )
        self.session.add_all(
            PlanCommission(
                plan_id=plan.id,
                commission_type=c.commission_type,
                commission_rate_pct=c.commission_rate_pct,
                min_threshold_usd=c.min_threshold_usd,
                payout_on_booking_pct=c.payout_on_booking_pct,
                payout_on_collection_pct=c.payout_on_collection_pct,
                payout_on_year_end_pct=c.payout_on_year_end_pct,
                is_active=c.is_active,
            )
            for c in commissions.scalars().all()
        )

        spiffs = await self.session.execute(select(PlanSpiff).where(PlanSpiff.plan_id == plan_id))
        self.session.add_all(
            PlanSpiff(
                plan_id=plan.id,
                spiff_name=s.spiff_name,
                description=s.description,
                linked_metric_name=s.linked_metric_name,
                spiff_rate_pct=s.spiff_rate_pct,
                min_deal_value_usd=s.min_deal_value_usd,
                payout_on_booking_pct=s.payout_on_booking_pct,
                payout_on_collection_pct=s.payout_on_collection_pct,
                payout_on_year_end_pct=s.payout_on_year_end_pct,
                is_active=s.is_active,
            )
            for s in spiffs.scalars().all()
        )

        await self.session.flush()
        return plan
