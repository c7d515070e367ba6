"""Plan commission and SPIFF service."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from comp_admin.errors import NotFoundError, ValidationError
from comp_admin.events import ChangeKind, EntityChanged, EntityType, EventEmitter
from comp_admin.models import PlanCommission, PlanMetric, PlanSpiff

logger = logging.getLogger(__name__)

PREDEFINED_COMMISSION_TYPES = (
    "Managed Services",
    "Perpetual License",
    "CR/ER",
    "Implementation",
)

HUNDRED = Decimal("100")

COMMISSION_FIELDS = (
    "commission_type",
    "commission_rate_pct",
    "min_threshold_usd",
    "payout_on_booking_pct",
    "payout_on_collection_pct",
    "payout_on_year_end_pct",
    "is_active",
)
SPIFF_FIELDS = (
    "spiff_name",
    "description",
    "linked_metric_name",
    "spiff_rate_pct",
    "min_deal_value_usd",
    "payout_on_booking_pct",
    "payout_on_collection_pct",
    "payout_on_year_end_pct",
    "is_active",
)


def validate_payout_split(booking: Decimal, collection: Decimal, year_end: Decimal) -> None:
    for value in (booking, collection, year_end):
        if value < 0 or value > HUNDRED:
            raise ValidationError("Payout split percentages must be between 0 and 100")
    if booking + collection + year_end != HUNDRED:
        raise ValidationError("Payout split percentages must total 100")


def validate_commission(
    commission_type: str,
    commission_rate_pct: Decimal,
    existing_types: Iterable[str] = (),
    splits: tuple[Decimal, Decimal, Decimal] = (Decimal("75"), Decimal("25"), Decimal("0")),
) -> str:
    """Check a commission against the plan's known types.

    Returns the normalised commission type.
    """
    normalised = (commission_type or "").strip()
    if not normalised:
        raise ValidationError("Commission type is required")
    if commission_rate_pct < 0:
        raise ValidationError("Rate must be at least 0%")
    if commission_rate_pct > HUNDRED:
        raise ValidationError("Rate cannot exceed 100%")
    if normalised.lower() in {t.strip().lower() for t in existing_types}:
        raise ValidationError(f"Commission type '{normalised}' already exists in this plan")
    validate_payout_split(*splits)
    return normalised


def validate_spiff(
    spiff_name: str,
    linked_metric_name: str,
    spiff_rate_pct: Decimal,
    splits: tuple[Decimal, Decimal, Decimal],
) -> None:
    if not spiff_name or not spiff_name.strip():
        raise ValidationError("SPIFF name is required")
    if not linked_metric_name or not linked_metric_name.strip():
        raise ValidationError("Linked metric is required")
    if spiff_rate_pct <= 0:
        raise ValidationError("SPIFF rate must be greater than 0%")
    if spiff_rate_pct > HUNDRED:
        raise ValidationError("SPIFF rate cannot exceed 100%")
    validate_payout_split(*splits)


class CommissionService:
    """Service for a plan's commission structures and SPIFFs."""

    def __init__(self, session: AsyncSession, events: EventEmitter | None = None):
        self.session = session
        self.events = events or EventEmitter()

    # =========================================================================
    # Commissions
    # =========================================================================

    async def list_commissions(self, plan_id: UUID) -> list[PlanCommission]:
        result = await self.session.execute(
            select(PlanCommission)
            .where(PlanCommission.plan_id == plan_id)
            .order_by(PlanCommission.commission_type)
        )
        return list(result.scalars().all())

    async def get_commission(self, commission_id: UUID) -> PlanCommission:
        commission = await self.session.get(PlanCommission, commission_id)
        if commission is None:
            raise NotFoundError("Commission", commission_id)
        return commission

    async def create_commission(
        self,
        plan_id: UUID,
        commission_type: str,
        commission_rate_pct: Decimal,
        min_threshold_usd: Decimal | None = None,
        payout_on_booking_pct: Decimal = Decimal("75"),
        payout_on_collection_pct: Decimal = Decimal("25"),
        payout_on_year_end_pct: Decimal = Decimal("0"),
        is_active: bool = True,
        existing_types: Iterable[str] | None = None,
    ) -> PlanCommission:
        """Add a commission to a plan.

        When the caller already holds the plan's commission types (as the
        editing form does), pass them as `existing_types` and a duplicate
        is rejected without touching the database.
        """
        splits = (payout_on_booking_pct, payout_on_collection_pct, payout_on_year_end_pct)
        if existing_types is not None:
            validate_commission(commission_type, commission_rate_pct, existing_types, splits)

        current = [c.commission_type for c in await self.list_commissions(plan_id)]
        commission_type = validate_commission(commission_type, commission_rate_pct, current, splits)

        commission = PlanCommission(
            plan_id=plan_id,
            commission_type=commission_type,
            commission_rate_pct=commission_rate_pct,
            min_threshold_usd=min_threshold_usd,
            payout_on_booking_pct=payout_on_booking_pct,
            payout_on_collection_pct=payout_on_collection_pct,
            payout_on_year_end_pct=payout_on_year_end_pct,
            is_active=is_active,
        )
        self.session.add(commission)
        await self.session.flush()

        self.events.emit(
            EntityChanged.of(
                EntityType.PLAN_COMMISSION, ChangeKind.CREATED, commission.id, scope_id=plan_id
            )
        )
        return commission

    async def update_commission(self, commission_id: UUID, **changes: Any) -> PlanCommission:
        commission = await self.get_commission(commission_id)
        unknown = sorted(set(changes) - set(COMMISSION_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown commission field '{unknown[0]}'")
        for key, value in changes.items():
            setattr(commission, key, value)

        others = [
            c.commission_type
            for c in await self.list_commissions(commission.plan_id)
            if c.id != commission.id
        ]
        commission.commission_type = validate_commission(
            commission.commission_type,
            commission.commission_rate_pct,
            others,
            (
                commission.payout_on_booking_pct,
                commission.payout_on_collection_pct,
                commission.payout_on_year_end_pct,
            ),
        )
        await self.session.flush()

        self.events.emit(
            EntityChanged.of(
                EntityType.PLAN_COMMISSION,
                ChangeKind.UPDATED,
                commission.id,
                scope_id=commission.plan_id,
            )
        )
        return commission

    async def delete_commission(self, commission_id: UUID) -> None:
        commission = await self.get_commission(commission_id)
        plan_id = commission.plan_id
        await self.session.delete(commission)
        await self.session.flush()

        self.events.emit(
            EntityChanged.of(
                EntityType.PLAN_COMMISSION, ChangeKind.DELETED, commission_id, scope_id=plan_id
            )
        )

    # =========================================================================
    # SPIFFs
    # =========================================================================

    async def list_spiffs(self, plan_id: UUID) -> list[PlanSpiff]:
        result = await self.session.execute(
            select(PlanSpiff).where(PlanSpiff.plan_id == plan_id).order_by(PlanSpiff.spiff_name)
        )
        return list(result.scalars().all())

    async def get_spiff(self, spiff_id: UUID) -> PlanSpiff:
        spiff = await self.session.get(PlanSpiff, spiff_id)
        if spiff is None:
            raise NotFoundError("SPIFF", spiff_id)
        return spiff

    async def _require_metric(self, plan_id: UUID, metric_name: str) -> None:
        result = await self.session.execute(
            select(PlanMetric.id).where(
                PlanMetric.plan_id == plan_id,
                PlanMetric.metric_name == metric_name,
            )
        )
        if result.first() is None:
            raise NotFoundError("Plan metric", metric_name)

    async def create_spiff(
        self,
        plan_id: UUID,
        spiff_name: str,
        linked_metric_name: str,
        spiff_rate_pct: Decimal,
        description: str | None = None,
        min_deal_value_usd: Decimal | None = None,
        payout_on_booking_pct: Decimal = Decimal("0"),
        payout_on_collection_pct: Decimal = Decimal("100"),
        payout_on_year_end_pct: Decimal = Decimal("0"),
        is_active: bool = True,
    ) -> PlanSpiff:
        validate_spiff(
            spiff_name,
            linked_metric_name,
            spiff_rate_pct,
            (payout_on_booking_pct, payout_on_collection_pct, payout_on_year_end_pct),
        )
        await self._require_metric(plan_id, linked_metric_name)

        spiff = PlanSpiff(
            plan_id=plan_id,
            spiff_name=spiff_name.strip(),
            description=description,
            linked_metric_name=linked_metric_name,
            spiff_rate_pct=spiff_rate_pct,
            min_deal_value_usd=min_deal_value_usd,
            payout_on_booking_pct=payout_on_booking_pct,
            payout_on_collection_pct=payout_on_collection_pct,
            payout_on_year_end_pct=payout_on_year_end_pct,
            is_active=is_active,
        )
        self.session.add(spiff)
        await self.session.flush()

        self.events.emit(
            EntityChanged.of(EntityType.PLAN_SPIFF, ChangeKind.CREATED, spiff.id, scope_id=plan_id)
        )
        return spiff

    async def update_spiff(self, spiff_id: UUID, **changes: Any) -> PlanSpiff:
        spiff = await self.get_spiff(spiff_id)
        unknown = sorted(set(changes) - set(SPIFF_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown SPIFF field '{unknown[0]}'")
        for key, value in changes.items():
            setattr(spiff, key, value)

        validate_spiff(
            spiff.spiff_name,
            spiff.linked_metric_name,
            spiff.spiff_rate_pct,
            (spiff.payout_on_booking_pct, spiff.payout_on_collection_pct, spiff.payout_on_year_end_pct),
        )
        if "linked_metric_name" in changes:
            await self._require_metric(spiff.plan_id, spiff.linked_metric_name)
        await self.session.flush()

        self.events.emit(
            EntityChanged.of(EntityType.PLAN_SPIFF, ChangeKind.UPDATED, spiff.id, scope_id=spiff.plan_id)
        )
        return spiff

    async def delete_spiff(self, spiff_id: UUID) -> None:
        spiff = await self.get_spiff(spiff_id)
        plan_id = spiff.plan_id
        await self.session.delete(spiff)
        await self.session.flush()

        self.events.emit(
            EntityChanged.of(EntityType.PLAN_SPIFF, ChangeKind.DELETED, spiff_id, scope_id=plan_id)
        )
