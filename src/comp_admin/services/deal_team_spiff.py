"""Deal-team SPIFF pool allocation.

A qualifying deal carries a fixed pool that admins split across the deal
team. Allocations are saved as pending, approved together once the pool
is exactly used up, and become read-only once anything is approved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from comp_admin.errors import InvalidTransitionError, NotFoundError, ValidationError
from comp_admin.events import ChangeKind, EntityChanged, EntityType, EventEmitter
from comp_admin.models import Deal, DealTeamSpiffAllocation, DealTeamSpiffConfig, Employee
from comp_admin.services.adjustment_service import to_local
from comp_admin.services.currency_service import CurrencyService

logger = logging.getLogger(__name__)

TOLERANCE = Decimal("0.01")

DEFAULT_POOL_USD = Decimal("10000")
DEFAULT_MIN_DEAL_ARR_USD = Decimal("400000")

TEAM_ROLES = (
    "SE",
    "SE Head",
    "Product Specialist",
    "PS Head",
    "Solution Manager",
    "SM Head",
    "Channel Sales",
)

UNALLOCATED = "Unallocated"
PARTIAL = "Partial"
FULLY_ALLOCATED = "Fully Allocated"
APPROVED = "Approved"
REJECTED = "Rejected"


@dataclass(frozen=True)
class AllocationItem:
    """One team member's requested share of the pool."""

    employee_id: UUID
    amount_usd: Decimal
    team_role: str | None = None
    notes: str | None = None


def pool_matches(total: Decimal, pool: Decimal) -> bool:
    return abs(total - pool) < TOLERANCE


def allocation_status(
    allocations: Iterable[DealTeamSpiffAllocation], pool_amount_usd: Decimal
) -> str:
    """Summarise a deal's allocations. Rejected rows no longer count."""
    rows = list(allocations)
    live = [a for a in rows if a.status != "rejected"]
    if not live:
        return REJECTED if rows else UNALLOCATED
    if any(a.status == "approved" for a in live):
        return APPROVED
    total = sum((a.allocated_amount_usd for a in live), Decimal("0"))
    return FULLY_ALLOCATED if pool_matches(total, pool_amount_usd) else PARTIAL


def validate_allocation(items: Sequence[AllocationItem], pool_amount_usd: Decimal) -> None:
    """Raise unless the items can be saved against the pool."""
    if not items:
        raise ValidationError("Add at least one team member")
    employee_ids = [i.employee_id for i in items]
    if len(set(employee_ids)) != len(employee_ids):
        raise ValidationError("Each team member can only be allocated once")
    if any(i.amount_usd < 0 for i in items):
        raise ValidationError("Allocated amounts cannot be negative")
    if any(i.team_role is not None and i.team_role not in TEAM_ROLES for i in items):
        raise ValidationError("Unknown team role")

    total = sum((i.amount_usd for i in items), Decimal("0"))
    if not pool_matches(total, pool_amount_usd):
        raise ValidationError(
            f"Allocated total {total:.2f} must equal the pool amount {pool_amount_usd:.2f} "
            f"(remaining {pool_amount_usd - total:.2f})"
        )


class DealTeamSpiffService:
    """Service for deal-team SPIFF configuration and allocations."""

    def __init__(self, session: AsyncSession, events: EventEmitter | None = None):
        self.session = session
        self.events = events or EventEmitter()

    # =========================================================================
    # Configuration and eligibility
    # =========================================================================

    async def get_config(self) -> DealTeamSpiffConfig:
        """Active configuration, or the defaults when none is stored."""
        result = await self.session.execute(
            select(DealTeamSpiffConfig)
            .where(DealTeamSpiffConfig.is_active.is_(True))
            .order_by(DealTeamSpiffConfig.created_at.desc())
            .limit(1)
        )
        config = result.scalar_one_or_none()
        if config is None:
            config = DealTeamSpiffConfig(
                spiff_pool_amount_usd=DEFAULT_POOL_USD,
                min_deal_arr_usd=DEFAULT_MIN_DEAL_ARR_USD,
                is_active=True,
            )
        return config

    async def update_config(
        self,
        spiff_pool_amount_usd: Decimal | None = None,
        min_deal_arr_usd: Decimal | None = None,
    ) -> DealTeamSpiffConfig:
        config = await self.get_config()
        if spiff_pool_amount_usd is not None:
            if spiff_pool_amount_usd <= 0:
                raise ValidationError("Pool amount must be greater than 0")
            config.spiff_pool_amount_usd = spiff_pool_amount_usd
        if min_deal_arr_usd is not None:
            if min_deal_arr_usd < 0:
                raise ValidationError("Minimum deal ARR cannot be negative")
            config.min_deal_arr_usd = min_deal_arr_usd
        self.session.add(config)
        await self.session.flush()

        self.events.emit(EntityChanged.of(EntityType.DEAL_TEAM_SPIFF, ChangeKind.UPDATED, config.id))
        return config

    async def eligible_deals(self, year: int) -> list[Deal]:
        """Deals in the year whose new-software ARR reaches the threshold."""
        config = await self.get_config()
        result = await self.session.execute(
            select(Deal)
            .where(
                Deal.month_year.like(f"{year}-%"),
                Deal.new_software_booking_arr_usd >= config.min_deal_arr_usd,
            )
            .order_by(Deal.month_year.desc(), Deal.project_id)
        )
        return list(result.scalars().all())

    # =========================================================================
    # Allocations
    # =========================================================================

    async def get_allocations(self, deal_id: UUID) -> list[DealTeamSpiffAllocation]:
        result = await self.session.execute(
            select(DealTeamSpiffAllocation)
            .where(DealTeamSpiffAllocation.deal_id == deal_id)
            .order_by(DealTeamSpiffAllocation.created_at)
        )
        return list(result.scalars().all())

    async def get_status(self, deal_id: UUID) -> str:
        config = await self.get_config()
        return allocation_status(await self.get_allocations(deal_id), config.spiff_pool_amount_usd)

    async def is_read_only(self, deal_id: UUID) -> bool:
        return any(a.status == "approved" for a in await self.get_allocations(deal_id))

    async def save_allocations(
        self,
        deal_id: UUID,
        items: Sequence[AllocationItem],
        payout_month: str | None = None,
    ) -> list[DealTeamSpiffAllocation]:
        """Replace the deal's unapproved allocations with pending rows."""
        deal = await self.session.get(Deal, deal_id)
        if deal is None:
            raise NotFoundError("Deal", deal_id)

        config = await self.get_config()
        existing = await self.get_allocations(deal_id)
        status = allocation_status(existing, config.spiff_pool_amount_usd)
        if status == APPROVED:
            raise InvalidTransitionError(status, "pending", "Approved allocations are read-only")

        validate_allocation(items, config.spiff_pool_amount_usd)

        month = payout_month or deal.month_year
        currencies = CurrencyService(self.session)
        rows: list[DealTeamSpiffAllocation] = []
        for item in items:
            if item.amount_usd <= 0:
                continue
            employee = await self.session.get(Employee, item.employee_id)
            if employee is None:
                raise NotFoundError("Employee", item.employee_id)
            rate = await currencies.rate_for(employee.local_currency, month)
            rows.append(
                DealTeamSpiffAllocation(
                    deal_id=deal_id,
                    employee_id=item.employee_id,
                    team_role=item.team_role,
                    allocated_amount_usd=item.amount_usd,
                    allocated_amount_local=to_local(item.amount_usd, rate),
                    local_currency=employee.local_currency,
                    exchange_rate_used=rate,
                    status="pending",
                    notes=item.notes,
                    payout_month=month,
                )
            )

        await self.session.execute(
            delete(DealTeamSpiffAllocation).where(
                DealTeamSpiffAllocation.deal_id == deal_id,
                DealTeamSpiffAllocation.status != "approved",
            )
        )
        self.session.add_all(rows)
        await self.session.flush()
        logger.info("Saved %d allocation(s) for deal %s", len(rows), deal.project_id)

        self.events.emit(
            EntityChanged.of(
                EntityType.DEAL_TEAM_SPIFF, ChangeKind.UPDATED, *(r.id for r in rows), scope_id=deal_id
            )
        )
        return rows

    async def approve(self, deal_id: UUID, actor_user_id: UUID | None = None) -> list[DealTeamSpiffAllocation]:
        """Approve every pending allocation once the pool is fully allocated."""
        config = await self.get_config()
        allocations = await self.get_allocations(deal_id)
        status = allocation_status(allocations, config.spiff_pool_amount_usd)
        if status != FULLY_ALLOCATED:
            raise InvalidTransitionError(
                status, APPROVED, "The pool must be fully allocated before approval"
            )

        now = datetime.now(timezone.utc)
        pending = [a for a in allocations if a.status == "pending"]
        for allocation in pending:
            allocation.status = "approved"
            allocation.approved_by = actor_user_id
            allocation.approved_at = now
        await self.session.flush()

        self.events.emit(
            EntityChanged.of(
                EntityType.DEAL_TEAM_SPIFF, ChangeKind.UPDATED, *(a.id for a in pending), scope_id=deal_id
            )
        )
        return pending

    async def reject(self, deal_id: UUID, actor_user_id: UUID | None = None) -> list[DealTeamSpiffAllocation]:
        """Reject the deal's pending allocations."""
        config = await self.get_config()
        allocations = await self.get_allocations(deal_id)
        status = allocation_status(allocations, config.spiff_pool_amount_usd)
        if status not in (FULLY_ALLOCATED, PARTIAL):
            raise InvalidTransitionError(status, REJECTED, "Nothing pending to reject")

        pending = [a for a in allocations if a.status == "pending"]
        for allocation in pending:
            allocation.status = "rejected"
            allocation.approved_by = actor_user_id
        await self.session.flush()

        self.events.emit(
            EntityChanged.of(
                EntityType.DEAL_TEAM_SPIFF, ChangeKind.UPDATED, *(a.id for a in pending), scope_id=deal_id
            )
        )
        return pending
