"""Multiplier grid validation, default seeding, and editing.

A grid is a list of (min%, max%, multiplier) tiers for one plan metric.
Tiers are checked in min_pct order: each needs min < max and the next
tier may touch but not overlap the previous one. Gaps are allowed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, Sequence
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from comp_admin.errors import NotFoundError, ValidationError
from comp_admin.events import ChangeKind, EntityChanged, EntityType, EventEmitter
from comp_admin.models import MultiplierTier, PlanMetric

logger = logging.getLogger(__name__)


class TierLike(Protocol):
    min_pct: Decimal
    max_pct: Decimal
    multiplier_value: Decimal


@dataclass(frozen=True)
class GridTier:
    """Editable tier value."""

    min_pct: Decimal
    max_pct: Decimal
    multiplier_value: Decimal

    @classmethod
    def of(cls, min_pct: object, max_pct: object, multiplier_value: object) -> GridTier:
        return cls(Decimal(str(min_pct)), Decimal(str(max_pct)), Decimal(str(multiplier_value)))

    @classmethod
    def from_row(cls, row: TierLike) -> GridTier:
        return cls.of(row.min_pct, row.max_pct, row.multiplier_value)


DEFAULT_GRIDS: dict[str, list[tuple[int, int, str]]] = {
    "Stepped_Accelerator": [(0, 100, "1.0"), (100, 120, "1.4"), (120, 999, "1.6")],
    "Gated_Threshold": [(0, 85, "0"), (85, 95, "0.8"), (95, 100, "1.0"), (100, 999, "1.2")],
    "Linear": [(0, 999, "1.0")],
}


def default_grid(logic_type: str) -> list[GridTier]:
    """Seed tiers for a metric that has no grid yet."""
    rows = DEFAULT_GRIDS.get(logic_type, DEFAULT_GRIDS["Linear"])
    return [GridTier.of(lo, hi, mult) for lo, hi, mult in rows]


def validate_grid(tiers: Sequence[TierLike]) -> str | None:
    """Return the first problem with the grid, or None if it can be saved.

    Row numbers in messages are 1-based positions after sorting by min_pct.
    """
    if not tiers:
        return "At least one multiplier tier is required"

    ordered = sorted(tiers, key=lambda t: t.min_pct)

    for i, tier in enumerate(ordered):
        if tier.min_pct >= tier.max_pct:
            return f"Row {i + 1}: Min must be less than Max"
        if i > 0 and tier.min_pct < ordered[i - 1].max_pct:
            return "Overlap detected between tiers"

    return None


class GridDraft:
    """In-progress edit of a metric's grid against its persisted baseline."""

    ROW_SPAN = Decimal("20")

    def __init__(self, baseline: Sequence[TierLike], logic_type: str = "Linear"):
        self.baseline = [GridTier.from_row(t) for t in baseline]
        self.logic_type = logic_type
        # Seeded defaults have never been stored, so they count as a change
        self.seeded = not self.baseline
        self.rows: list[GridTier] = list(self.baseline) if self.baseline else default_grid(logic_type)

    def add_row(self) -> GridTier:
        """Append a tier starting where the last one ends."""
        start = self.rows[-1].max_pct if self.rows else Decimal("0")
        tier = GridTier(start, start + self.ROW_SPAN, Decimal("1.0"))
        self.rows.append(tier)
        return tier

    def remove_row(self, index: int) -> None:
        del self.rows[index]

    def update_row(
        self,
        index: int,
        min_pct: object | None = None,
        max_pct: object | None = None,
        multiplier_value: object | None = None,
    ) -> GridTier:
        current = self.rows[index]
        tier = GridTier.of(
            current.min_pct if min_pct is None else min_pct,
            current.max_pct if max_pct is None else max_pct,
            current.multiplier_value if multiplier_value is None else multiplier_value,
        )
        self.rows[index] = tier
        return tier

    def validation_error(self) -> str | None:
        return validate_grid(self.rows)

    @property
    def has_changes(self) -> bool:
        return self.seeded or self.rows != self.baseline

    @property
    def can_save(self) -> bool:
        return self.has_changes and self.validation_error() is None


class MultiplierGridService:
    """Loads and saves a metric's multiplier grid."""

    def __init__(self, session: AsyncSession, events: EventEmitter | None = None):
        self.session = session
        self.events = events or EventEmitter()

    async def _get_metric(self, metric_id: UUID) -> PlanMetric:
        metric = await self.session.get(PlanMetric, metric_id)
        if metric is None:
            raise NotFoundError("Plan metric", metric_id)
        return metric

    async def get_tiers(self, metric_id: UUID) -> list[MultiplierTier]:
        result = await self.session.execute(
            select(MultiplierTier)
            .where(MultiplierTier.plan_metric_id == metric_id)
            .order_by(MultiplierTier.min_pct)
        )
        return list(result.scalars().all())

    async def load_draft(self, metric_id: UUID) -> GridDraft:
        metric = await self._get_metric(metric_id)
        return GridDraft(await self.get_tiers(metric_id), metric.logic_type)

    async def save(self, metric_id: UUID, draft: GridDraft) -> list[MultiplierTier]:
        """Replace the metric's tiers with the draft rows."""
        if not draft.has_changes:
            raise ValidationError("No changes to save")
        error = draft.validation_error()
        if error:
            raise ValidationError(error)
        return await self.replace_tiers(metric_id, draft.rows)

    async def replace_tiers(
        self, metric_id: UUID, tiers: Sequence[TierLike]
    ) -> list[MultiplierTier]:
        """Validate and store a complete grid, discarding the old tiers."""
        error = validate_grid(tiers)
        if error:
            raise ValidationError(error)
        metric = await self._get_metric(metric_id)

        await self.session.execute(
            delete(MultiplierTier).where(MultiplierTier.plan_metric_id == metric_id)
        )
        rows = [
            MultiplierTier(
                plan_metric_id=metric_id,
                min_pct=t.min_pct,
                max_pct=t.max_pct,
                multiplier_value=t.multiplier_value,
            )
            for t in sorted(tiers, key=lambda t: t.min_pct)
        ]
        self.session.add_all(rows)
        await self.session.flush()
        logger.info("Saved %d multiplier tier(s) for metric %s", len(rows), metric_id)

        self.events.emit(
            EntityChanged.of(
                EntityType.MULTIPLIER_GRID,
                ChangeKind.UPDATED,
                *(r.id for r in rows),
                scope_id=metric.plan_id,
                metric_id=str(metric_id),
            )
        )
        return rows
