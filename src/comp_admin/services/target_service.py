"""Plan assignment and performance target service.

Both target tables are written with the database's native
insert-on-conflict so concurrent writers cannot create duplicates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from comp_admin.errors import NotFoundError, ValidationError
from comp_admin.events import ChangeKind, EntityChanged, EntityType, EventEmitter
from comp_admin.models import CompPlan, Employee, PerformanceTarget, Profile, UserTarget

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

USER_TARGET_FIELDS = (
    "effective_end_date",
    "target_value_annual",
    "currency",
    "target_bonus_percent",
    "tfp_local_currency",
    "ote_local_currency",
    "tfp_usd",
    "target_bonus_usd",
    "ote_usd",
)


@dataclass(frozen=True)
class QuarterlyTargets:
    """Four quarterly targets; the annual figure is always their sum."""

    q1: Decimal = ZERO
    q2: Decimal = ZERO
    q3: Decimal = ZERO
    q4: Decimal = ZERO

    @property
    def annual(self) -> Decimal:
        return self.q1 + self.q2 + self.q3 + self.q4

    def validate(self) -> None:
        quarters = (self.q1, self.q2, self.q3, self.q4)
        if any(q < 0 for q in quarters):
            raise ValidationError("Negative values not allowed")
        if not any(q > 0 for q in quarters):
            raise ValidationError("At least one quarter must have value > 0")


def _insert_for(session: AsyncSession, table: Any) -> Any:
    """Dialect-specific INSERT supporting ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Upsert is not supported on {dialect}")


class TargetService:
    """Service for plan assignments (user targets) and performance targets."""

    def __init__(self, session: AsyncSession, events: EventEmitter | None = None):
        self.session = session
        self.events = events or EventEmitter()

    # =========================================================================
    # Plan assignments
    # =========================================================================

    async def assign_plan(
        self,
        user_id: UUID,
        plan_id: UUID,
        effective_start_date: date,
        publish: bool = True,
        **fields: Any,
    ) -> UserTarget:
        """Upsert the assignment keyed by (user, plan, effective_start_date)."""
        unknown = set(fields) - set(USER_TARGET_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown target field(s): {', '.join(sorted(unknown))}")
        end = fields.get("effective_end_date")
        if end is not None and end < effective_start_date:
            raise ValidationError("Effective end date must not precede the start date")
        if await self.session.get(Profile, user_id) is None:
            raise NotFoundError("Profile", user_id)
        if await self.session.get(CompPlan, plan_id) is None:
            raise NotFoundError("Plan", plan_id)

        values = {
            "user_id": user_id,
            "plan_id": plan_id,
            "effective_start_date": effective_start_date,
            **fields,
        }
        if values.get("target_value_annual") is None:
            values["target_value_annual"] = ZERO
        if not values.get("currency"):
            values["currency"] = "USD"

        await self.session.flush()
        stmt = _insert_for(self.session, UserTarget).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "plan_id", "effective_start_date"],
            set_={
                **{k: stmt.excluded[k] for k in values if k in USER_TARGET_FIELDS},
                "updated_at": func.now(),
            },
        ).returning(UserTarget.id)
        target_id = (await self.session.execute(stmt)).scalar_one()

        target = await self._reload(UserTarget, target_id)
        if publish:
            self.events.emit(
                EntityChanged.of(EntityType.USER_TARGET, ChangeKind.UPDATED, target.id)
            )
        return target

    async def list_assignments(self, plan_id: UUID | None = None) -> list[UserTarget]:
        query = select(UserTarget).order_by(UserTarget.effective_start_date)
        if plan_id is not None:
            query = query.where(UserTarget.plan_id == plan_id)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    # =========================================================================
    # Performance targets
    # =========================================================================

    async def get_performance_target(
        self, employee_id: str, metric_type: str, effective_year: int
    ) -> PerformanceTarget | None:
        result = await self.session.execute(
            select(PerformanceTarget).where(
                PerformanceTarget.employee_id == employee_id,
                PerformanceTarget.metric_type == metric_type,
                PerformanceTarget.effective_year == effective_year,
            )
        )
        return result.scalar_one_or_none()

    async def list_performance_targets(self, effective_year: int) -> list[PerformanceTarget]:
        result = await self.session.execute(
            select(PerformanceTarget)
            .where(PerformanceTarget.effective_year == effective_year)
            .order_by(PerformanceTarget.employee_id, PerformanceTarget.metric_type)
        )
        return list(result.scalars().all())

    async def upsert_performance_target(
        self,
        employee_id: str,
        metric_type: str,
        effective_year: int,
        quarters: QuarterlyTargets,
        publish: bool = True,
    ) -> tuple[PerformanceTarget, bool]:
        """Insert or replace quarterly targets. Returns the row and whether it was new."""
        if not employee_id or not employee_id.strip():
            raise ValidationError("Missing employee_id")
        if not metric_type or not metric_type.strip():
            raise ValidationError("Missing metric_type")
        quarters.validate()

        exists = await self.session.execute(
            select(Employee.id).where(Employee.employee_id == employee_id)
        )
        if exists.first() is None:
            raise NotFoundError("Employee", f'"{employee_id}"')

        created = (
            await self.get_performance_target(employee_id, metric_type, effective_year)
        ) is None

        await self.session.flush()
        stmt = _insert_for(self.session, PerformanceTarget).values(
            employee_id=employee_id,
            metric_type=metric_type.strip(),
            effective_year=effective_year,
            q1_target_usd=quarters.q1,
            q2_target_usd=quarters.q2,
            q3_target_usd=quarters.q3,
            q4_target_usd=quarters.q4,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["employee_id", "metric_type", "effective_year"],
            set_={
                "q1_target_usd": stmt.excluded.q1_target_usd,
                "q2_target_usd": stmt.excluded.q2_target_usd,
                "q3_target_usd": stmt.excluded.q3_target_usd,
                "q4_target_usd": stmt.excluded.q4_target_usd,
                "updated_at": func.now(),
            },
        ).returning(PerformanceTarget.id)
        target_id = (await self.session.execute(stmt)).scalar_one()

        target = await self._reload(PerformanceTarget, target_id)
        if publish:
            self.events.emit(
                EntityChanged.of(
                    EntityType.PERFORMANCE_TARGET,
                    ChangeKind.CREATED if created else ChangeKind.UPDATED,
                    target.id,
                )
            )
        return target, created

    async def _reload(self, model: Any, row_id: UUID) -> Any:
        result = await self.session.execute(
            select(model).where(model.id == row_id).execution_options(populate_existing=True)
        )
        return result.scalar_one()
