"""Pytest fixtures for compensation admin tests."""

from __future__ import annotations

from decimal import Decimal
from typing import AsyncGenerator

import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from comp_admin.database import create_engine_for_url, create_session_factory
from comp_admin.events import EntityChanged, EventEmitter
from comp_admin.models import (
    Base,
    CompPlan,
    Currency,
    Employee,
    ExchangeRate,
    MultiplierTier,
    PlanCommission,
    PlanMetric,
    PlanSpiff,
    Profile,
)

# In-memory SQLite; SAVEPOINTs are enabled by create_engine_for_url
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def engine():
    """Fresh database per test."""
    engine = create_engine_for_url(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with create_session_factory(engine)() as session:
        yield session
        await session.rollback()


class RecordingEmitter(EventEmitter):
    """Emitter that remembers every event it dispatches."""

    def __init__(self) -> None:
        super().__init__()
        self.dispatched: list[EntityChanged] = []
        self.on_all(self.dispatched.append)


@pytest_asyncio.fixture
async def events() -> RecordingEmitter:
    return RecordingEmitter()


@pytest_asyncio.fixture
async def employee(session: AsyncSession) -> Employee:
    """An active USD employee with a login profile."""
    emp = Employee(
        employee_id="EMP001",
        full_name="Alice Able",
        email="alice@example.com",
        local_currency="USD",
        target_bonus_usd=Decimal("20000"),
        is_active=True,
    )
    session.add_all([emp, Profile(email="alice@example.com", full_name="Alice Able", employee_id="EMP001")])
    await session.flush()
    return emp


@pytest_asyncio.fixture
async def inr_employee(session: AsyncSession) -> Employee:
    """An INR-paid employee with exchange rates for early 2025."""
    emp = Employee(
        employee_id="EMP002",
        full_name="Bhavna Rao",
        email="bhavna@example.com",
        local_currency="INR",
        is_active=True,
    )
    session.add_all(
        [
            emp,
            Currency(code="INR", name="Indian Rupee", symbol="₹", is_active=True),
            ExchangeRate(currency_code="INR", month_year="2025-01", rate_to_usd=Decimal("83.50")),
            ExchangeRate(currency_code="INR", month_year="2025-02", rate_to_usd=Decimal("84.00")),
        ]
    )
    await session.flush()
    return emp


@pytest_asyncio.fixture
async def plan(session: AsyncSession) -> CompPlan:
    """A 2025 plan with one gated metric (two tiers), one commission and one spiff."""
    plan = CompPlan(name="Enterprise AE Plan", effective_year=2025, is_active=True)
    session.add(plan)
    await session.flush()

    metric = PlanMetric(
        plan_id=plan.id,
        metric_name="New Software Booking ARR",
        weightage_percent=Decimal("60"),
        logic_type="Gated_Threshold",
        gate_threshold_percent=Decimal("85"),
    )
    session.add(metric)
    await session.flush()

    session.add_all(
        [
            MultiplierTier(
                plan_metric_id=metric.id,
                min_pct=Decimal("0"),
                max_pct=Decimal("100"),
                multiplier_value=Decimal("1.0"),
            ),
            MultiplierTier(
                plan_metric_id=metric.id,
                min_pct=Decimal("100"),
                max_pct=Decimal("999"),
                multiplier_value=Decimal("1.5"),
            ),
            PlanCommission(
                plan_id=plan.id,
                commission_type="Managed Services",
                commission_rate_pct=Decimal("1.5"),
            ),
            PlanSpiff(
                plan_id=plan.id,
                spiff_name="Large Deal SPIFF",
                linked_metric_name="New Software Booking ARR",
                spiff_rate_pct=Decimal("25"),
            ),
        ]
    )
    await session.flush()
    return plan


@pytest_asyncio.fixture
async def metric(session: AsyncSession, plan: CompPlan) -> PlanMetric:
    """The plan's only metric."""
    result = await session.execute(select(PlanMetric).where(PlanMetric.plan_id == plan.id))
    return result.scalar_one()
