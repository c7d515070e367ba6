"""Tests for currencies, exchange rates, roles, commissions and targets."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from comp_admin.errors import ConflictError, NotFoundError, ValidationError
from comp_admin.models import Employee, Profile
from comp_admin.services.commission_service import (
    CommissionService,
    validate_commission,
    validate_payout_split,
    validate_spiff,
)
from comp_admin.services.currency_service import CurrencyService
from comp_admin.services.role_service import RoleService, slugify
from comp_admin.services.target_service import QuarterlyTargets, TargetService

pytestmark = pytest.mark.asyncio


class UntouchableSession:
    """Fails the test if a service reaches the database."""

    def __getattr__(self, name):
        raise AssertionError(f"session.{name} used")


class TestCurrencies:
    async def test_create_normalises_code(self, session, events):
        currency = await CurrencyService(session, events).create_currency(" eur ", "Euro")

        assert currency.code == "EUR"
        assert currency.symbol == "EUR"
        with pytest.raises(ConflictError, match="already exists"):
            await CurrencyService(session).create_currency("EUR", "Euro again")

    async def test_code_rules(self, session):
        service = CurrencyService(session)
        with pytest.raises(ValidationError, match="Code and Name are required"):
            await service.create_currency("GBP", " ")
        with pytest.raises(ValidationError, match="2-5 characters"):
            await service.create_currency("EURODOLLAR", "Too long")

    async def test_delete_in_use_reports_counts(self, session):
        service = CurrencyService(session)
        await service.create_currency("EUR", "Euro", "€")
        await service.set_exchange_rate("EUR", "2025-01", Decimal("0.92"))
        await service.set_exchange_rate("EUR", "2025-02", Decimal("0.93"))
        session.add(Employee(employee_id="E5", full_name="Eva Berg", email="eva@example.com", local_currency="EUR"))
        await session.flush()

        with pytest.raises(ConflictError) as exc_info:
            await service.delete_currency("EUR")

        assert str(exc_info.value) == (
            "Cannot delete EUR: used by 1 employee(s) and 2 exchange rate(s). Deactivate it instead."
        )

    async def test_delete_unused(self, session, events):
        service = CurrencyService(session, events)
        await service.create_currency("SGD", "Singapore Dollar")
        await service.delete_currency("SGD")
        assert await service.get_currency("SGD") is None

    async def test_base_currency_is_protected(self, session):
        service = CurrencyService(session)
        await service.create_currency("USD", "US Dollar", "$")

        with pytest.raises(ValidationError, match="cannot be deleted"):
            await service.delete_currency("USD")
        with pytest.raises(ValidationError, match="only its status can change"):
            await service.update_currency("USD", name="Dollar")

        updated = await service.update_currency("USD", is_active=False)
        assert updated.is_active is False

    async def test_set_rate_replaces_existing(self, session, inr_employee):
        service = CurrencyService(session)
        await service.set_exchange_rate("INR", "2025-02", Decimal("84.25"))

        rates = await service.list_exchange_rates("2025-02")
        assert [(r.currency_code, r.rate_to_usd) for r in rates] == [("INR", Decimal("84.25"))]

        with pytest.raises(ValidationError, match="YYYY-MM"):
            await service.set_exchange_rate("INR", "2025-2", Decimal("84"))
        with pytest.raises(ValidationError, match="greater than 0"):
            await service.set_exchange_rate("INR", "2025-03", Decimal("0"))

    async def test_rate_lookup_falls_back_to_earlier_month(self, session, inr_employee):
        service = CurrencyService(session)

        assert await service.rate_for("USD", "2025-06") == Decimal("1")
        assert await service.rate_for("INR", "2025-01") == Decimal("83.50")
        assert await service.rate_for("inr", "2025-06") == Decimal("84.00")
        with pytest.raises(NotFoundError):
            await service.rate_for("INR", "2024-12")


class TestRoles:
    async def test_slugify(self):
        assert slugify("Sales Head") == "sales_head"
        assert slugify("  RevOps / Finance ") == "revops_finance"

    async def test_create_and_duplicate(self, session, events):
        service = RoleService(session, events)
        role = await service.create_role("Sales Head", color="blue")

        assert role.name == "sales_head"
        with pytest.raises(ConflictError):
            await service.create_role("sales head")

    async def test_assignments_and_permissions(self, session):
        service = RoleService(session)
        await service.create_role("Finance")
        await service.create_role("Sales Ops")
        user = uuid4()

        assert await service.set_user_roles(user, ["sales_ops", "finance", "finance"]) == ["finance", "sales_ops"]
        assert await service.set_user_roles(user, ["finance"]) == ["finance"]
        assert await service.roles_for_user(user) == ["finance"]

        await service.set_permission("finance", "payouts.approve", True)
        await service.set_permission("sales_ops", "plans.edit", True)
        await service.set_permission("finance", "plans.edit", False)
        assert await service.permissions_for(["finance"]) == {"payouts.approve"}
        assert await service.permissions_for([]) == set()

        with pytest.raises(NotFoundError):
            await service.set_user_roles(user, ["ghost"])

    async def test_delete_custom_role_cascades(self, session):
        service = RoleService(session)
        await service.create_role("Auditor")
        user = uuid4()
        await service.set_user_roles(user, ["auditor"])
        await service.set_permission("auditor", "reports.view", True)

        await service.delete_role("auditor")

        assert await service.roles_for_user(user) == []
        assert await service.permissions_for(["auditor"]) == set()

    async def test_system_role_cannot_be_deleted(self, session):
        service = RoleService(session)
        role = await service.create_role("Admin")
        role.is_system_role = True
        await session.flush()

        with pytest.raises(ValidationError, match="cannot be deleted"):
            await service.delete_role("admin")


class TestCommissions:
    async def test_duplicate_rejected_before_database(self):
        service = CommissionService(UntouchableSession())

        with pytest.raises(ValidationError, match="Commission type 'managed services' already exists"):
            await service.create_commission(
                uuid4(),
                "managed services",
                Decimal("2"),
                existing_types=["Managed Services"],
            )

    async def test_duplicate_checked_against_stored_types(self, session, plan, events):
        service = CommissionService(session, events)
        with pytest.raises(ValidationError, match="already exists in this plan"):
            await service.create_commission(plan.id, " Managed Services ", Decimal("2"))

        created = await service.create_commission(plan.id, "Perpetual License", Decimal("4"))
        assert created.commission_type == "Perpetual License"
        assert [c.commission_type for c in await service.list_commissions(plan.id)] == [
            "Managed Services",
            "Perpetual License",
        ]

    async def test_update_rejects_unknown_fields(self, session, plan, events):
        service = CommissionService(session, events)
        commission = (await service.list_commissions(plan.id))[0]
        spiff = (await service.list_spiffs(plan.id))[0]

        with pytest.raises(ValidationError, match="Unknown commission field 'plan_id'"):
            await service.update_commission(commission.id, plan_id=uuid4(), commission_rate_pct=Decimal("3"))
        with pytest.raises(ValidationError, match="Unknown SPIFF field 'id'"):
            await service.update_spiff(spiff.id, id=uuid4())

        assert commission.plan_id == plan.id
        assert commission.commission_rate_pct != Decimal("3")
        assert events.dispatched == []

        updated = await service.update_commission(commission.id, commission_rate_pct=Decimal("3"))
        assert updated.commission_rate_pct == Decimal("3")

    async def test_rate_bounds(self):
        with pytest.raises(ValidationError, match="Commission type is required"):
            validate_commission("  ", Decimal("1"))
        with pytest.raises(ValidationError, match="Rate must be at least 0%"):
            validate_commission("CR/ER", Decimal("-0.5"))
        with pytest.raises(ValidationError, match="Rate cannot exceed 100%"):
            validate_commission("CR/ER", Decimal("100.01"))
        assert validate_commission(" CR/ER ", Decimal("0")) == "CR/ER"

    async def test_payout_split(self):
        validate_payout_split(Decimal("75"), Decimal("25"), Decimal("0"))
        with pytest.raises(ValidationError, match="must total 100"):
            validate_payout_split(Decimal("75"), Decimal("20"), Decimal("0"))
        with pytest.raises(ValidationError, match="between 0 and 100"):
            validate_payout_split(Decimal("120"), Decimal("-20"), Decimal("0"))

    async def test_spiff_rules(self, session, plan, events):
        splits = (Decimal("0"), Decimal("100"), Decimal("0"))
        with pytest.raises(ValidationError, match="SPIFF name is required"):
            validate_spiff("", "ARR", Decimal("5"), splits)
        with pytest.raises(ValidationError, match="Linked metric is required"):
            validate_spiff("Kicker", " ", Decimal("5"), splits)
        with pytest.raises(ValidationError, match="greater than 0%"):
            validate_spiff("Kicker", "ARR", Decimal("0"), splits)

        service = CommissionService(session, events)
        with pytest.raises(NotFoundError):
            await service.create_spiff(plan.id, "Kicker", "Unknown Metric", Decimal("5"))

        spiff = await service.create_spiff(plan.id, "Kicker", "New Software Booking ARR", Decimal("5"))
        updated = await service.update_spiff(spiff.id, spiff_rate_pct=Decimal("7.5"))
        assert updated.spiff_rate_pct == Decimal("7.5")
        assert events.dispatched[-1].scope_id == plan.id

        await service.delete_spiff(spiff.id)
        assert [s.spiff_name for s in await service.list_spiffs(plan.id)] == ["Large Deal SPIFF"]


class TestTargets:
    async def test_annual_is_sum_of_quarters(self):
        quarters = QuarterlyTargets(Decimal("100"), Decimal("200"), Decimal("0"), Decimal("50.5"))
        assert quarters.annual == Decimal("350.5")

    async def test_quarter_rules(self):
        with pytest.raises(ValidationError, match="Negative values not allowed"):
            QuarterlyTargets(Decimal("-1")).validate()
        with pytest.raises(ValidationError, match="At least one quarter"):
            QuarterlyTargets().validate()

    async def test_upsert_performance_target(self, session, employee, events):
        service = TargetService(session, events)

        target, created = await service.upsert_performance_target(
            "EMP001", "Closing ARR", 2025, QuarterlyTargets(Decimal("10"), Decimal("20"))
        )
        assert created is True
        assert target.annual_target_usd == Decimal("30")

        target, created = await service.upsert_performance_target(
            "EMP001", "Closing ARR", 2025, QuarterlyTargets(q4=Decimal("40"))
        )
        assert created is False
        assert target.q1_target_usd == Decimal("0")
        assert target.annual_target_usd == Decimal("40")
        assert len(await service.list_performance_targets(2025)) == 1

        with pytest.raises(NotFoundError):
            await service.upsert_performance_target("NOBODY", "Closing ARR", 2025, QuarterlyTargets(Decimal("1")))

    async def test_assign_plan_upserts_by_start_date(self, session, employee, plan, events):
        profile = (await session.execute(select(Profile))).scalar_one()
        service = TargetService(session, events)

        first = await service.assign_plan(
            profile.id, plan.id, date(2025, 1, 1), target_bonus_usd=Decimal("25000")
        )
        second = await service.assign_plan(
            profile.id, plan.id, date(2025, 1, 1), target_bonus_usd=Decimal("30000")
        )

        assert first.id == second.id
        assert second.target_bonus_usd == Decimal("30000")
        assert second.currency == "USD"
        assert len(await service.list_assignments(plan.id)) == 1

        with pytest.raises(ValidationError, match="must not precede"):
            await service.assign_plan(
                profile.id, plan.id, date(2025, 6, 1), effective_end_date=date(2025, 1, 1)
            )
        with pytest.raises(ValidationError, match="Unknown target field"):
            await service.assign_plan(profile.id, plan.id, date(2025, 6, 1), bonus=1)
        with pytest.raises(NotFoundError):
            await service.assign_plan(uuid4(), plan.id, date(2025, 6, 1))
