"""Currency and exchange rate service."""

from __future__ import annotations

import logging
import re
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from comp_admin.config import settings
from comp_admin.errors import ConflictError, NotFoundError, ValidationError
from comp_admin.events import ChangeKind, EntityChanged, EntityType, EventEmitter
from comp_admin.models import Currency, Employee, ExchangeRate

logger = logging.getLogger(__name__)

BASE_CURRENCY = settings.base_currency

_MONTH_YEAR = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def normalise_code(code: str | None) -> str:
    """Trim and upper-case a currency code, checking its length."""
    normalised = (code or "").strip().upper()
    if not normalised:
        raise ValidationError("Code and Name are required")
    if not 2 <= len(normalised) <= 5:
        raise ValidationError("Currency code must be 2-5 characters")
    return normalised


class CurrencyService:
    """Service for the currency master and monthly exchange rates.

    USD is the protected base entry: it cannot be deleted and only its
    active flag can change.
    """

    def __init__(self, session: AsyncSession, events: EventEmitter | None = None):
        self.session = session
        self.events = events or EventEmitter()

    async def get_currency(self, code: str) -> Currency | None:
        result = await self.session.execute(
            select(Currency).where(Currency.code == code.strip().upper())
        )
        return result.scalar_one_or_none()

    async def list_currencies(self, active_only: bool = False) -> list[Currency]:
        query = select(Currency).order_by(Currency.code)
        if active_only:
            query = query.where(Currency.is_active.is_(True))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def create_currency(
        self,
        code: str,
        name: str,
        symbol: str | None = None,
        is_active: bool = True,
    ) -> Currency:
        if not name or not name.strip():
            raise ValidationError("Code and Name are required")
        code = normalise_code(code)

        if await self.get_currency(code) is not None:
            raise ConflictError("This currency code already exists")

        currency = Currency(
            code=code,
            name=name.strip(),
            symbol=(symbol or "").strip() or code,
            is_active=is_active,
        )
        self.session.add(currency)
        await self.session.flush()

        self.events.emit(EntityChanged.of(EntityType.CURRENCY, ChangeKind.CREATED, currency.id))
        return currency

    async def update_currency(
        self,
        code: str,
        name: str | None = None,
        symbol: str | None = None,
        is_active: bool | None = None,
    ) -> Currency:
        currency = await self.get_currency(code)
        if currency is None:
            raise NotFoundError("Currency", code)

        if currency.code == BASE_CURRENCY and (name is not None or symbol is not None):
            raise ValidationError(f"{BASE_CURRENCY} is the base currency; only its status can change")

        if name is not None:
            if not name.strip():
                raise ValidationError("Code and Name are required")
            currency.name = name.strip()
        if symbol is not None:
            currency.symbol = symbol.strip() or currency.code
        if is_active is not None:
            currency.is_active = is_active
        await self.session.flush()

        self.events.emit(EntityChanged.of(EntityType.CURRENCY, ChangeKind.UPDATED, currency.id))
        return currency

    async def usage_counts(self, code: str) -> tuple[int, int]:
        """Number of employees and exchange rates referencing a currency."""
        employees = await self.session.scalar(
            select(func.count()).select_from(Employee).where(Employee.local_currency == code)
        )
        rates = await self.session.scalar(
            select(func.count())
            .select_from(ExchangeRate)
            .where(ExchangeRate.currency_code == code)
        )
        return employees or 0, rates or 0

    async def delete_currency(self, code: str) -> None:
        currency = await self.get_currency(code)
        if currency is None:
            raise NotFoundError("Currency", code)
        if currency.code == BASE_CURRENCY:
            raise ValidationError(f"{BASE_CURRENCY} is the base currency and cannot be deleted")

        employees, rates = await self.usage_counts(currency.code)
        if employees or rates:
            raise ConflictError(
                f"Cannot delete {currency.code}: used by {employees} employee(s) and "
                f"{rates} exchange rate(s). Deactivate it instead."
            )

        currency_id = currency.id
        await self.session.delete(currency)
        await self.session.flush()
        logger.info("Deleted currency %s", currency.code)

        self.events.emit(EntityChanged.of(EntityType.CURRENCY, ChangeKind.DELETED, currency_id))

    # =========================================================================
    # Exchange rates
    # =========================================================================

    async def set_exchange_rate(
        self, currency_code: str, month_year: str, rate_to_usd: Decimal
    ) -> ExchangeRate:
        """Create or replace the rate for a currency and month."""
        code = normalise_code(currency_code)
        if not _MONTH_YEAR.match(month_year or ""):
            raise ValidationError("Month must be in YYYY-MM format")
        if rate_to_usd <= 0:
            raise ValidationError("Exchange rate must be greater than 0")
        if await self.get_currency(code) is None:
            raise NotFoundError("Currency", code)

        result = await self.session.execute(
            select(ExchangeRate).where(
                ExchangeRate.currency_code == code,
                ExchangeRate.month_year == month_year,
            )
        )
        rate = result.scalar_one_or_none()
        kind = ChangeKind.UPDATED
        if rate is None:
            rate = ExchangeRate(currency_code=code, month_year=month_year, rate_to_usd=rate_to_usd)
            self.session.add(rate)
            kind = ChangeKind.CREATED
        else:
            rate.rate_to_usd = rate_to_usd
        await self.session.flush()

        self.events.emit(EntityChanged.of(EntityType.EXCHANGE_RATE, kind, rate.id))
        return rate

    async def rate_for(self, currency_code: str, month_year: str) -> Decimal:
        """Rate used to convert USD to local currency for a month.

        The base currency is always 1. Falls back to the latest earlier month.
        """
        code = currency_code.strip().upper()
        if code == BASE_CURRENCY:
            return Decimal("1")

        result = await self.session.execute(
            select(ExchangeRate.rate_to_usd)
            .where(
                ExchangeRate.currency_code == code,
                ExchangeRate.month_year <= month_year,
            )
            .order_by(ExchangeRate.month_year.desc())
            .limit(1)
        )
        rate = result.scalar_one_or_none()
        if rate is None:
            raise NotFoundError("Exchange rate", f"{code} {month_year}")
        return rate

    async def list_exchange_rates(self, month_year: str | None = None) -> list[ExchangeRate]:
        query = select(ExchangeRate).order_by(ExchangeRate.month_year.desc(), ExchangeRate.currency_code)
        if month_year is not None:
            query = query.where(ExchangeRate.month_year == month_year)
        result = await self.session.execute(query)
        return list(result.scalars().all())
