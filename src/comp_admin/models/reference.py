"""Currency reference data."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Boolean, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from comp_admin.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Currency(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Currency master entry."""

    __tablename__ = "currencies"

    code: Mapped[str] = mapped_column(String(5), nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    symbol: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (UniqueConstraint("code", name="currencies_code_unique"),)


class ExchangeRate(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Monthly local-to-USD conversion rate."""

    __tablename__ = "exchange_rates"

    currency_code: Mapped[str] = mapped_column(String(5), nullable=False)
    month_year: Mapped[str] = mapped_column(String(7), nullable=False)
    rate_to_usd: Mapped[Decimal] = mapped_column(Numeric(18, 8), nullable=False)

    __table_args__ = (
        UniqueConstraint("currency_code", "month_year", name="exchange_rates_code_month_unique"),
    )
