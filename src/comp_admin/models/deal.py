"""Deal and deal-team SPIFF models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from comp_admin.models.base import Base, TimestampMixin, UpdatedAtMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from comp_admin.models.employee import Employee


class Deal(UUIDPrimaryKeyMixin, UpdatedAtMixin, Base):
    """Booked deal."""

    __tablename__ = "deals"

    project_id: Mapped[str] = mapped_column(String, nullable=False)
    customer_name: Mapped[str | None] = mapped_column(String, nullable=True)
    month_year: Mapped[str] = mapped_column(String(7), nullable=False)
    new_software_booking_arr_usd: Mapped[Decimal | None] = mapped_column(
        Numeric(16, 2), nullable=True
    )
    tcv_usd: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")

    # Relationships
    team_allocations: Mapped[list[DealTeamSpiffAllocation]] = relationship(
        back_populates="deal", cascade="all, delete-orphan"
    )


class DealTeamSpiffConfig(UUIDPrimaryKeyMixin, UpdatedAtMixin, Base):
    """Pool size and eligibility threshold for deal-team SPIFFs."""

    __tablename__ = "deal_team_spiff_config"

    spiff_pool_amount_usd: Mapped[Decimal] = mapped_column(
        Numeric(16, 2), nullable=False, default=Decimal("10000")
    )
    min_deal_arr_usd: Mapped[Decimal] = mapped_column(
        Numeric(16, 2), nullable=False, default=Decimal("400000")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class DealTeamSpiffAllocation(UUIDPrimaryKeyMixin, UpdatedAtMixin, Base):
    """Share of a deal's SPIFF pool granted to one team member."""

    __tablename__ = "deal_team_spiff_allocations"

    deal_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("deals.id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id"),
        nullable=False,
    )
    team_role: Mapped[str | None] = mapped_column(String, nullable=True)
    allocated_amount_usd: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)
    allocated_amount_local: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)
    local_currency: Mapped[str] = mapped_column(String, nullable=False, default="USD")
    exchange_rate_used: Mapped[Decimal] = mapped_column(
        Numeric(18, 8), nullable=False, default=Decimal("1")
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    approved_by: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(String, nullable=True)
    payout_month: Mapped[str | None] = mapped_column(String(7), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="deal_team_spiff_allocations_status_check",
        ),
    )

    # Relationships
    deal: Mapped[Deal] = relationship(back_populates="team_allocations")
    employee: Mapped[Employee] = relationship()
