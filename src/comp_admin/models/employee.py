"""Employee and login profile models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from comp_admin.models.base import Base, UpdatedAtMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from comp_admin.models.plan import UserTarget


class Employee(UUIDPrimaryKeyMixin, UpdatedAtMixin, Base):
    """Employee master record, soft-deactivated via is_active."""

    __tablename__ = "employees"

    employee_id: Mapped[str] = mapped_column(String, nullable=False)
    full_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str] = mapped_column(String, nullable=False)
    designation: Mapped[str | None] = mapped_column(String, nullable=True)
    country: Mapped[str | None] = mapped_column(String, nullable=True)
    city: Mapped[str | None] = mapped_column(String, nullable=True)
    date_of_hire: Mapped[date | None] = mapped_column(Date, nullable=True)
    departure_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Org attributes
    department: Mapped[str | None] = mapped_column(String, nullable=True)
    region: Mapped[str | None] = mapped_column(String, nullable=True)
    group_name: Mapped[str | None] = mapped_column(String, nullable=True)
    business_unit: Mapped[str | None] = mapped_column(String, nullable=True)
    function_area: Mapped[str | None] = mapped_column(String, nullable=True)
    sales_function: Mapped[str | None] = mapped_column(String, nullable=True)
    manager_employee_id: Mapped[str | None] = mapped_column(String, nullable=True)

    # Compensation
    local_currency: Mapped[str] = mapped_column(String, nullable=False, default="USD")
    target_bonus_percent: Mapped[Decimal | None] = mapped_column(Numeric(7, 2), nullable=True)
    target_bonus_usd: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("employee_id", name="employees_employee_id_unique"),
        UniqueConstraint("email", name="employees_email_unique"),
    )


class Profile(UUIDPrimaryKeyMixin, UpdatedAtMixin, Base):
    """Login profile linked to an employee by email."""

    __tablename__ = "profiles"

    email: Mapped[str] = mapped_column(String, nullable=False)
    full_name: Mapped[str | None] = mapped_column(String, nullable=True)
    employee_id: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (UniqueConstraint("email", name="profiles_email_unique"),)

    # Relationships
    targets: Mapped[list[UserTarget]] = relationship(back_populates="profile")
