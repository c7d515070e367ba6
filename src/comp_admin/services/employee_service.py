"""Employee CRUD service."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from comp_admin.errors import ConflictError, NotFoundError, ValidationError
from comp_admin.events import ChangeKind, EntityChanged, EntityType, EventEmitter
from comp_admin.models import Employee, Profile

logger = logging.getLogger(__name__)


@dataclass
class EmployeeRecord:
    """Employee attributes as supplied by a form or an import row."""

    employee_id: str
    full_name: str
    email: str
    designation: str | None = None
    country: str | None = None
    city: str | None = None
    date_of_hire: date | None = None
    departure_date: date | None = None
    department: str | None = None
    region: str | None = None
    group_name: str | None = None
    business_unit: str | None = None
    function_area: str | None = None
    sales_function: str | None = None
    local_currency: str = "USD"
    manager_employee_id: str | None = None
    target_bonus_percent: Decimal | None = None
    target_bonus_usd: Decimal | None = None
    is_active: bool = True

    def validate(self) -> None:
        for name in ("employee_id", "full_name", "email"):
            value = getattr(self, name)
            if not value or not str(value).strip():
                raise ValidationError(f"Missing/invalid {name}")
        if "@" not in self.email:
            raise ValidationError("Missing/invalid email")

    def values(self, exclude: tuple[str, ...] = ()) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name not in exclude}


class EmployeeService:
    """Service for employee master data.

    Employees are never hard-deleted; `deactivate` clears is_active.
    """

    def __init__(self, session: AsyncSession, events: EventEmitter | None = None):
        self.session = session
        self.events = events or EventEmitter()

    async def get_employee(self, employee_id: str) -> Employee | None:
        """Load an employee by business identifier."""
        result = await self.session.execute(
            select(Employee).where(Employee.employee_id == employee_id)
        )
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Employee | None:
        result = await self.session.execute(select(Employee).where(Employee.email == email))
        return result.scalar_one_or_none()

    async def list_employees(self, active_only: bool = False) -> list[Employee]:
        query = select(Employee).order_by(Employee.full_name)
        if active_only:
            query = query.where(Employee.is_active.is_(True))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def resolve_match(self, email: str, employee_id: str) -> Employee | None:
        """Find the existing employee a record refers to.

        Email takes precedence over employee_id. When the two keys point at
        different employees the record is ambiguous and is rejected.
        """
        result = await self.session.execute(
            select(Employee).where(
                or_(Employee.email == email, Employee.employee_id == employee_id)
            )
        )
        candidates = list(result.scalars().all())
        by_email = next((e for e in candidates if e.email == email), None)
        by_code = next((e for e in candidates if e.employee_id == employee_id), None)

        if by_email is not None and by_code is not None and by_email.id != by_code.id:
            raise ConflictError(
                f"employee_id {employee_id} belongs to a different employee than email {email}"
            )
        return by_email or by_code

    async def upsert_employee(
        self,
        record: EmployeeRecord,
        publish: bool = True,
        preserve: tuple[str, ...] = (),
    ) -> tuple[Employee, bool]:
        """Insert the employee if absent, otherwise update it.

        Fields named in `preserve` keep their stored values on update.
        Returns the row and whether it was created.
        """
        record.validate()
        existing = await self.resolve_match(record.email, record.employee_id)

        if existing is None:
            employee = Employee(**record.values())
            self.session.add(employee)
            created = True
        else:
            employee = existing
            for key, value in record.values(exclude=preserve).items():
                setattr(employee, key, value)
            created = False

        await self.session.flush()

        if publish:
            self.events.emit(
                EntityChanged.of(
                    EntityType.EMPLOYEE,
                    ChangeKind.CREATED if created else ChangeKind.UPDATED,
                    employee.id,
                )
            )
        return employee, created

    async def deactivate(self, employee_id: str) -> Employee:
        """Soft-deactivate an employee."""
        employee = await self.get_employee(employee_id)
        if employee is None:
            raise NotFoundError("Employee", employee_id)

        employee.is_active = False
        await self.session.flush()
        logger.info("Deactivated employee %s", employee_id)

        self.events.emit(EntityChanged.of(EntityType.EMPLOYEE, ChangeKind.UPDATED, employee.id))
        return employee

    async def get_profile_by_email(self, email: str) -> Profile | None:
        """Login profile linked to an employee's email."""
        result = await self.session.execute(select(Profile).where(Profile.email == email))
        return result.scalar_one_or_none()
