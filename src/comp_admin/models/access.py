"""Role and permission models."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Boolean, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from comp_admin.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class RoleDefinition(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Named role; `name` is a machine slug fixed at creation."""

    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String, nullable=False)
    label: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    color: Mapped[str] = mapped_column(String, nullable=False, default="gray")
    is_system_role: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (UniqueConstraint("name", name="roles_name_unique"),)


class UserRole(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Assignment of a role to a login profile."""

    __tablename__ = "user_roles"

    user_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    role: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "role", name="user_roles_user_role_unique"),)


class RolePermission(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Permission grant for a role."""

    __tablename__ = "role_permissions"

    role: Mapped[str] = mapped_column(String, nullable=False)
    permission_key: Mapped[str] = mapped_column(String, nullable=False)
    is_allowed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("role", "permission_key", name="role_permissions_role_key_unique"),
    )
