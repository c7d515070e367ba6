"""Role definition and permission service."""

from __future__ import annotations

import logging
import re
from typing import Iterable
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from comp_admin.errors import ConflictError, NotFoundError, ValidationError
from comp_admin.events import ChangeKind, EntityChanged, EntityType, EventEmitter
from comp_admin.models import RoleDefinition, RolePermission, UserRole

logger = logging.getLogger(__name__)

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(label: str) -> str:
    """Machine name for a role label: 'Sales Head' -> 'sales_head'."""
    return _NON_SLUG.sub("_", label.lower()).strip("_")


class RoleService:
    """Service for roles, user-role assignments and permission grants."""

    def __init__(self, session: AsyncSession, events: EventEmitter | None = None):
        self.session = session
        self.events = events or EventEmitter()

    async def get_role(self, name: str) -> RoleDefinition:
        result = await self.session.execute(
            select(RoleDefinition).where(RoleDefinition.name == name)
        )
        role = result.scalar_one_or_none()
        if role is None:
            raise NotFoundError("Role", name)
        return role

    async def list_roles(self) -> list[RoleDefinition]:
        result = await self.session.execute(
            select(RoleDefinition).order_by(
                RoleDefinition.is_system_role.desc(), RoleDefinition.label
            )
        )
        return list(result.scalars().all())

    async def create_role(
        self,
        label: str,
        name: str | None = None,
        description: str | None = None,
        color: str | None = None,
    ) -> RoleDefinition:
        if not label or not label.strip():
            raise ValidationError("Role label is required")
        slug = slugify(name or label)
        if not slug:
            raise ValidationError("Role name must contain letters or digits")

        existing = await self.session.execute(
            select(RoleDefinition.id).where(RoleDefinition.name == slug)
        )
        if existing.first() is not None:
            raise ConflictError(f"Role '{slug}' already exists")

        role = RoleDefinition(
            name=slug,
            label=label.strip(),
            description=description,
            color=color or "gray",
            is_system_role=False,
        )
        self.session.add(role)
        await self.session.flush()

        self.events.emit(EntityChanged.of(EntityType.ROLE, ChangeKind.CREATED, role.id))
        return role

    async def update_role(
        self,
        name: str,
        label: str | None = None,
        description: str | None = None,
        color: str | None = None,
    ) -> RoleDefinition:
        """Update a role's display fields. The name itself never changes."""
        role = await self.get_role(name)
        if label is not None:
            if not label.strip():
                raise ValidationError("Role label is required")
            role.label = label.strip()
        if description is not None:
            role.description = description
        if color is not None:
            role.color = color
        await self.session.flush()

        self.events.emit(EntityChanged.of(EntityType.ROLE, ChangeKind.UPDATED, role.id))
        return role

    async def delete_role(self, name: str) -> None:
        """Delete a custom role along with its assignments and grants."""
        role = await self.get_role(name)
        if role.is_system_role:
            raise ValidationError(f"System role '{name}' cannot be deleted")

        role_id = role.id
        await self.session.execute(delete(UserRole).where(UserRole.role == name))
        await self.session.execute(delete(RolePermission).where(RolePermission.role == name))
        await self.session.delete(role)
        await self.session.flush()
        logger.info("Deleted role %s", name)

        self.events.emit(EntityChanged.of(EntityType.ROLE, ChangeKind.DELETED, role_id))

    # =========================================================================
    # Assignments and grants
    # =========================================================================

    async def roles_for_user(self, user_id: UUID) -> list[str]:
        result = await self.session.execute(
            select(UserRole.role).where(UserRole.user_id == user_id).order_by(UserRole.role)
        )
        return list(result.scalars().all())

    async def set_user_roles(self, user_id: UUID, roles: Iterable[str]) -> list[str]:
        """Replace a user's role assignments."""
        wanted = sorted(set(roles))
        for role in wanted:
            await self.get_role(role)

        await self.session.execute(delete(UserRole).where(UserRole.user_id == user_id))
        self.session.add_all(UserRole(user_id=user_id, role=role) for role in wanted)
        await self.session.flush()

        self.events.emit(EntityChanged.of(EntityType.USER_ROLE, ChangeKind.UPDATED, user_id))
        return wanted

    async def set_permission(
        self, role: str, permission_key: str, is_allowed: bool
    ) -> RolePermission:
        await self.get_role(role)
        result = await self.session.execute(
            select(RolePermission).where(
                RolePermission.role == role,
                RolePermission.permission_key == permission_key,
            )
        )
        grant = result.scalar_one_or_none()
        if grant is None:
            grant = RolePermission(role=role, permission_key=permission_key, is_allowed=is_allowed)
            self.session.add(grant)
        else:
            grant.is_allowed = is_allowed
        await self.session.flush()

        self.events.emit(EntityChanged.of(EntityType.ROLE_PERMISSION, ChangeKind.UPDATED, grant.id))
        return grant

    async def permissions_for(self, roles: Iterable[str]) -> set[str]:
        """Permission keys granted by any of the given roles."""
        roles = list(roles)
        if not roles:
            return set()
        result = await self.session.execute(
            select(RolePermission.permission_key).where(
                RolePermission.role.in_(roles),
                RolePermission.is_allowed.is_(True),
            )
        )
        return set(result.scalars().all())
