"""Role, user-role and permission endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from comp_admin.api.dependencies import Cache, DbSession, Events
from comp_admin.api.schemas import (
    ErrorResponse,
    PermissionResponse,
    PermissionSet,
    RoleCreate,
    RoleResponse,
    RoleUpdate,
    UserRolesUpdate,
)
from comp_admin.services.role_service import RoleService

router = APIRouter(prefix="/roles", tags=["roles"])


@router.get("", response_model=list[RoleResponse])
async def list_roles(db: DbSession, cache: Cache) -> list[RoleResponse]:
    async def load() -> list[RoleResponse]:
        return [RoleResponse.model_validate(r) for r in await RoleService(db).list_roles()]

    return await cache.get_or_load("roles", load)


@router.post(
    "",
    response_model=RoleResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_role(db: DbSession, events: Events, payload: RoleCreate) -> RoleResponse:
    role = await RoleService(db, events).create_role(**payload.model_dump())
    return RoleResponse.model_validate(role)


@router.patch(
    "/{name}",
    response_model=RoleResponse,
    responses={404: {"model": ErrorResponse}},
)
async def update_role(
    db: DbSession,
    events: Events,
    name: Annotated[str, Path()],
    payload: RoleUpdate,
) -> RoleResponse:
    role = await RoleService(db, events).update_role(name, **payload.model_dump())
    return RoleResponse.model_validate(role)


@router.delete(
    "/{name}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def delete_role(db: DbSession, events: Events, name: Annotated[str, Path()]) -> None:
    """Delete a custom role with its user assignments and permissions."""
    await RoleService(db, events).delete_role(name)


@router.get("/users/{user_id}", response_model=list[str])
async def get_user_roles(db: DbSession, user_id: Annotated[UUID, Path()]) -> list[str]:
    return await RoleService(db).roles_for_user(user_id)


@router.put(
    "/users/{user_id}",
    response_model=list[str],
    responses={404: {"model": ErrorResponse}},
)
async def set_user_roles(
    db: DbSession,
    events: Events,
    user_id: Annotated[UUID, Path()],
    payload: UserRolesUpdate,
) -> list[str]:
    return await RoleService(db, events).set_user_roles(user_id, payload.roles)


@router.put(
    "/{name}/permissions",
    response_model=PermissionResponse,
    responses={404: {"model": ErrorResponse}},
)
async def set_permission(
    db: DbSession,
    events: Events,
    name: Annotated[str, Path()],
    payload: PermissionSet,
) -> PermissionResponse:
    grant = await RoleService(db, events).set_permission(
        name, payload.permission_key, payload.is_allowed
    )
    return PermissionResponse.model_validate(grant)


@router.get("/permissions", response_model=list[str])
async def effective_permissions(
    db: DbSession,
    role: Annotated[list[str], Query()],
) -> list[str]:
    """Permission keys granted by any of the given roles."""
    return sorted(await RoleService(db).permissions_for(role))
