"""Deal-team SPIFF endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query

from comp_admin.api.dependencies import Cache, DbSession, Events
from comp_admin.api.schemas import (
    ActorRequest,
    AllocationResponse,
    AllocationSaveRequest,
    DealAllocationsResponse,
    DealResponse,
    ErrorResponse,
    SpiffConfigResponse,
    SpiffConfigUpdate,
)
from comp_admin.services.deal_team_spiff import (
    AllocationItem,
    DealTeamSpiffService,
    allocation_status,
)

router = APIRouter(prefix="/deal-team-spiffs", tags=["deal-team-spiffs"])


async def _deal_allocations(service: DealTeamSpiffService, deal_id: UUID) -> DealAllocationsResponse:
    config = await service.get_config()
    allocations = await service.get_allocations(deal_id)
    return DealAllocationsResponse(
        deal_id=deal_id,
        status=allocation_status(allocations, config.spiff_pool_amount_usd),
        read_only=any(a.status == "approved" for a in allocations),
        allocations=[AllocationResponse.model_validate(a) for a in allocations],
    )


@router.get("/config", response_model=SpiffConfigResponse)
async def get_config(db: DbSession) -> SpiffConfigResponse:
    return SpiffConfigResponse.model_validate(await DealTeamSpiffService(db).get_config())


@router.patch(
    "/config",
    response_model=SpiffConfigResponse,
    responses={400: {"model": ErrorResponse}},
)
async def update_config(db: DbSession, events: Events, payload: SpiffConfigUpdate) -> SpiffConfigResponse:
    config = await DealTeamSpiffService(db, events).update_config(**payload.model_dump())
    return SpiffConfigResponse.model_validate(config)


@router.get("/deals", response_model=list[DealResponse])
async def eligible_deals(
    db: DbSession,
    cache: Cache,
    year: Annotated[int, Query()],
) -> list[DealResponse]:
    """Deals in the year large enough to carry a team pool."""

    async def load() -> list[DealResponse]:
        deals = await DealTeamSpiffService(db).eligible_deals(year)
        return [DealResponse.model_validate(d) for d in deals]

    return await cache.get_or_load(f"deal_team_spiffs:deals:year={year}", load)


@router.get("/deals/{deal_id}/allocations", response_model=DealAllocationsResponse)
async def get_allocations(db: DbSession, deal_id: Annotated[UUID, Path()]) -> DealAllocationsResponse:
    return await _deal_allocations(DealTeamSpiffService(db), deal_id)


@router.put(
    "/deals/{deal_id}/allocations",
    response_model=DealAllocationsResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def save_allocations(
    db: DbSession,
    events: Events,
    deal_id: Annotated[UUID, Path()],
    payload: AllocationSaveRequest,
) -> DealAllocationsResponse:
    """Replace unapproved allocations; the amounts must use up the pool exactly."""
    service = DealTeamSpiffService(db, events)
    await service.save_allocations(
        deal_id,
        [AllocationItem(i.employee_id, i.amount_usd, i.team_role, i.notes) for i in payload.items],
        payload.payout_month,
    )
    return await _deal_allocations(service, deal_id)


@router.post(
    "/deals/{deal_id}/approve",
    response_model=DealAllocationsResponse,
    responses={409: {"model": ErrorResponse}},
)
async def approve_allocations(
    db: DbSession,
    events: Events,
    deal_id: Annotated[UUID, Path()],
    payload: ActorRequest,
) -> DealAllocationsResponse:
    service = DealTeamSpiffService(db, events)
    await service.approve(deal_id, payload.actor_user_id)
    return await _deal_allocations(service, deal_id)


@router.post(
    "/deals/{deal_id}/reject",
    response_model=DealAllocationsResponse,
    responses={409: {"model": ErrorResponse}},
)
async def reject_allocations(
    db: DbSession,
    events: Events,
    deal_id: Annotated[UUID, Path()],
    payload: ActorRequest,
) -> DealAllocationsResponse:
    service = DealTeamSpiffService(db, events)
    await service.reject(deal_id, payload.actor_user_id)
    return await _deal_allocations(service, deal_id)
