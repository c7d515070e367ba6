"""Compensation plan endpoints: plans, metrics, grids, commissions, spiffs."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from comp_admin.api.dependencies import Cache, DbSession, Events
from comp_admin.api.schemas import (
    CommissionCreate,
    CommissionResponse,
    CommissionUpdate,
    CompPlanCreate,
    CompPlanResponse,
    CompPlanUpdate,
    CopyPlansRequest,
    ErrorResponse,
    GridResponse,
    GridSaveRequest,
    PlanAssignmentCreate,
    PlanAssignmentResponse,
    PlanMetricCreate,
    PlanMetricResponse,
    SpiffCreate,
    SpiffResponse,
    SpiffUpdate,
    TierSchema,
)
from comp_admin.services.commission_service import CommissionService
from comp_admin.services.multiplier_grid import GridTier, MultiplierGridService
from comp_admin.services.plan_service import PlanService
from comp_admin.services.target_service import TargetService

router = APIRouter(prefix="/plans", tags=["plans"])


# ============================================================================
# Plans
# ============================================================================


@router.get("", response_model=list[CompPlanResponse])
async def list_plans(
    db: DbSession,
    cache: Cache,
    year: Annotated[int | None, Query()] = None,
) -> list[CompPlanResponse]:
    async def load() -> list[CompPlanResponse]:
        plans = await PlanService(db).list_plans(year)
        return [CompPlanResponse.model_validate(p) for p in plans]

    return await cache.get_or_load(f"comp_plans:year={year}", load)


@router.get("/years", response_model=list[int])
async def list_plan_years(db: DbSession, cache: Cache) -> list[int]:
    return await cache.get_or_load("comp_plan_years", PlanService(db).list_plan_years)


@router.post(
    "",
    response_model=CompPlanResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_plan(db: DbSession, events: Events, payload: CompPlanCreate) -> CompPlanResponse:
    plan = await PlanService(db, events).create_plan(**payload.model_dump())
    return CompPlanResponse.model_validate(plan)


@router.patch(
    "/{plan_id}",
    response_model=CompPlanResponse,
    responses={404: {"model": ErrorResponse}},
)
async def update_plan(
    db: DbSession,
    events: Events,
    plan_id: Annotated[UUID, Path()],
    payload: CompPlanUpdate,
) -> CompPlanResponse:
    plan = await PlanService(db, events).update_plan(plan_id, **payload.model_dump(exclude_unset=True))
    return CompPlanResponse.model_validate(plan)


@router.post(
    "/copy",
    response_model=list[CompPlanResponse],
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def copy_plans(
    db: DbSession,
    events: Events,
    payload: CopyPlansRequest,
) -> list[CompPlanResponse]:
    """Copy plans with all their children into another year, all or nothing."""
    copies = await PlanService(db, events).copy_plans(payload.plan_ids, payload.target_year)
    return [CompPlanResponse.model_validate(p) for p in copies]


# ============================================================================
# Metrics and multiplier grids
# ============================================================================


@router.get("/{plan_id}/metrics", response_model=list[PlanMetricResponse])
async def list_metrics(
    db: DbSession,
    cache: Cache,
    plan_id: Annotated[UUID, Path()],
) -> list[PlanMetricResponse]:
    async def load() -> list[PlanMetricResponse]:
        metrics = await PlanService(db).list_metrics(plan_id)
        return [PlanMetricResponse.model_validate(m) for m in metrics]

    return await cache.get_or_load(f"plan_metrics_with_grids:{plan_id}", load)


@router.post(
    "/{plan_id}/metrics",
    response_model=PlanMetricResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def add_metric(
    db: DbSession,
    events: Events,
    plan_id: Annotated[UUID, Path()],
    payload: PlanMetricCreate,
) -> PlanMetricResponse:
    metric = await PlanService(db, events).add_metric(plan_id, **payload.model_dump())
    return PlanMetricResponse.model_validate(
        {**payload.model_dump(), "id": metric.id, "plan_id": metric.plan_id, "tiers": []}
    )


@router.get(
    "/metrics/{metric_id}/grid",
    response_model=GridResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_grid(db: DbSession, metric_id: Annotated[UUID, Path()]) -> GridResponse:
    """Stored tiers, or the logic type's default tiers when none are stored."""
    draft = await MultiplierGridService(db).load_draft(metric_id)
    return GridResponse(
        metric_id=metric_id,
        logic_type=draft.logic_type,
        seeded=draft.seeded,
        tiers=[TierSchema.model_validate(t) for t in draft.rows],
    )


@router.put(
    "/metrics/{metric_id}/grid",
    response_model=list[TierSchema],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def save_grid(
    db: DbSession,
    events: Events,
    metric_id: Annotated[UUID, Path()],
    payload: GridSaveRequest,
) -> list[TierSchema]:
    """Replace the metric's grid; rejected if tiers overlap or are empty."""
    tiers = [GridTier.of(t.min_pct, t.max_pct, t.multiplier_value) for t in payload.tiers]
    saved = await MultiplierGridService(db, events).replace_tiers(metric_id, tiers)
    return [TierSchema.model_validate(t) for t in saved]


# ============================================================================
# Commissions
# ============================================================================


@router.get("/{plan_id}/commissions", response_model=list[CommissionResponse])
async def list_commissions(
    db: DbSession,
    cache: Cache,
    plan_id: Annotated[UUID, Path()],
) -> list[CommissionResponse]:
    async def load() -> list[CommissionResponse]:
        rows = await CommissionService(db).list_commissions(plan_id)
        return [CommissionResponse.model_validate(c) for c in rows]

    return await cache.get_or_load(f"plan_commissions:{plan_id}", load)


@router.post(
    "/{plan_id}/commissions",
    response_model=CommissionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_commission(
    db: DbSession,
    events: Events,
    plan_id: Annotated[UUID, Path()],
    payload: CommissionCreate,
) -> CommissionResponse:
    commission = await CommissionService(db, events).create_commission(plan_id, **payload.model_dump())
    return CommissionResponse.model_validate(commission)


@router.patch(
    "/commissions/{commission_id}",
    response_model=CommissionResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_commission(
    db: DbSession,
    events: Events,
    commission_id: Annotated[UUID, Path()],
    payload: CommissionUpdate,
) -> CommissionResponse:
    commission = await CommissionService(db, events).update_commission(
        commission_id, **payload.model_dump(exclude_unset=True)
    )
    return CommissionResponse.model_validate(commission)


@router.delete("/commissions/{commission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_commission(
    db: DbSession,
    events: Events,
    commission_id: Annotated[UUID, Path()],
) -> None:
    await CommissionService(db, events).delete_commission(commission_id)


# ============================================================================
# Spiffs
# ============================================================================


@router.get("/{plan_id}/spiffs", response_model=list[SpiffResponse])
async def list_spiffs(
    db: DbSession,
    cache: Cache,
    plan_id: Annotated[UUID, Path()],
) -> list[SpiffResponse]:
    async def load() -> list[SpiffResponse]:
        rows = await CommissionService(db).list_spiffs(plan_id)
        return [SpiffResponse.model_validate(s) for s in rows]

    return await cache.get_or_load(f"plan_spiffs:{plan_id}", load)


@router.post(
    "/{plan_id}/spiffs",
    response_model=SpiffResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def create_spiff(
    db: DbSession,
    events: Events,
    plan_id: Annotated[UUID, Path()],
    payload: SpiffCreate,
) -> SpiffResponse:
    spiff = await CommissionService(db, events).create_spiff(plan_id, **payload.model_dump())
    return SpiffResponse.model_validate(spiff)


@router.patch(
    "/spiffs/{spiff_id}",
    response_model=SpiffResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_spiff(
    db: DbSession,
    events: Events,
    spiff_id: Annotated[UUID, Path()],
    payload: SpiffUpdate,
) -> SpiffResponse:
    spiff = await CommissionService(db, events).update_spiff(
        spiff_id, **payload.model_dump(exclude_unset=True)
    )
    return SpiffResponse.model_validate(spiff)


@router.delete("/spiffs/{spiff_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_spiff(
    db: DbSession,
    events: Events,
    spiff_id: Annotated[UUID, Path()],
) -> None:
    await CommissionService(db, events).delete_spiff(spiff_id)


# ============================================================================
# Plan assignments
# ============================================================================


@router.get("/{plan_id}/assignments", response_model=list[PlanAssignmentResponse])
async def list_assignments(
    db: DbSession,
    plan_id: Annotated[UUID, Path()],
) -> list[PlanAssignmentResponse]:
    rows = await TargetService(db).list_assignments(plan_id)
    return [PlanAssignmentResponse.model_validate(r) for r in rows]


@router.put(
    "/{plan_id}/assignments",
    response_model=PlanAssignmentResponse,
    responses={404: {"model": ErrorResponse}},
)
async def assign_plan(
    db: DbSession,
    events: Events,
    plan_id: Annotated[UUID, Path()],
    payload: PlanAssignmentCreate,
) -> PlanAssignmentResponse:
    """Assign a user to the plan, replacing any assignment with the same start date."""
    fields = payload.model_dump(exclude={"user_id", "effective_start_date"})
    target = await TargetService(db, events).assign_plan(
        payload.user_id, plan_id, payload.effective_start_date, **fields
    )
    return PlanAssignmentResponse.model_validate(target)
