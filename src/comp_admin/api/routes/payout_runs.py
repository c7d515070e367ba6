"""Payout run endpoints: lifecycle, workings, adjustments and exports."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, Response, status

from comp_admin.api.dependencies import Cache, DbSession, Events
from comp_admin.api.schemas import (
    ActorRequest,
    AdjustmentCreate,
    AdjustmentResponse,
    ErrorResponse,
    PayoutRunCreate,
    PayoutRunResponse,
    TransitionRequest,
    WorkingsMetric,
    WorkingsResponse,
)
from comp_admin.services.adjustment_service import AdjustmentService
from comp_admin.services.export_service import (
    CSV_MEDIA_TYPE,
    XLSX_MEDIA_TYPE,
    export_filename,
    payout_run_csv,
    payout_run_workbook,
)
from comp_admin.services.payout_run_service import PayoutRunService
from comp_admin.services.workings import (
    GRAND_TOTAL_LABELS,
    LEADING_LABELS,
    WorkingsService,
    build_pivot,
    summarize_employees,
)

router = APIRouter(prefix="/payout-runs", tags=["payout-runs"])


# ============================================================================
# Payout Run lifecycle
# ============================================================================


@router.post(
    "",
    response_model=PayoutRunResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_payout_run(
    db: DbSession,
    events: Events,
    payload: PayoutRunCreate,
) -> PayoutRunResponse:
    """Open a draft payout run for a month."""
    run = await PayoutRunService(db, events).create_run(payload.month_year, payload.notes)
    return PayoutRunResponse.model_validate(run)


@router.get("", response_model=list[PayoutRunResponse])
async def list_payout_runs(
    db: DbSession,
    cache: Cache,
    year: Annotated[int | None, Query()] = None,
) -> list[PayoutRunResponse]:
    async def load() -> list[PayoutRunResponse]:
        runs = await PayoutRunService(db).list_runs(year)
        return [PayoutRunResponse.model_validate(r) for r in runs]

    return await cache.get_or_load(f"payout_runs:year={year}", load)


@router.get(
    "/{run_id}",
    response_model=PayoutRunResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payout_run(db: DbSession, run_id: Annotated[UUID, Path()]) -> PayoutRunResponse:
    return PayoutRunResponse.model_validate(await PayoutRunService(db).get_run(run_id))


@router.post(
    "/{run_id}/transition",
    response_model=PayoutRunResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def transition_payout_run(
    db: DbSession,
    events: Events,
    run_id: Annotated[UUID, Path()],
    payload: TransitionRequest,
) -> PayoutRunResponse:
    """Move the run along draft, review, approved, finalized, paid."""
    run = await PayoutRunService(db, events).transition(
        run_id, payload.to_status, payload.actor_user_id, payload.notes
    )
    return PayoutRunResponse.model_validate(run)


@router.delete(
    "/{run_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_payout_run(db: DbSession, events: Events, run_id: Annotated[UUID, Path()]) -> None:
    await PayoutRunService(db, events).delete_run(run_id)


# ============================================================================
# Workings
# ============================================================================


@router.get(
    "/{run_id}/workings",
    response_model=WorkingsResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_workings(
    db: DbSession,
    cache: Cache,
    run_id: Annotated[UUID, Path()],
) -> WorkingsResponse:
    """Per-employee workings pivoted into one row per employee."""

    async def load() -> WorkingsResponse:
        pivot = await WorkingsService(db).pivot(run_id)
        return WorkingsResponse(
            leading_columns=list(LEADING_LABELS),
            metrics=[
                WorkingsMetric(
                    component_type=m.component_type,
                    metric_name=m.metric_name,
                    sub_columns=[sc.label for sc in m.sub_columns],
                )
                for m in pivot.metrics
            ],
            total_columns=list(GRAND_TOTAL_LABELS),
            rows=pivot.formatted_rows(),
        )

    return await cache.get_or_load(f"payout_run:{run_id}:workings", load)


@router.get(
    "/{run_id}/export",
    response_class=Response,
    responses={
        200: {"content": {CSV_MEDIA_TYPE: {}, XLSX_MEDIA_TYPE: {}}},
        404: {"model": ErrorResponse},
    },
)
async def export_payout_run(
    db: DbSession,
    run_id: Annotated[UUID, Path()],
    format: Annotated[str, Query(pattern="^(csv|xlsx)$")] = "xlsx",
) -> Response:
    """Download the run as a CSV summary or a multi-sheet workbook."""
    run = await PayoutRunService(db).get_run(run_id)
    workings = WorkingsService(db)
    employees = await workings.load(run_id)
    summaries = summarize_employees(employees)

    if format == "csv":
        content: bytes | str = payout_run_csv(summaries)
        media_type = CSV_MEDIA_TYPE
    else:
        content = payout_run_workbook(
            run, summaries, build_pivot(employees), await workings.deal_details(run_id)
        )
        media_type = XLSX_MEDIA_TYPE

    return Response(
        content=content,
        media_type=media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{export_filename(run, format)}"'
        },
    )


# ============================================================================
# Adjustments
# ============================================================================


@router.get("/{run_id}/adjustments", response_model=list[AdjustmentResponse])
async def list_adjustments(
    db: DbSession,
    cache: Cache,
    run_id: Annotated[UUID, Path()],
) -> list[AdjustmentResponse]:
    async def load() -> list[AdjustmentResponse]:
        rows = await AdjustmentService(db).list_adjustments(run_id)
        return [AdjustmentResponse.model_validate(a) for a in rows]

    return await cache.get_or_load(f"payout_adjustments:{run_id}", load)


@router.post(
    "/{run_id}/adjustments",
    response_model=AdjustmentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_adjustment(
    db: DbSession,
    events: Events,
    run_id: Annotated[UUID, Path()],
    payload: AdjustmentCreate,
) -> AdjustmentResponse:
    """Raise an adjustment; only allowed while the run is in review."""
    adjustment = await AdjustmentService(db, events).create(
        run_id,
        payload.employee_id,
        payload.adjustment_type,
        payload.adjustment_amount_usd,
        payload.reason,
        original_amount_usd=payload.original_amount_usd,
        exchange_rate=payload.exchange_rate,
        requested_by=payload.requested_by,
    )
    return AdjustmentResponse.model_validate(adjustment)


@router.post(
    "/adjustments/{adjustment_id}/approve",
    response_model=AdjustmentResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def approve_adjustment(
    db: DbSession,
    events: Events,
    adjustment_id: Annotated[UUID, Path()],
    payload: ActorRequest,
) -> AdjustmentResponse:
    adjustment = await AdjustmentService(db, events).approve(adjustment_id, payload.actor_user_id)
    return AdjustmentResponse.model_validate(adjustment)


@router.post(
    "/adjustments/{adjustment_id}/reject",
    response_model=AdjustmentResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def reject_adjustment(
    db: DbSession,
    events: Events,
    adjustment_id: Annotated[UUID, Path()],
    payload: ActorRequest,
) -> AdjustmentResponse:
    adjustment = await AdjustmentService(db, events).reject(adjustment_id, payload.actor_user_id)
    return AdjustmentResponse.model_validate(adjustment)


@router.delete(
    "/adjustments/{adjustment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_adjustment(
    db: DbSession,
    events: Events,
    adjustment_id: Annotated[UUID, Path()],
) -> None:
    await AdjustmentService(db, events).delete(adjustment_id)
