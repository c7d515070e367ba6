"""Quarterly performance target endpoints."""

from typing import Annotated

from fastapi import APIRouter, Query, Response

from comp_admin.api.dependencies import Cache, DbSession, Events
from comp_admin.api.schemas import (
    CsvImportRequest,
    ErrorResponse,
    ImportResultResponse,
    PerformanceTargetPreviewRow,
    PerformanceTargetResponse,
    PerformanceTargetUpsert,
)
from comp_admin.services.bulk_import import (
    PerformanceTargetImporter,
    performance_target_template_csv,
)
from comp_admin.services.target_service import QuarterlyTargets, TargetService

router = APIRouter(prefix="/performance-targets", tags=["targets"])


@router.get("", response_model=list[PerformanceTargetResponse])
async def list_performance_targets(
    db: DbSession,
    cache: Cache,
    year: Annotated[int, Query()],
) -> list[PerformanceTargetResponse]:
    async def load() -> list[PerformanceTargetResponse]:
        rows = await TargetService(db).list_performance_targets(year)
        return [PerformanceTargetResponse.model_validate(r) for r in rows]

    return await cache.get_or_load(f"performance_targets:year={year}", load)


@router.put(
    "",
    response_model=PerformanceTargetResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def upsert_performance_target(
    db: DbSession,
    events: Events,
    payload: PerformanceTargetUpsert,
) -> PerformanceTargetResponse:
    quarters = QuarterlyTargets(
        payload.q1_target_usd,
        payload.q2_target_usd,
        payload.q3_target_usd,
        payload.q4_target_usd,
    )
    target, _ = await TargetService(db, events).upsert_performance_target(
        payload.employee_id, payload.metric_type, payload.effective_year, quarters
    )
    return PerformanceTargetResponse.model_validate(target)


@router.get(
    "/template",
    response_class=Response,
    responses={200: {"content": {"text/csv": {}}}},
)
async def download_template() -> Response:
    return Response(
        content=performance_target_template_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="performance-target-template.csv"'},
    )


@router.post("/import/preview", response_model=list[PerformanceTargetPreviewRow])
async def preview_import(db: DbSession, payload: CsvImportRequest) -> list[PerformanceTargetPreviewRow]:
    """Validate a target CSV without writing anything."""
    rows = await PerformanceTargetImporter(db).parse(payload.content)
    return [
        PerformanceTargetPreviewRow(
            row_number=row.row_number,
            employee_id=row.employee_id,
            metric_type=row.metric_type,
            q1_target_usd=row.quarters.q1,
            q2_target_usd=row.quarters.q2,
            q3_target_usd=row.quarters.q3,
            q4_target_usd=row.quarters.q4,
            annual_target_usd=row.quarters.annual,
            error=row.error,
        )
        for row in rows
    ]


@router.post("/import", response_model=ImportResultResponse)
async def import_performance_targets(
    db: DbSession,
    events: Events,
    payload: CsvImportRequest,
    year: Annotated[int, Query()],
) -> ImportResultResponse:
    result = await PerformanceTargetImporter(db, events).run(payload.content, year)
    return ImportResultResponse.model_validate(result)
