"""Employee master data endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, Query, Response, status

from comp_admin.api.dependencies import Cache, DbSession, Events
from comp_admin.api.schemas import (
    CsvImportRequest,
    EmployeeResponse,
    EmployeeUpsert,
    ErrorResponse,
    ImportResultResponse,
)
from comp_admin.errors import NotFoundError
from comp_admin.services.bulk_import import EmployeeImporter, employee_template_csv
from comp_admin.services.employee_service import EmployeeRecord, EmployeeService

router = APIRouter(prefix="/employees", tags=["employees"])


@router.get("", response_model=list[EmployeeResponse])
async def list_employees(
    db: DbSession,
    cache: Cache,
    active_only: Annotated[bool, Query()] = False,
) -> list[EmployeeResponse]:
    """List employees, active ones only if requested."""

    async def load() -> list[EmployeeResponse]:
        employees = await EmployeeService(db).list_employees(active_only=active_only)
        return [EmployeeResponse.model_validate(e) for e in employees]

    return await cache.get_or_load(f"employees:active={active_only}", load)


@router.get(
    "/template",
    response_class=Response,
    responses={200: {"content": {"text/csv": {}}}},
)
async def download_template() -> Response:
    """Header row plus an example row for the bulk import."""
    return Response(
        content=employee_template_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="employee-import-template.csv"'},
    )


@router.get(
    "/{employee_id}",
    response_model=EmployeeResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_employee(
    db: DbSession,
    employee_id: Annotated[str, Path()],
) -> EmployeeResponse:
    employee = await EmployeeService(db).get_employee(employee_id)
    if employee is None:
        raise NotFoundError("Employee", employee_id)
    return EmployeeResponse.model_validate(employee)


@router.put(
    "",
    response_model=EmployeeResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def upsert_employee(
    db: DbSession,
    events: Events,
    payload: EmployeeUpsert,
    response: Response,
) -> EmployeeResponse:
    """Create or update an employee matched by email, then employee code."""
    employee, created = await EmployeeService(db, events).upsert_employee(
        EmployeeRecord(**payload.model_dump())
    )
    if created:
        response.status_code = status.HTTP_201_CREATED
    return EmployeeResponse.model_validate(employee)


@router.post(
    "/{employee_id}/deactivate",
    response_model=EmployeeResponse,
    responses={404: {"model": ErrorResponse}},
)
async def deactivate_employee(
    db: DbSession,
    events: Events,
    employee_id: Annotated[str, Path()],
) -> EmployeeResponse:
    employee = await EmployeeService(db, events).deactivate(employee_id)
    return EmployeeResponse.model_validate(employee)


@router.post("/import", response_model=ImportResultResponse)
async def import_employees(
    db: DbSession,
    events: Events,
    payload: CsvImportRequest,
) -> ImportResultResponse:
    """Bulk create/update employees and their plan assignments from CSV.

    Row failures are reported in `errors`; valid rows are kept.
    """
    result = await EmployeeImporter(db, events).run(payload.content)
    return ImportResultResponse.model_validate(result)
