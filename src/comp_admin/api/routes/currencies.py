"""Currency and exchange rate endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, Query, status

from comp_admin.api.dependencies import Cache, DbSession, Events
from comp_admin.api.schemas import (
    CurrencyCreate,
    CurrencyResponse,
    CurrencyUpdate,
    ErrorResponse,
    ExchangeRateResponse,
    ExchangeRateSet,
)
from comp_admin.services.currency_service import CurrencyService

router = APIRouter(prefix="/currencies", tags=["currencies"])


@router.get("", response_model=list[CurrencyResponse])
async def list_currencies(
    db: DbSession,
    cache: Cache,
    active_only: Annotated[bool, Query()] = False,
) -> list[CurrencyResponse]:
    async def load() -> list[CurrencyResponse]:
        rows = await CurrencyService(db).list_currencies(active_only=active_only)
        return [CurrencyResponse.model_validate(c) for c in rows]

    return await cache.get_or_load(f"currencies:active={active_only}", load)


@router.post(
    "",
    response_model=CurrencyResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_currency(db: DbSession, events: Events, payload: CurrencyCreate) -> CurrencyResponse:
    currency = await CurrencyService(db, events).create_currency(**payload.model_dump())
    return CurrencyResponse.model_validate(currency)


@router.patch(
    "/{code}",
    response_model=CurrencyResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_currency(
    db: DbSession,
    events: Events,
    code: Annotated[str, Path()],
    payload: CurrencyUpdate,
) -> CurrencyResponse:
    currency = await CurrencyService(db, events).update_currency(code, **payload.model_dump())
    return CurrencyResponse.model_validate(currency)


@router.delete(
    "/{code}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_currency(db: DbSession, events: Events, code: Annotated[str, Path()]) -> None:
    """Delete an unused currency. Currencies still referenced must be deactivated instead."""
    await CurrencyService(db, events).delete_currency(code)


@router.get("/exchange-rates", response_model=list[ExchangeRateResponse])
async def list_exchange_rates(
    db: DbSession,
    cache: Cache,
    month_year: Annotated[str | None, Query()] = None,
) -> list[ExchangeRateResponse]:
    async def load() -> list[ExchangeRateResponse]:
        rows = await CurrencyService(db).list_exchange_rates(month_year)
        return [ExchangeRateResponse.model_validate(r) for r in rows]

    return await cache.get_or_load(f"exchange_rates:month={month_year}", load)


@router.put(
    "/exchange-rates",
    response_model=ExchangeRateResponse,
    responses={400: {"model": ErrorResponse}},
)
async def set_exchange_rate(
    db: DbSession,
    events: Events,
    payload: ExchangeRateSet,
) -> ExchangeRateResponse:
    rate = await CurrencyService(db, events).set_exchange_rate(
        payload.currency_code, payload.month_year, payload.rate_to_usd
    )
    return ExchangeRateResponse.model_validate(rate)
