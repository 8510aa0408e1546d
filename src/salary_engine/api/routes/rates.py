"""Rate configuration API endpoints."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Query, status

from salary_engine.api.dependencies import ActorId, DbSession
from salary_engine.api.schemas import (
    EffectiveRatesResponse,
    ErrorResponse,
    RateVersionCreate,
    RateVersionListResponse,
    RateVersionResponse,
)
from salary_engine.calculators.rate_resolver import RateResolver

router = APIRouter(prefix="/rate-configurations", tags=["rates"])


@router.post(
    "",
    response_model=RateVersionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_rate_version(
    db: DbSession, actor: ActorId, payload: RateVersionCreate
) -> RateVersionResponse:
    """Publish a new effective-dated rate configuration version."""
    record = await RateResolver(db).create_version(
        payload.version, payload.effective_from, payload.payload, actor
    )
    return RateVersionResponse.model_validate(record)


@router.get("", response_model=RateVersionListResponse)
async def list_rate_versions(db: DbSession) -> RateVersionListResponse:
    versions = await RateResolver(db).list_versions()
    return RateVersionListResponse(
        items=[RateVersionResponse.model_validate(v) for v in versions],
        total=len(versions),
    )


@router.get(
    "/effective",
    response_model=EffectiveRatesResponse,
    responses={400: {"model": ErrorResponse}},
)
async def get_effective_rates(
    db: DbSession,
    as_of: Annotated[date, Query(alias="as_of_date")],
) -> EffectiveRatesResponse:
    """The configuration in effect on a date."""
    config = await RateResolver(db).resolve(as_of)
    return EffectiveRatesResponse(
        as_of_date=as_of,
        version=config.version,
        effective_from=config.effective_from,
        fingerprint=config.fingerprint(),
        payload=config.to_payload(),
    )
