"""Audit trail API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, Query

from salary_engine.api.dependencies import DbSession
from salary_engine.api.schemas import AuditEventListResponse, AuditEventResponse
from salary_engine.services.audit_service import AuditRecorder

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/events", response_model=AuditEventListResponse)
async def list_events(
    db: DbSession,
    entity_type: Annotated[str | None, Query()] = None,
    action: Annotated[str | None, Query()] = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> AuditEventListResponse:
    """Most recent audit events first."""
    events = await AuditRecorder(db).list_events(entity_type, action, limit)
    return AuditEventListResponse(
        items=[AuditEventResponse.model_validate(e) for e in events],
        total=len(events),
    )


@router.get("/{entity_type}/{entity_id}", response_model=AuditEventListResponse)
async def list_entity_events(
    db: DbSession,
    entity_type: Annotated[str, Path()],
    entity_id: Annotated[str, Path()],
) -> AuditEventListResponse:
    """Full history of one entity, oldest first."""
    events = await AuditRecorder(db).list_for_entity(entity_type, entity_id)
    return AuditEventListResponse(
        items=[AuditEventResponse.model_validate(e) for e in events],
        total=len(events),
    )
