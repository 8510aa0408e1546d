"""Pay run API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from salary_engine.api.dependencies import ActorId, DbSession, parse_period
from salary_engine.api.schemas import (
    CancelRequest,
    CorrectionRequest,
    DisbursementRecordResponse,
    DisbursementResponse,
    ErrorResponse,
    PayLineListResponse,
    PayLineResponse,
    PayRunCreate,
    PayRunListResponse,
    PayRunResponse,
)
from salary_engine.services.pay_run_service import PayRunOrchestrator
from salary_engine.services.payment_service import PaymentService

router = APIRouter(prefix="/pay-runs", tags=["pay-runs"])


# ============================================================================
# Pay Run CRUD
# ============================================================================


@router.post(
    "",
    response_model=PayRunResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_pay_run(
    db: DbSession,
    actor: ActorId,
    payload: PayRunCreate,
) -> PayRunResponse:
    """Open a new pay run revision for a period in draft status."""
    orchestrator = PayRunOrchestrator(db)
    pay_run = await orchestrator.create_pay_run(
        parse_period(payload.period), payload.default_attendance, actor
    )
    return PayRunResponse.model_validate(pay_run)


@router.get(
    "",
    response_model=PayRunListResponse,
    responses={400: {"model": ErrorResponse}},
)
async def list_pay_runs(
    db: DbSession,
    period: Annotated[str | None, Query()] = None,
) -> PayRunListResponse:
    """List pay runs, newest period and revision first."""
    orchestrator = PayRunOrchestrator(db)
    pay_runs = await orchestrator.list_pay_runs(parse_period(period) if period else None)
    return PayRunListResponse(
        items=[PayRunResponse.model_validate(pr) for pr in pay_runs],
        total=len(pay_runs),
    )


@router.get(
    "/{pay_run_id}",
    response_model=PayRunResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_pay_run(
    db: DbSession,
    pay_run_id: Annotated[UUID, Path()],
) -> PayRunResponse:
    """Get a specific pay run by ID."""
    pay_run = await PayRunOrchestrator(db).get_pay_run(pay_run_id)
    return PayRunResponse.model_validate(pay_run)


@router.get(
    "/{pay_run_id}/lines",
    response_model=PayLineListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def list_pay_lines(
    db: DbSession,
    pay_run_id: Annotated[UUID, Path()],
) -> PayLineListResponse:
    """List the pay lines of a run, ordered by employee."""
    pay_run = await PayRunOrchestrator(db).get_pay_run(pay_run_id)
    items = [PayLineResponse.model_validate(line) for line in pay_run.lines]
    return PayLineListResponse(items=items, total=len(items))


# ============================================================================
# Pay Run State Transitions
# ============================================================================


@router.post(
    "/{pay_run_id}/process",
    response_model=PayRunResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def process_pay_run(
    db: DbSession,
    actor: ActorId,
    pay_run_id: Annotated[UUID, Path()],
) -> PayRunResponse:
    """Compute pay lines for every active employee. Repeatable until review."""
    outcome = await PayRunOrchestrator(db).process_pay_run(pay_run_id, actor)
    return PayRunResponse.model_validate(outcome.pay_run)


@router.post(
    "/{pay_run_id}/review",
    response_model=PayRunResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def submit_for_review(
    db: DbSession,
    actor: ActorId,
    pay_run_id: Annotated[UUID, Path()],
) -> PayRunResponse:
    """Submit a processed run for review."""
    pay_run = await PayRunOrchestrator(db).submit_for_review(pay_run_id, actor)
    return PayRunResponse.model_validate(pay_run)


@router.post(
    "/{pay_run_id}/approve",
    response_model=PayRunResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def approve_pay_run(
    db: DbSession,
    actor: ActorId,
    pay_run_id: Annotated[UUID, Path()],
) -> PayRunResponse:
    """Approve a run under review. The X-Actor-ID header is the approver."""
    pay_run = await PayRunOrchestrator(db).approve_pay_run(pay_run_id, actor)
    return PayRunResponse.model_validate(pay_run)


@router.post(
    "/{pay_run_id}/pay",
    response_model=PayRunResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def mark_paid(
    db: DbSession,
    actor: ActorId,
    pay_run_id: Annotated[UUID, Path()],
) -> PayRunResponse:
    """Mark an approved run paid, committing its ledger recoveries."""
    pay_run = await PayRunOrchestrator(db).mark_paid(pay_run_id, actor)
    return PayRunResponse.model_validate(pay_run)


@router.post(
    "/{pay_run_id}/cancel",
    response_model=PayRunResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def cancel_pay_run(
    db: DbSession,
    actor: ActorId,
    pay_run_id: Annotated[UUID, Path()],
    payload: CancelRequest,
) -> PayRunResponse:
    """Cancel a run that has not been approved."""
    pay_run = await PayRunOrchestrator(db).cancel_pay_run(pay_run_id, payload.reason, actor)
    return PayRunResponse.model_validate(pay_run)


@router.post(
    "/{pay_run_id}/correction",
    response_model=PayRunResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_correction(
    db: DbSession,
    actor: ActorId,
    pay_run_id: Annotated[UUID, Path()],
    payload: CorrectionRequest | None = None,
) -> PayRunResponse:
    """Open a correction revision for the period of a paid run."""
    orchestrator = PayRunOrchestrator(db)
    paid = await orchestrator.get_pay_run(pay_run_id)
    pay_run = await orchestrator.create_correction(
        parse_period(paid.period),
        payload.default_attendance if payload else False,
        actor,
    )
    return PayRunResponse.model_validate(pay_run)


# ============================================================================
# Disbursement
# ============================================================================


@router.get(
    "/{pay_run_id}/disbursement",
    response_model=DisbursementResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def get_disbursement(
    db: DbSession,
    pay_run_id: Annotated[UUID, Path()],
) -> DisbursementResponse:
    """Disbursement records for an approved or paid run."""
    service = PaymentService(db)
    records = await service.build_disbursement(pay_run_id)
    return DisbursementResponse(
        pay_run_id=pay_run_id,
        records=[DisbursementRecordResponse.model_validate(r) for r in records],
        total_amount=service.total(records),
    )
