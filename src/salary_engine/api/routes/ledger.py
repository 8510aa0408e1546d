"""Loan and advance ledger API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from salary_engine.api.dependencies import ActorId, DbSession, parse_period
from salary_engine.api.schemas import (
    AdvanceCreate,
    DueResponse,
    ErrorResponse,
    InstallmentResponse,
    LedgerAccountListResponse,
    LedgerAccountResponse,
    LoanCreate,
    PrepaymentRequest,
    RecoveryResponse,
    ScheduleResponse,
    WriteOffRequest,
)
from salary_engine.services.ledger_service import DeductionLedger

router = APIRouter(prefix="/ledger", tags=["ledger"])


@router.post(
    "/loans",
    response_model=LedgerAccountResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_loan(db: DbSession, actor: ActorId, payload: LoanCreate) -> LedgerAccountResponse:
    """Open a loan and generate its installment schedule."""
    account = await DeductionLedger(db).create_loan(
        employee_id=payload.employee_id,
        principal=payload.principal,
        annual_interest_rate=payload.annual_interest_rate,
        installment_count=payload.installment_count,
        start_period=parse_period(payload.start_period),
        penalty_rate=payload.penalty_rate,
        description=payload.description,
        actor=actor,
    )
    return LedgerAccountResponse.model_validate(account)


@router.post(
    "/advances",
    response_model=LedgerAccountResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_advance(
    db: DbSession, actor: ActorId, payload: AdvanceCreate
) -> LedgerAccountResponse:
    """Record a salary advance recovered at a fixed amount per period."""
    account = await DeductionLedger(db).create_advance(
        employee_id=payload.employee_id,
        principal=payload.principal,
        recovery_amount=payload.recovery_amount,
        start_period=parse_period(payload.start_period),
        penalty_rate=payload.penalty_rate,
        description=payload.description,
        actor=actor,
    )
    return LedgerAccountResponse.model_validate(account)


@router.get("/accounts", response_model=LedgerAccountListResponse)
async def list_accounts(
    db: DbSession,
    employee_id: Annotated[UUID | None, Query()] = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> LedgerAccountListResponse:
    """List ledger accounts with optional filters."""
    accounts = await DeductionLedger(db).list_accounts(employee_id, status_filter)
    return LedgerAccountListResponse(
        items=[LedgerAccountResponse.model_validate(a) for a in accounts],
        total=len(accounts),
    )


@router.get(
    "/accounts/{account_id}",
    response_model=LedgerAccountResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_account(
    db: DbSession, account_id: Annotated[UUID, Path()]
) -> LedgerAccountResponse:
    account = await DeductionLedger(db).get_account(account_id)
    return LedgerAccountResponse.model_validate(account)


@router.get(
    "/accounts/{account_id}/schedule",
    response_model=ScheduleResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_schedule(db: DbSession, account_id: Annotated[UUID, Path()]) -> ScheduleResponse:
    """Installment schedule and committed recoveries."""
    account = await DeductionLedger(db).get_account(account_id)
    return ScheduleResponse(
        ledger_account_id=account.ledger_account_id,
        installments=[InstallmentResponse.model_validate(i) for i in account.installments],
        recoveries=[RecoveryResponse.model_validate(r) for r in account.recoveries],
    )


@router.get(
    "/accounts/{account_id}/due",
    response_model=DueResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_due(
    db: DbSession,
    account_id: Annotated[UUID, Path()],
    period: Annotated[str, Query()],
) -> DueResponse:
    """Amount that would be recovered for a period, penalties included."""
    ledger = DeductionLedger(db)
    account = await ledger.get_account(account_id)
    due = ledger.compute_due(account, parse_period(period))
    return DueResponse(
        ledger_account_id=account_id,
        period=period,
        amount=due.amount,
        principal=due.principal,
        interest=due.interest,
        penalty=due.penalty,
        installment_periods=list(due.periods),
        already_committed=due.already_committed,
    )


@router.post(
    "/accounts/{account_id}/prepay",
    response_model=LedgerAccountResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def prepay(
    db: DbSession,
    actor: ActorId,
    account_id: Annotated[UUID, Path()],
    payload: PrepaymentRequest,
) -> LedgerAccountResponse:
    """Apply an out-of-payroll repayment and regenerate the schedule."""
    account = await DeductionLedger(db).prepay(
        account_id, payload.amount, parse_period(payload.period), actor
    )
    return LedgerAccountResponse.model_validate(account)


@router.post(
    "/accounts/{account_id}/write-off",
    response_model=LedgerAccountResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def write_off(
    db: DbSession,
    actor: ActorId,
    account_id: Annotated[UUID, Path()],
    payload: WriteOffRequest,
) -> LedgerAccountResponse:
    account = await DeductionLedger(db).write_off(account_id, payload.reason, actor)
    return LedgerAccountResponse.model_validate(account)
