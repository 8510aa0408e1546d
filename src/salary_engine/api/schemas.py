"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field

from salary_engine.services.state_machine import PayRunStateMachine


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    detail: str
    code: str | None = None


# ============================================================================
# Pay Run schemas
# ============================================================================


class PayRunCreate(BaseModel):
    """Schema for creating a new pay run."""

    period: str = Field(pattern=r"^\d{4}-\d{2}$", examples=["2024-04"])
    default_attendance: bool = False


class PayRunResponse(BaseModel):
    """Schema for pay run response."""

    model_config = ConfigDict(from_attributes=True)

    pay_run_id: UUID
    period: str
    revision: int
    status: str
    default_attendance: bool
    rate_version: str | None = None
    employee_count: int
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal
    total_employer_contributions: Decimal
    negative_net_count: int
    failures: list[dict[str, Any]] = []
    created_by: str | None = None
    processed_at: datetime | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    locked: bool
    supersedes_pay_run_id: UUID | None = None
    created_at: datetime

    @computed_field
    @property
    def next_statuses(self) -> list[str]:
        """Statuses the run can move to from here."""
        return PayRunStateMachine.get_next_statuses(self.status)


class PayRunListResponse(BaseModel):
    """Schema for listing pay runs."""

    items: list[PayRunResponse]
    total: int


class CancelRequest(BaseModel):
    """Schema for cancelling a pay run."""

    reason: str = Field(min_length=1)


class CorrectionRequest(BaseModel):
    """Schema for opening a correction revision."""

    default_attendance: bool = False


# ============================================================================
# Pay Line schemas
# ============================================================================


class PayLineItemResponse(BaseModel):
    """Schema for pay line item response."""

    model_config = ConfigDict(from_attributes=True)

    sequence: int
    line_type: str
    code: str
    quantity: Decimal | None = None
    rate: Decimal | None = None
    amount: Decimal
    ledger_account_id: UUID | None = None
    explanation: str | None = None


class PayLineResponse(BaseModel):
    """Schema for an employee's pay line with its items."""

    model_config = ConfigDict(from_attributes=True)

    pay_line_id: UUID
    pay_run_id: UUID
    employee_id: UUID
    employee_snapshot_json: dict[str, Any]
    attendance_json: dict[str, Any]
    rate_version: str
    engine_version: str
    gross: Decimal
    total_deductions: Decimal
    net: Decimal
    employer_contributions: Decimal
    taxable_gross: Decimal
    withholding_tax: Decimal
    negative_net: bool
    items: list[PayLineItemResponse] = []


class PayLineListResponse(BaseModel):
    """Schema for listing pay lines."""

    items: list[PayLineResponse]
    total: int


class DisbursementRecordResponse(BaseModel):
    """Schema for one disbursement record."""

    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    employee_name: str
    net_amount: Decimal
    period: str
    pay_run_id: UUID


class DisbursementResponse(BaseModel):
    """Schema for a pay run's disbursement records."""

    pay_run_id: UUID
    records: list[DisbursementRecordResponse]
    total_amount: Decimal


# ============================================================================
# Ledger schemas
# ============================================================================


class LoanCreate(BaseModel):
    """Schema for opening a loan."""

    employee_id: UUID
    principal: Decimal = Field(gt=0)
    annual_interest_rate: Decimal = Field(ge=0, default=Decimal("0"))
    installment_count: int = Field(gt=0)
    start_period: str = Field(pattern=r"^\d{4}-\d{2}$")
    penalty_rate: Decimal | None = Field(default=None, ge=0)
    description: str | None = None


class AdvanceCreate(BaseModel):
    """Schema for recording a salary advance."""

    employee_id: UUID
    principal: Decimal = Field(gt=0)
    recovery_amount: Decimal = Field(gt=0)
    start_period: str = Field(pattern=r"^\d{4}-\d{2}$")
    penalty_rate: Decimal | None = Field(default=None, ge=0)
    description: str | None = None


class PrepaymentRequest(BaseModel):
    """Schema for an out-of-payroll repayment."""

    amount: Decimal = Field(gt=0)
    period: str = Field(pattern=r"^\d{4}-\d{2}$")


class WriteOffRequest(BaseModel):
    """Schema for writing off an account."""

    reason: str = Field(min_length=1)


class LedgerAccountResponse(BaseModel):
    """Schema for ledger account response."""

    model_config = ConfigDict(from_attributes=True)

    ledger_account_id: UUID
    employee_id: UUID
    account_type: str
    principal: Decimal
    annual_interest_rate: Decimal
    installment_count: int | None = None
    installment_amount: Decimal
    penalty_rate: Decimal
    start_period: str
    total_recovered: Decimal
    remaining_balance: Decimal
    status: str
    description: str | None = None
    closed_at: datetime | None = None
    close_reason: str | None = None


class LedgerAccountListResponse(BaseModel):
    """Schema for listing ledger accounts."""

    items: list[LedgerAccountResponse]
    total: int


class InstallmentResponse(BaseModel):
    """Schema for one scheduled installment."""

    model_config = ConfigDict(from_attributes=True)

    sequence: int
    period: str
    opening_balance: Decimal
    principal: Decimal
    interest: Decimal
    amount: Decimal
    closing_balance: Decimal
    committed: bool
    committed_period: str | None = None


class RecoveryResponse(BaseModel):
    """Schema for a committed recovery."""

    model_config = ConfigDict(from_attributes=True)

    period: str
    amount: Decimal
    principal: Decimal
    interest: Decimal
    penalty: Decimal
    balance_after: Decimal
    pay_run_id: UUID | None = None


class ScheduleResponse(BaseModel):
    """Schema for an account's schedule and recovery history."""

    ledger_account_id: UUID
    installments: list[InstallmentResponse]
    recoveries: list[RecoveryResponse]


class DueResponse(BaseModel):
    """Schema for the amount due on an account for a period."""

    ledger_account_id: UUID
    period: str
    amount: Decimal
    principal: Decimal
    interest: Decimal
    penalty: Decimal
    installment_periods: list[str]
    already_committed: bool


# ============================================================================
# Rate configuration schemas
# ============================================================================


class RateVersionCreate(BaseModel):
    """Schema for publishing a rate configuration version."""

    version: str = Field(min_length=1)
    effective_from: date
    payload: dict[str, Any]


class RateVersionResponse(BaseModel):
    """Schema for a stored rate configuration version."""

    model_config = ConfigDict(from_attributes=True)

    version: str
    effective_from: date
    payload_json: dict[str, Any]
    payload_hash: str
    created_by: str | None = None
    created_at: datetime


class RateVersionListResponse(BaseModel):
    """Schema for listing rate configuration versions."""

    items: list[RateVersionResponse]
    total: int


class EffectiveRatesResponse(BaseModel):
    """Schema for the configuration in effect on a date."""

    as_of_date: date
    version: str
    effective_from: date
    fingerprint: str
    payload: dict[str, Any]


# ============================================================================
# Audit schemas
# ============================================================================


class AuditEventResponse(BaseModel):
    """Schema for an audit event."""

    model_config = ConfigDict(from_attributes=True)

    audit_event_id: int
    entity_type: str
    entity_id: str
    action: str
    actor: str | None = None
    payload_json: dict[str, Any]
    created_at: datetime


class AuditEventListResponse(BaseModel):
    """Schema for listing audit events."""

    items: list[AuditEventResponse]
    total: int
