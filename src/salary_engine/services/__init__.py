"""Salary engine services."""

from salary_engine.services.audit_service import AuditRecorder
from salary_engine.services.commit_service import LedgerCommitService
from salary_engine.services.input_source import InputSource, SqlInputSource
from salary_engine.services.ledger_service import CommitResult, DeductionLedger
from salary_engine.services.pay_run_service import (
    EmployeeFailure,
    PayRunOrchestrator,
    ProcessingOutcome,
)
from salary_engine.services.payment_service import DisbursementRecord, PaymentService
from salary_engine.services.state_machine import PayRunStateMachine, PayRunStatus

__all__ = [
    "AuditRecorder",
    "CommitResult",
    "DeductionLedger",
    "DisbursementRecord",
    "EmployeeFailure",
    "InputSource",
    "LedgerCommitService",
    "PayRunOrchestrator",
    "PayRunStateMachine",
    "PayRunStatus",
    "PaymentService",
    "ProcessingOutcome",
    "SqlInputSource",
]
