"""ORM models."""

from salary_engine.models.audit import AuditEvent
from salary_engine.models.base import Base, TimestampMixin
from salary_engine.models.employee import (
    AttendanceSummaryRecord,
    CompensationConfigRecord,
    Employee,
    PayAdjustment,
)
from salary_engine.models.ledger import (
    AdvanceAccount,
    LedgerAccount,
    LedgerInstallment,
    LedgerPrepayment,
    LedgerRecovery,
    LoanAccount,
)
from salary_engine.models.payroll import PayLine, PayLineItem, PayRun
from salary_engine.models.rates import RateConfigurationVersion

__all__ = [
    "AdvanceAccount",
    "AttendanceSummaryRecord",
    "AuditEvent",
    "Base",
    "CompensationConfigRecord",
    "Employee",
    "LedgerAccount",
    "LedgerInstallment",
    "LedgerPrepayment",
    "LedgerRecovery",
    "LoanAccount",
    "PayAdjustment",
    "PayLine",
    "PayLineItem",
    "PayRun",
    "RateConfigurationVersion",
    "TimestampMixin",
]
