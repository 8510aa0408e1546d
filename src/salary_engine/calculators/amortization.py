"""Installment schedules for loans and salary advances."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from salary_engine.calculators.line_builder import round_money
from salary_engine.calculators.types import Period

ZERO = Decimal("0")


@dataclass(frozen=True)
class ScheduledInstallment:
    """One row of an amortization schedule."""

    sequence: int
    period: Period
    opening_balance: Decimal
    principal: Decimal
    interest: Decimal
    amount: Decimal
    closing_balance: Decimal


def monthly_rate(annual_rate: Decimal) -> Decimal:
    """Annual rate as a fraction (0.12) to its monthly equivalent."""
    return annual_rate / 12


def equated_installment(
    principal: Decimal, annual_rate: Decimal, count: int, precision: int = 2
) -> Decimal:
    """EMI = P * r * (1 + r)^n / ((1 + r)^n - 1), or P / n when r is zero."""
    if count <= 0:
        raise ValueError("installment count must be positive")
    r = monthly_rate(annual_rate)
    if r == 0:
        return round_money(principal / count, precision)
    growth = (1 + r) ** count
    return round_money(principal * r * growth / (growth - 1), precision)


def build_loan_schedule(
    principal: Decimal,
    annual_rate: Decimal,
    count: int,
    start_period: Period,
    precision: int = 2,
    first_sequence: int = 1,
) -> list[ScheduledInstallment]:
    """Equal-installment schedule with interest on the declining balance.

    The final installment's principal is whatever balance remains, so the
    principal components always sum exactly to ``principal``.
    """
    payment = equated_installment(principal, annual_rate, count, precision)
    r = monthly_rate(annual_rate)
    balance = principal
    schedule: list[ScheduledInstallment] = []

    for i in range(count):
        interest = round_money(balance * r, precision)
        if i == count - 1:
            principal_part = balance
        else:
            principal_part = min(max(payment - interest, ZERO), balance)
        closing = balance - principal_part
        schedule.append(
            ScheduledInstallment(
                sequence=first_sequence + i,
                period=start_period.plus(i),
                opening_balance=balance,
                principal=principal_part,
                interest=interest,
                amount=principal_part + interest,
                closing_balance=closing,
            )
        )
        balance = closing

    return schedule


def build_recovery_schedule(
    principal: Decimal,
    recovery_amount: Decimal,
    start_period: Period,
    precision: int = 2,
    first_sequence: int = 1,
) -> list[ScheduledInstallment]:
    """Fixed-amount recovery of an interest-free advance; last row takes the rest."""
    if recovery_amount <= 0:
        raise ValueError("recovery amount must be positive")
    recovery_amount = round_money(recovery_amount, precision)
    balance = principal
    schedule: list[ScheduledInstallment] = []
    i = 0

    while balance > 0:
        amount = min(recovery_amount, balance)
        schedule.append(
            ScheduledInstallment(
                sequence=first_sequence + i,
                period=start_period.plus(i),
                opening_balance=balance,
                principal=amount,
                interest=ZERO,
                amount=amount,
                closing_balance=balance - amount,
            )
        )
        balance -= amount
        i += 1

    return schedule


def overdue_penalty(amount: Decimal, penalty_rate: Decimal, months_overdue: int, precision: int = 2) -> Decimal:
    """Penalty = amount * monthly rate * months overdue."""
    if months_overdue <= 0 or penalty_rate <= 0:
        return ZERO
    return round_money(amount * penalty_rate * months_overdue, precision)
