"""Commits a pay run's ledger recoveries when it is paid."""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from salary_engine.calculators.types import Period
from salary_engine.models import PayRun
from salary_engine.services.ledger_service import CommitResult, DeductionLedger

logger = logging.getLogger(__name__)


class LedgerCommitService:
    """Applies the recovery items of every pay line to the ledger.

    Key invariants:
    1. Accounts are committed one at a time in account-id order, so two
       callers touching the same accounts always lock them in the same order.
    2. Retries are safe: an already committed (account, period) is returned
       as-is by ``DeductionLedger.commit``.
    3. Nothing is committed partially: any failure propagates and the
       caller's transaction rolls back every commit made so far.
    """

    def __init__(self, session: AsyncSession, ledger: DeductionLedger | None = None):
        self.session = session
        self.ledger = ledger or DeductionLedger(session)

    @staticmethod
    def collect_recoveries(pay_run: PayRun) -> list[tuple[UUID, Decimal]]:
        """(account_id, amount) pairs from all lines, sorted by account."""
        recoveries: dict[UUID, Decimal] = {}
        for line in pay_run.lines:
            for item in line.recovery_items():
                account_id = item.ledger_account_id
                recoveries[account_id] = recoveries.get(account_id, Decimal("0")) + abs(item.amount)
        return sorted(recoveries.items(), key=lambda pair: str(pair[0]))

    async def commit_pay_run(self, pay_run: PayRun, actor: str | None = None) -> list[CommitResult]:
        period = Period.parse(pay_run.period)
        results: list[CommitResult] = []

        for account_id, amount in self.collect_recoveries(pay_run):
            result = await self.ledger.commit(
                account_id,
                period,
                amount,
                pay_run_id=pay_run.pay_run_id,
                actor=actor,
            )
            results.append(result)

        new_count = sum(1 for r in results if r.is_new)
        logger.info(
            "Committed %d ledger recoveries for pay run %s (%d already committed)",
            new_count,
            pay_run.pay_run_id,
            len(results) - new_count,
        )
        return results
