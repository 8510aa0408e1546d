"""Seed script for the initial rate configuration.

Run with:
    python scripts/seed_rates.py

This creates the first effective-dated rate configuration version needed
for salary calculation. Later versions are published through the API.
"""

from __future__ import annotations

import asyncio
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from salary_engine.calculators.rate_resolver import RateResolver
from salary_engine.database import create_all, dispose_db, get_session
from salary_engine.models import RateConfigurationVersion

INITIAL_VERSION = "FY2024-v1"
INITIAL_EFFECTIVE_FROM = date(2024, 4, 1)

INITIAL_PAYLOAD = {
    "currency_precision": 2,
    "retirement_fund": {
        "employee_rate": "0.12",
        "employer_rate": "0.12",
        "wage_ceiling": "15000",
    },
    "health_insurance": {
        "employee_rate": "0.0075",
        "employer_rate": "0.0325",
        "wage_ceiling": "21000",
    },
    "local_tax_slabs": [
        {"min": "0", "max": "25000", "amount": "0"},
        {"min": "25000.01", "max": None, "amount": "200"},
    ],
    "withholding": {
        "brackets": [
            {"min": "0", "max": "300000", "rate": "0"},
            {"min": "300000", "max": "700000", "rate": "0.05"},
            {"min": "700000", "max": "1000000", "rate": "0.10"},
            {"min": "1000000", "max": "1200000", "rate": "0.15"},
            {"min": "1200000", "max": "1500000", "rate": "0.20"},
            {"min": "1500000", "max": None, "rate": "0.30"},
        ],
        "standard_deduction": "50000",
        "cess_rate": "0.04",
        "fiscal_year_start_month": 4,
    },
    "standard_hours_per_day": "8",
    "overtime_multiplier": "2",
    "overdue_penalty_rate": "0",
}


async def seed_rates(session: AsyncSession) -> None:
    """Create the initial rate configuration version."""
    result = await session.execute(
        select(RateConfigurationVersion).where(
            RateConfigurationVersion.version == INITIAL_VERSION
        )
    )
    if result.scalar_one_or_none():
        print("Rate configuration already exists, skipping...")
        return

    record = await RateResolver(session).create_version(
        INITIAL_VERSION, INITIAL_EFFECTIVE_FROM, INITIAL_PAYLOAD, created_by="seed"
    )
    print(f"Created rate configuration {record.version} effective {record.effective_from}")


async def main() -> None:
    """Run all seed functions."""
    print("Seeding rate configuration...")
    await create_all()
    async with get_session() as session:
        await seed_rates(session)
    await dispose_db()
    print("Done!")


if __name__ == "__main__":
    asyncio.run(main())
