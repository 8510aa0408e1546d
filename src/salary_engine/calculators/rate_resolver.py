"""Effective-dated rate configuration resolution."""

from __future__ import annotations

from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from salary_engine.calculators.rates import RateConfiguration
from salary_engine.errors import RateConfigurationNotFoundError
from salary_engine.models.rates import RateConfigurationVersion


class RateResolver:
    """Resolves the rate configuration in effect on a date.

    Selection: the version with the latest ``effective_from`` on or before the
    as-of date. A version stays in effect until a later one supersedes it.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._cache: dict[date, RateConfiguration] = {}

    async def resolve(self, as_of_date: date) -> RateConfiguration:
        """Resolve the configuration effective on a date.

        Raises:
            RateConfigurationNotFoundError: If no version is effective yet
        """
        if as_of_date in self._cache:
            return self._cache[as_of_date]

        result = await self.session.execute(
            select(RateConfigurationVersion)
            .where(RateConfigurationVersion.effective_from <= as_of_date)
            .order_by(RateConfigurationVersion.effective_from.desc())
            .limit(1)
        )
        version = result.scalar_one_or_none()
        if version is None:
            raise RateConfigurationNotFoundError(as_of_date)

        config = version.to_domain()
        self._cache[as_of_date] = config
        return config

    async def create_version(
        self,
        version: str,
        effective_from: date,
        payload: dict[str, Any],
        created_by: str | None = None,
    ) -> RateConfigurationVersion:
        """Store a new version after validating its payload.

        Raises:
            ValueError: If the payload is malformed or out of range
        """
        config = RateConfiguration.from_payload(version, effective_from, payload)
        record = RateConfigurationVersion(
            version=version,
            effective_from=effective_from,
            payload_json=config.to_payload(),
            payload_hash=config.fingerprint(),
            created_by=created_by,
        )
        self.session.add(record)
        await self.session.flush()
        self._cache.clear()
        return record

    async def list_versions(self) -> list[RateConfigurationVersion]:
        result = await self.session.execute(
            select(RateConfigurationVersion).order_by(RateConfigurationVersion.effective_from)
        )
        return list(result.scalars().all())
