"""Rate configuration version model."""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Date, String
from sqlalchemy.orm import Mapped, mapped_column

from salary_engine.calculators.rates import RateConfiguration
from salary_engine.models.base import Base, TimestampMixin


class RateConfigurationVersion(Base, TimestampMixin):
    """Stored rate configuration, effective from a date until superseded."""

    __tablename__ = "rate_configuration_version"

    rate_configuration_version_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    version: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    payload_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    payload_hash: Mapped[str] = mapped_column(String, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)

    def to_domain(self) -> RateConfiguration:
        return RateConfiguration.from_payload(self.version, self.effective_from, self.payload_json)
