"""Declarative base and shared column types for the payroll tables."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, Numeric, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from payrun_engine.config import MAX_CURRENCY_PRECISION

# Amounts are stored in major units; the scale covers every supported
# CURRENCY_PRECISION so rounded totals are stored as computed
Money = Numeric(18, MAX_CURRENCY_PRECISION)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Portable mappings so the schema runs on PostgreSQL and SQLite."""

    type_annotation_map = {
        UUID: Uuid(as_uuid=True),
        datetime: DateTime(timezone=True),
        Decimal: Money,
        dict[str, Any]: JSON,
        list[Any]: JSON,
    }


class TimestampMixin:
    """Adds an insert-time ``created_at`` column."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
