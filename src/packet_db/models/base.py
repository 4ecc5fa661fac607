"""Declarative base and column helpers shared by the packet_db models."""

from datetime import datetime, timezone

from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def required_timestamp() -> Mapped[datetime]:
    """Non-null timezone-aware timestamp defaulting to insert time."""
    return mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)


def optional_timestamp() -> Mapped[datetime | None]:
    return mapped_column(TIMESTAMP(timezone=True), nullable=True)


class Base(DeclarativeBase):
    """Base class for the generation job and rendered packet tables."""
