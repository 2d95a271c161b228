"""Shared base fields and helpers for all models."""

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Naive UTC now. The single time source for the service layer."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


def naive_timestamp(**kwargs: Any) -> Any:
    """A timestamp column stored as naive UTC (``TIMESTAMP WITHOUT TIME ZONE``)."""
    return Field(sa_type=DateTime(timezone=False), **kwargs)


class TimestampMixin(SQLModel):
    """Created / updated timestamps injected into every table."""

    created_at: datetime = naive_timestamp(default_factory=utcnow, nullable=False)
    updated_at: datetime = naive_timestamp(default_factory=utcnow, nullable=False)

    def touch(self) -> None:
        self.updated_at = utcnow()
