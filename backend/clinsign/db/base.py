"""Declarative base, column helpers and the append-only guard for clinsign tables."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import DateTime, String, event
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from clinsign.core.errors import ImmutableRecordError


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def new_id() -> str:
    return str(uuid.uuid4())


class UTCDateTime(TypeDecorator[datetime]):
    """
    Timezone-aware UTC timestamp.

    SQLite drops tzinfo on the way back; this type restores it so that
    hashes over ``isoformat()`` are stable across backends.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: object) -> datetime | None:
        return None if value is None else as_utc(value)

    def process_result_value(self, value: datetime | None, dialect: object) -> datetime | None:
        return None if value is None else as_utc(value)


def utc_column(**kwargs: Any) -> Any:
    return mapped_column(UTCDateTime(), **kwargs)


class Base(DeclarativeBase):
    pass


class UUIDPrimaryKeyMixin:
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)


class TimestampMixin:
    """``created_at`` / ``updated_at`` for rows that may change after insert."""

    created_at: Mapped[datetime] = utc_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = utc_column(default=utcnow, onupdate=utcnow, nullable=False)


class SoftDeleteMixin:
    """Rows are hidden by stamping ``deleted_at``, never removed."""

    deleted_at: Mapped[datetime | None] = utc_column(default=None, nullable=True, index=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def soft_delete(self) -> None:
        self.deleted_at = utcnow()


def make_append_only(model: type[Base], entity: str) -> None:
    """Reject UPDATE and DELETE of ``model`` rows at the ORM level."""

    @event.listens_for(model, "before_update")
    def _prevent_update(mapper: object, connection: object, target: object) -> None:
        raise ImmutableRecordError(entity)

    @event.listens_for(model, "before_delete")
    def _prevent_delete(mapper: object, connection: object, target: object) -> None:
        raise ImmutableRecordError(entity)
