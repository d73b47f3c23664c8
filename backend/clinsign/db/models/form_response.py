"""
Form response model: the document that electronic signatures attach to.

Only the columns the signature core reads are modelled here; the form
builder owns the rest of the response lifecycle.
"""

from __future__ import annotations

from enum import StrEnum

from sqlalchemy import String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from clinsign.db.base import Base, SoftDeleteMixin, TimestampMixin, UUIDPrimaryKeyMixin


class ResponseStatus(StrEnum):
    DRAFT = "DRAFT"
    PARTIAL = "PARTIAL"
    COMPLETE = "COMPLETE"
    SUBMITTED = "SUBMITTED"
    REVIEWED = "REVIEWED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    LOCKED = "LOCKED"


class FormResponse(Base, UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """A submitted case report form or study document."""

    __tablename__ = "form_responses"

    form_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    participant_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    status: Mapped[ResponseStatus] = mapped_column(
        SAEnum(ResponseStatus, name="response_status"),
        default=ResponseStatus.DRAFT,
        nullable=False,
    )
    created_by: Mapped[str] = mapped_column(String(36), nullable=False)

    def __repr__(self) -> str:
        return f"<FormResponse {self.id} [{self.status}]>"
