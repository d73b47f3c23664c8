"""
Study participant model.

Holds protected health information. Every read, list and update goes
through ParticipantRepository so it is attributable in the audit trail.
"""

from __future__ import annotations

from datetime import date
from enum import StrEnum

from sqlalchemy import Date, String, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from clinsign.db.base import Base, SoftDeleteMixin, TimestampMixin, UUIDPrimaryKeyMixin


class ParticipantStatus(StrEnum):
    SCREENING = "SCREENING"
    ENROLLED = "ENROLLED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    WITHDRAWN = "WITHDRAWN"
    SCREEN_FAILED = "SCREEN_FAILED"


class Participant(Base, UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "participants"
    __table_args__ = (
        UniqueConstraint("study_id", "external_id", name="uq_participants_study_external"),
    )

    study_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    external_id: Mapped[str] = mapped_column(String(100), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[ParticipantStatus] = mapped_column(
        SAEnum(ParticipantStatus, name="participant_status"),
        default=ParticipantStatus.SCREENING,
        nullable=False,
        index=True,
    )
    enrollment_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    created_by: Mapped[str] = mapped_column(String(36), nullable=False)
    updated_by: Mapped[str] = mapped_column(String(36), nullable=False)

    def __repr__(self) -> str:
        return f"<Participant {self.external_id} [{self.status}]>"
