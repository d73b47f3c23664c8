"""Participant schemas."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from clinsign.db.models.participant import ParticipantStatus


class ParticipantCreate(BaseModel):
    study_id: str = Field(min_length=1, max_length=36)
    external_id: str = Field(min_length=1, max_length=100)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    date_of_birth: date | None = None
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    status: ParticipantStatus = ParticipantStatus.SCREENING
    enrollment_date: date | None = None


class ParticipantUpdate(BaseModel):
    """Partial update; only fields explicitly set are applied and audited."""

    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    date_of_birth: date | None = None
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    status: ParticipantStatus | None = None
    enrollment_date: date | None = None


class ParticipantOut(BaseModel):
    id: str
    study_id: str
    external_id: str
    first_name: str
    last_name: str
    date_of_birth: date | None
    email: str | None
    phone: str | None
    status: ParticipantStatus
    enrollment_date: date | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ParticipantPage(BaseModel):
    items: list[ParticipantOut]
    total: int
    page: int
    page_size: int
    total_pages: int
