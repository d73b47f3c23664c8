"""Audit entry schemas."""

from __future__ import annotations

import json
from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator


class AccessContext(BaseModel):
    """Who is touching protected data, and from where."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    ip_address: str = "0.0.0.0"
    user_agent: str = "Unknown"
    correlation_id: str | None = None


class AuditEntryOut(BaseModel):
    id: str
    sequence_no: int
    resource_id: str
    resource_type: str
    user_id: str
    access_type: str
    fields_accessed: list[str] | None
    reason: str | None
    ip_address: str
    user_agent: str
    correlation_id: str | None
    entry_hash: str
    prev_hash: str | None
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("fields_accessed", mode="before")
    @classmethod
    def _decode_fields(cls, v: object) -> object:
        if isinstance(v, str):
            return json.loads(v)
        return v

