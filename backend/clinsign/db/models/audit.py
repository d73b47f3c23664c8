"""
Immutable audit entry model.

Entries form a hash chain: each entry records the SHA-256 hash of the
previous entry. This makes it computationally infeasible to silently
delete or modify historical records.

The chain can be verified via AuditRecorder.verify_chain().
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from clinsign.db.base import Base, UTCDateTime, UUIDPrimaryKeyMixin, make_append_only, utcnow


class AccessType(StrEnum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    LIST = "LIST"
    ELECTRONIC_SIGNATURE = "ELECTRONIC_SIGNATURE"
    ELECTRONIC_SIGNATURE_FAILED = "ELECTRONIC_SIGNATURE_FAILED"


class AuditEntry(Base, UUIDPrimaryKeyMixin):
    """Single immutable access or action record."""

    __tablename__ = "audit_entries"
    __table_args__ = (
        UniqueConstraint("entry_hash", name="uq_audit_entry_hash"),
        UniqueConstraint("sequence_no", name="uq_audit_entry_sequence"),
        Index("ix_audit_entries_resource", "resource_type", "resource_id"),
    )

    sequence_no: Mapped[int] = mapped_column(Integer, nullable=False)
    resource_id: Mapped[str] = mapped_column(String(36), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(100), nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    access_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # JSON-encoded list of field names, never field values
    fields_accessed: Mapped[str | None] = mapped_column(Text, nullable=True)
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    ip_address: Mapped[str] = mapped_column(String(45), nullable=False)
    user_agent: Mapped[str] = mapped_column(String(500), nullable=False)
    correlation_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    # Hash of this entry (covers all fields except entry_hash itself)
    entry_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    # Hash of the previous entry in the chain; null for the genesis entry
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<AuditEntry #{self.sequence_no} {self.access_type} "
            f"{self.resource_type}:{self.resource_id}>"
        )


make_append_only(AuditEntry, "AuditEntry")
