"""
Append-only PHI access and signing audit recorder.

Every entry is SHA-256 hashed, including the hash of the immediately
preceding entry. This forms a cryptographic hash chain that makes
tampering with historical records detectable.

The chain is linear (single sequence). Writes are serialised via an
asyncio lock, which suspends competing writers without blocking the
event loop.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clinsign.core.errors import AuditWriteFailure
from clinsign.db.base import as_utc, utcnow
from clinsign.db.models.audit import AccessType, AuditEntry

_log = structlog.get_logger(__name__)

_LOCK = asyncio.Lock()

DEFAULT_IP_ADDRESS = "0.0.0.0"
DEFAULT_USER_AGENT = "Unknown"


def _compute_entry_hash(
    sequence_no: int,
    resource_id: str,
    resource_type: str,
    user_id: str,
    access_type: str,
    fields_accessed: str | None,
    reason: str | None,
    ip_address: str,
    user_agent: str,
    created_at: datetime,
    prev_hash: str | None,
) -> str:
    """Compute the SHA-256 hash for an audit entry."""
    components = {
        "sequence_no": sequence_no,
        "resource_id": resource_id,
        "resource_type": resource_type,
        "user_id": user_id,
        "access_type": access_type,
        "fields_accessed": fields_accessed or "",
        "reason": reason or "",
        "ip_address": ip_address,
        "user_agent": user_agent,
        "created_at": as_utc(created_at).isoformat(),
        "prev_hash": prev_hash or "",
    }
    canonical = json.dumps(components, sort_keys=True, ensure_ascii=True)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _hash_of(entry: AuditEntry, prev_hash: str | None) -> str:
    return _compute_entry_hash(
        sequence_no=entry.sequence_no,
        resource_id=entry.resource_id,
        resource_type=entry.resource_type,
        user_id=entry.user_id,
        access_type=entry.access_type,
        fields_accessed=entry.fields_accessed,
        reason=entry.reason,
        ip_address=entry.ip_address,
        user_agent=entry.user_agent,
        created_at=entry.created_at,
        prev_hash=prev_hash,
    )


@dataclass(frozen=True)
class ChainVerification:
    is_valid: bool
    total_entries: int
    first_broken_at: str | None = None


class AuditRecorder:
    """
    Service for writing immutable audit entries.

    Usage:
        recorder = AuditRecorder(db)
        await recorder.record(
            resource_id=participant.id,
            user_id=actor.user_id,
            access_type=AccessType.READ,
            resource_type="participant",
        )
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def record(
        self,
        resource_id: str,
        user_id: str,
        access_type: AccessType | str,
        resource_type: str,
        fields_accessed: Sequence[str] | None = None,
        ip_address: str = DEFAULT_IP_ADDRESS,
        user_agent: str = DEFAULT_USER_AGENT,
        reason: str | None = None,
        correlation_id: str | None = None,
    ) -> AuditEntry:
        """
        Append a single audit entry.

        The lock ensures prev_hash and sequence_no are read and written
        atomically even under concurrent requests, preserving chain
        integrity.

        Raises:
            AuditWriteFailure: If the entry could not be persisted.
        """
        access = AccessType(access_type).value
        fields_json = json.dumps(list(fields_accessed)) if fields_accessed else None

        async with _LOCK:
            try:
                prev_sequence, prev_hash = await self._get_chain_head()
                sequence_no = prev_sequence + 1
                created_at = utcnow()

                entry = AuditEntry(
                    sequence_no=sequence_no,
                    resource_id=resource_id,
                    resource_type=resource_type,
                    user_id=user_id,
                    access_type=access,
                    fields_accessed=fields_json,
                    reason=reason,
                    ip_address=ip_address or DEFAULT_IP_ADDRESS,
                    user_agent=user_agent or DEFAULT_USER_AGENT,
                    correlation_id=correlation_id,
                    created_at=created_at,
                    prev_hash=prev_hash,
                )
                entry.entry_hash = _hash_of(entry, prev_hash)
                self._db.add(entry)
                await self._db.flush()
            except SQLAlchemyError as exc:
                _log.error(
                    "audit_write_failed",
                    resource_id=resource_id,
                    resource_type=resource_type,
                    access_type=access,
                    error=str(exc),
                )
                raise AuditWriteFailure(
                    detail={"resource_id": resource_id, "access_type": access}
                ) from exc

        _log.info(
            "phi_access_logged",
            resource_id=resource_id,
            resource_type=resource_type,
            user_id=user_id,
            access_type=access,
            sequence_no=sequence_no,
        )
        return entry

    async def entries_for(
        self, resource_id: str, resource_type: str | None = None
    ) -> list[AuditEntry]:
        """Entries for one resource in creation order."""
        query = select(AuditEntry).where(AuditEntry.resource_id == resource_id)
        if resource_type:
            query = query.where(AuditEntry.resource_type == resource_type)
        result = await self._db.execute(query.order_by(AuditEntry.sequence_no.asc()))
        return list(result.scalars().all())

    async def _get_chain_head(self) -> tuple[int, str | None]:
        """Fetch sequence_no and entry_hash of the most recently written entry."""
        result = await self._db.execute(
            select(AuditEntry.sequence_no, AuditEntry.entry_hash)
            .order_by(AuditEntry.sequence_no.desc())
            .limit(1)
        )
        row = result.first()
        if row is None:
            return 0, None
        return row.sequence_no, row.entry_hash

    async def verify_chain(self) -> ChainVerification:
        """
        Verify the integrity of the audit hash chain.

        Returns a ChainVerification whose ``first_broken_at`` is the id of
        the first entry where either the stored hash or the back-link does
        not match.
        """
        result = await self._db.execute(
            select(AuditEntry)
            .order_by(AuditEntry.sequence_no.asc())
            .execution_options(populate_existing=True)
        )
        entries: list[AuditEntry] = list(result.scalars().all())
        total = await self._db.scalar(select(func.count()).select_from(AuditEntry))

        prev_hash: str | None = None
        for entry in entries:
            expected = _hash_of(entry, prev_hash)
            if entry.prev_hash != prev_hash or expected != entry.entry_hash:
                _log.error(
                    "audit_chain_broken",
                    entry_id=entry.id,
                    sequence_no=entry.sequence_no,
                    expected_hash=expected,
                    stored_hash=entry.entry_hash,
                )
                return ChainVerification(False, total or 0, entry.id)

            prev_hash = entry.entry_hash

        return ChainVerification(True, total or 0)
