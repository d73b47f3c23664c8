"""
Integrity verifier for stored signatures.

Every check runs on every call so the caller sees all findings at once.
Findings are returned, never raised.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from clinsign.db.base import as_utc, utcnow
from clinsign.schemas.signature import IntegrityResult
from clinsign.services.signature import biometrics
from clinsign.services.signature.ledger import SignatureLedger, record_hash_of
from clinsign.services.signature.ports import DocumentStore, IdentityStore

_log = structlog.get_logger(__name__)

ISSUE_NOT_FOUND = "Signature not found"
ISSUE_TIMESTAMP = "Invalid timestamp"
ISSUE_USER_MISSING = "Signature user no longer exists"
ISSUE_DOCUMENT_MISSING = "Associated form response no longer exists"
ISSUE_BIOMETRIC = "Biometric data integrity compromised"
ISSUE_RECORD_HASH = "Signature record hash mismatch"


class IntegrityVerifier:
    def __init__(
        self,
        ledger: SignatureLedger,
        identity_store: IdentityStore,
        document_store: DocumentStore,
        clock_skew_seconds: int = 0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._ledger = ledger
        self._identities = identity_store
        self._documents = document_store
        self._skew = timedelta(seconds=clock_skew_seconds)
        self._clock = clock

    async def verify(self, signature_id: str) -> IntegrityResult:
        record = await self._ledger.find_by_id(signature_id)
        if record is None:
            return IntegrityResult(
                signature_id=signature_id, is_valid=False, issues=[ISSUE_NOT_FOUND]
            )

        issues: list[str] = []

        if record.signed_at is None or as_utc(record.signed_at) > self._clock() + self._skew:
            issues.append(ISSUE_TIMESTAMP)

        if not await self._identities.user_exists(record.user_id):
            issues.append(ISSUE_USER_MISSING)

        if not await self._documents.exists(record.document_id):
            issues.append(ISSUE_DOCUMENT_MISSING)

        if record.biometric_digest is not None and not biometrics.is_well_formed(
            record.biometric_digest
        ):
            issues.append(ISSUE_BIOMETRIC)

        if record_hash_of(record) != record.record_hash:
            issues.append(ISSUE_RECORD_HASH)

        if issues:
            _log.warning("signature_integrity_issues", signature_id=signature_id, issues=issues)

        return IntegrityResult(signature_id=signature_id, is_valid=not issues, issues=issues)
