"""
Signature ledger: the single source of truth for who attested what,
when, and how.

Records are created only through ``create``, which authenticates the
signer first and persists nothing on failure. Once written, a record is
never updated or deleted.
"""

from __future__ import annotations

import hashlib
import json
import uuid
from collections.abc import Callable
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinsign.core.errors import (
    AuditWriteFailure,
    AuthFailure,
    ErrorCode,
    NotFoundError,
    SignatureAuditError,
)
from clinsign.db.base import as_utc, utcnow
from clinsign.db.models.audit import AccessType
from clinsign.db.models.signature import AuthMethod, ElectronicSignature, SignatureMeaning
from clinsign.schemas.signature import (
    BiometricDigest,
    Credential,
    SignatureRecord,
    SignerSnapshot,
)
from clinsign.services.audit.recorder import DEFAULT_USER_AGENT, AuditRecorder
from clinsign.services.signature.authenticator import (
    SignatureAuthenticator,
    coerce_method,
)
from clinsign.services.signature.biometrics import encode_biometric
from clinsign.services.signature.ports import CredentialStore, TokenService

_log = structlog.get_logger(__name__)

SIGNED_RESOURCE_TYPE = "form_response"


def compute_record_hash(
    signature_id: str,
    document_id: str,
    user_id: str,
    user_name: str,
    user_role: str,
    meaning: str,
    auth_method: str,
    signed_at: datetime | None,
    ip_address: str,
    biometric: BiometricDigest | None,
) -> str:
    """SHA-256 over the canonical JSON of every attested field."""
    components = {
        "id": signature_id,
        "document_id": document_id,
        "user_id": user_id,
        "user_name": user_name,
        "user_role": user_role,
        "meaning": str(meaning),
        "auth_method": str(auth_method),
        "signed_at": as_utc(signed_at).isoformat() if signed_at else "",
        "ip_address": ip_address,
        "biometric": (
            {
                "type": biometric.type.value if biometric.type else "",
                "hash": biometric.hash,
                "algorithm": biometric.algorithm,
                "captured_at": (
                    as_utc(biometric.captured_at).isoformat() if biometric.captured_at else ""
                ),
            }
            if biometric is not None
            else None
        ),
    }
    canonical = json.dumps(components, sort_keys=True, ensure_ascii=True)
    return hashlib.sha256(canonical.encode()).hexdigest()


def record_hash_of(record: SignatureRecord) -> str:
    """Recompute the hash a stored record should carry."""
    return compute_record_hash(
        signature_id=record.id,
        document_id=record.document_id,
        user_id=record.user_id,
        user_name=record.user_name,
        user_role=record.user_role,
        meaning=record.meaning,
        auth_method=record.auth_method,
        signed_at=record.signed_at,
        ip_address=record.ip_address,
        biometric=record.biometric_digest,
    )


class SignatureLedger:
    """
    Persists and retrieves electronic signatures.

    The ledger is also the biometric reference source for its own
    authenticator: a signer's reference digest is the newest digest
    carried by one of their earlier signatures.
    """

    def __init__(
        self,
        db: AsyncSession,
        audit: AuditRecorder,
        credential_store: CredentialStore,
        token_service: TokenService,
        *,
        auth_timeout_seconds: float = 5.0,
        biometric_algorithm: str = "sha256",
        audit_failed_attempts: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db = db
        self._audit = audit
        self._algorithm = biometric_algorithm
        self._audit_failed_attempts = audit_failed_attempts
        self._clock = clock
        self.authenticator = SignatureAuthenticator(
            credential_store,
            token_service,
            self,
            timeout_seconds=auth_timeout_seconds,
        )

    async def create(
        self,
        document_id: str,
        signer: SignerSnapshot,
        meaning: SignatureMeaning | str,
        method: AuthMethod | str,
        ip_address: str,
        credential: Credential | None = None,
        user_agent: str | None = None,
    ) -> SignatureRecord:
        """
        Authenticate the signer, persist the signature, audit the event.

        Raises:
            AuthFailure: Authentication failed; nothing was persisted.
            SignatureAuditError: The signature was flushed but its audit
                entry could not be written.
        """
        resolved = coerce_method(method)
        meaning = SignatureMeaning(meaning)

        try:
            sample = await self.authenticator.authenticate(signer.user_id, resolved, credential)
        except AuthFailure as exc:
            if self._audit_failed_attempts:
                await self._audit.record(
                    resource_id=document_id,
                    user_id=signer.user_id,
                    access_type=AccessType.ELECTRONIC_SIGNATURE_FAILED,
                    resource_type=SIGNED_RESOURCE_TYPE,
                    ip_address=ip_address,
                    user_agent=user_agent or DEFAULT_USER_AGENT,
                    reason=f"Electronic signature failed: {meaning.value} ({exc.factor})",
                )
            raise

        # Only a sample that was actually verified is stored
        digest = (
            encode_biometric(sample, self._algorithm, self._clock) if sample is not None else None
        )
        signature_id = str(uuid.uuid4())
        signed_at = self._clock()

        row = ElectronicSignature(
            id=signature_id,
            document_id=document_id,
            user_id=signer.user_id,
            user_name=signer.user_name,
            user_role=signer.user_role,
            meaning=meaning,
            auth_method=resolved,
            signed_at=signed_at,
            ip_address=ip_address,
            user_agent=user_agent,
            biometric_type=digest.type if digest else None,
            biometric_hash=digest.hash if digest else None,
            biometric_algorithm=digest.algorithm if digest else None,
            biometric_captured_at=digest.captured_at if digest else None,
            record_hash=compute_record_hash(
                signature_id=signature_id,
                document_id=document_id,
                user_id=signer.user_id,
                user_name=signer.user_name,
                user_role=signer.user_role,
                meaning=meaning,
                auth_method=resolved,
                signed_at=signed_at,
                ip_address=ip_address,
                biometric=digest,
            ),
        )
        self._db.add(row)
        await self._db.flush()
        record = SignatureRecord.from_orm_row(row)

        try:
            await self._audit.record(
                resource_id=document_id,
                user_id=signer.user_id,
                access_type=AccessType.ELECTRONIC_SIGNATURE,
                resource_type=SIGNED_RESOURCE_TYPE,
                ip_address=ip_address,
                user_agent=user_agent or DEFAULT_USER_AGENT,
                reason=f"Electronic signature: {meaning.value}",
            )
        except AuditWriteFailure as exc:
            _log.error(
                "signature_audit_missing",
                signature_id=record.id,
                document_id=document_id,
            )
            raise SignatureAuditError(record, exc) from exc

        _log.info(
            "electronic_signature_created",
            signature_id=record.id,
            document_id=document_id,
            user_id=signer.user_id,
            meaning=meaning.value,
            auth_method=resolved.value,
        )
        return record

    async def get_by_document(self, document_id: str) -> list[SignatureRecord]:
        """All signatures on a document, oldest first."""
        result = await self._db.execute(
            select(ElectronicSignature)
            .where(ElectronicSignature.document_id == document_id)
            .order_by(ElectronicSignature.signed_at.asc(), ElectronicSignature.id.asc())
        )
        return [SignatureRecord.from_orm_row(row) for row in result.scalars().all()]

    async def get_by_user(self, user_id: str) -> list[SignatureRecord]:
        result = await self._db.execute(
            select(ElectronicSignature)
            .where(ElectronicSignature.user_id == user_id)
            .order_by(ElectronicSignature.signed_at.asc(), ElectronicSignature.id.asc())
        )
        return [SignatureRecord.from_orm_row(row) for row in result.scalars().all()]

    async def find_by_id(self, signature_id: str) -> SignatureRecord | None:
        row = await self._db.get(ElectronicSignature, signature_id)
        return SignatureRecord.from_orm_row(row) if row is not None else None

    async def get_by_id(self, signature_id: str) -> SignatureRecord:
        """Raises NotFoundError when no signature has this id."""
        record = await self.find_by_id(signature_id)
        if record is None:
            raise NotFoundError("Signature", signature_id, code=ErrorCode.SIGNATURE_NOT_FOUND)
        return record

    async def latest_biometric_digest(self, user_id: str) -> BiometricDigest | None:
        """Digest from the signer's newest signature that carried one."""
        result = await self._db.execute(
            select(ElectronicSignature)
            .where(
                ElectronicSignature.user_id == user_id,
                ElectronicSignature.biometric_hash.is_not(None),
            )
            .order_by(ElectronicSignature.signed_at.desc(), ElectronicSignature.id.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return SignatureRecord.from_orm_row(row).biometric_digest
