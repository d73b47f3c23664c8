"""
Electronic signature service: the entry point other parts of the
platform call into.

Wires the ledger, audit recorder, integrity verifier and compliance
evaluator around one database session. Use ``build_signature_service``
for the default SQL/JWT collaborators, or construct directly with fakes.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from clinsign.config.settings import Settings, get_settings
from clinsign.core.errors import AuthFailure, ErrorCode, ForbiddenError, NotFoundError
from clinsign.db.models.audit import AccessType
from clinsign.db.models.signature import AuthMethod, SignatureMeaning
from clinsign.schemas.audit import AuditEntryOut
from clinsign.schemas.signature import (
    ComplianceReport,
    Credential,
    IntegrityResult,
    SignatureRecord,
    SignerSnapshot,
)
from clinsign.services.audit.recorder import (
    DEFAULT_IP_ADDRESS,
    DEFAULT_USER_AGENT,
    AuditRecorder,
)
from clinsign.services.signature.authenticator import coerce_method
from clinsign.services.signature.compliance import ComplianceEvaluator, default_rules
from clinsign.services.signature.integrity import IntegrityVerifier
from clinsign.services.signature.ledger import SignatureLedger
from clinsign.services.signature.ports import (
    CredentialStore,
    DocumentStore,
    IdentityStore,
    TokenService,
)
from clinsign.services.signature.stores import (
    JwtTokenService,
    SqlCredentialStore,
    SqlDocumentStore,
    SqlIdentityStore,
)

_log = structlog.get_logger(__name__)


class ElectronicSignatureService:
    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        credential_store: CredentialStore,
        token_service: TokenService,
        identity_store: IdentityStore,
        document_store: DocumentStore,
    ) -> None:
        self._documents = document_store
        self.audit = AuditRecorder(db)
        self.ledger = SignatureLedger(
            db,
            self.audit,
            credential_store,
            token_service,
            auth_timeout_seconds=settings.auth_timeout_seconds,
            biometric_algorithm=settings.biometric_algorithm,
            audit_failed_attempts=settings.audit_failed_signing_attempts,
        )
        self.integrity = IntegrityVerifier(
            self.ledger,
            identity_store,
            document_store,
            clock_skew_seconds=settings.clock_skew_seconds,
        )
        self.compliance = ComplianceEvaluator(
            self.ledger, default_rules(settings.compliance_required_meanings)
        )

    async def sign_document(
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
        Apply an electronic signature to a document.

        Raises:
            NotFoundError: The document does not exist.
            AuthFailure: Authentication failed; no signature was stored.
            SignatureAuditError: Stored, but the audit entry is missing.
        """
        if not await self._documents.exists(document_id):
            raise NotFoundError("Form response", document_id, code=ErrorCode.DOCUMENT_NOT_FOUND)
        return await self.ledger.create(
            document_id,
            signer,
            meaning,
            method,
            ip_address,
            credential=credential,
            user_agent=user_agent,
        )

    async def list_signatures(self, document_id: str) -> list[SignatureRecord]:
        return await self.ledger.get_by_document(document_id)

    async def get_signature(self, signature_id: str) -> SignatureRecord:
        return await self.ledger.get_by_id(signature_id)

    async def verify_signature(self, signature_id: str) -> IntegrityResult:
        return await self.integrity.verify(signature_id)

    async def compliance_report(self, document_id: str) -> ComplianceReport:
        return await self.compliance.evaluate(document_id)

    async def validate_signature(
        self,
        signature_id: str,
        user_id: str,
        method: AuthMethod | str,
        credential: Credential | None,
    ) -> bool:
        """
        Re-authenticate the owner of an existing signature.

        Biometric samples are compared with the digest stored on that
        signature rather than the owner's latest one; a signature stored
        without a digest never re-validates biometrically.

        Raises:
            NotFoundError: Unknown signature id.
            ForbiddenError: The signature belongs to someone else.
            UnsupportedMethodError: ``method`` is not a known method.
        """
        record = await self.ledger.get_by_id(signature_id)
        if record.user_id != user_id:
            raise ForbiddenError("Signature does not belong to user")
        resolved = coerce_method(method)
        try:
            await self.ledger.authenticator.authenticate(
                user_id,
                resolved,
                credential,
                biometric_reference=record.biometric_digest,
                pin_reference=True,
            )
        except AuthFailure as exc:
            _log.info(
                "signature_revalidation_failed",
                signature_id=signature_id,
                user_id=user_id,
                factor=exc.factor,
            )
            return False
        return True

    async def record_access(
        self,
        resource_id: str,
        user_id: str,
        access_type: AccessType | str,
        resource_type: str,
        fields_accessed: Sequence[str] | None = None,
        ip_address: str = DEFAULT_IP_ADDRESS,
        user_agent: str = DEFAULT_USER_AGENT,
        reason: str | None = None,
    ) -> None:
        await self.audit.record(
            resource_id=resource_id,
            user_id=user_id,
            access_type=access_type,
            resource_type=resource_type,
            fields_accessed=fields_accessed,
            ip_address=ip_address,
            user_agent=user_agent,
            reason=reason,
        )

    async def audit_trail(
        self, resource_id: str, resource_type: str | None = None
    ) -> list[AuditEntryOut]:
        entries = await self.audit.entries_for(resource_id, resource_type)
        return [AuditEntryOut.model_validate(e) for e in entries]


def build_signature_service(
    db: AsyncSession, settings: Settings | None = None
) -> ElectronicSignatureService:
    """Service wired to the default database and JWT collaborators."""
    cfg = settings or get_settings()
    return ElectronicSignatureService(
        db,
        cfg,
        credential_store=SqlCredentialStore(db),
        token_service=JwtTokenService(cfg),
        identity_store=SqlIdentityStore(db),
        document_store=SqlDocumentStore(db),
    )
