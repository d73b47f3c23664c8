"""
Error types raised by the signing and audit core.

Each error carries a stable ``ErrorCode``, a message safe to show the
signer, the HTTP status an embedding transport should map it to, and a
``detail`` mapping for machine consumers. Authentication failures say
which factor failed, never why a credential did not match.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from clinsign.schemas.signature import SignatureRecord


class ErrorCode(StrEnum):
    """Codes are part of the public contract; retired codes stay retired."""

    # Signing authentication
    AUTH_INVALID_CREDENTIAL = "AUTH_001"
    AUTH_MISSING_BIOMETRIC = "AUTH_002"
    AUTH_BIOMETRIC_MISMATCH = "AUTH_003"
    AUTH_UNSUPPORTED_METHOD = "AUTH_004"
    AUTH_TOKEN_INVALID = "AUTH_005"
    AUTH_SECOND_FACTOR_REQUIRED = "AUTH_006"
    AUTH_TIMEOUT = "AUTH_007"
    AUTH_INSUFFICIENT_PERMISSIONS = "AUTH_008"

    # Signatures
    SIGNATURE_NOT_FOUND = "SIG_001"
    SIGNATURE_IMMUTABLE = "SIG_002"

    # Documents / participants
    DOCUMENT_NOT_FOUND = "DOC_001"
    PARTICIPANT_NOT_FOUND = "PHI_001"

    # Audit
    AUDIT_WRITE_FAILED = "AUD_002"


class ClinsignError(Exception):
    """Root of every error this package raises on purpose."""

    http_status: int = 500

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        http_status: int | None = None,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        if http_status is not None:
            self.http_status = http_status
        self.detail: dict[str, Any] = dict(detail or {})


# ── Authentication failures ───────────────────────────────────────────── #


class AuthFailure(ClinsignError):
    """
    Signing authentication failed.

    Recoverable: the caller may retry with corrected input. ``factor``
    names the authentication factor that failed (password, biometric,
    token, method).
    """

    http_status = 401
    code_for_class: ErrorCode
    message_for_class: str

    def __init__(self, factor: str, message: str | None = None, **kwargs: Any) -> None:
        super().__init__(
            self.code_for_class,
            message or self.message_for_class,
            detail={"factor": factor},
            **kwargs,
        )
        self.factor = factor


class InvalidCredentialError(AuthFailure):
    code_for_class = ErrorCode.AUTH_INVALID_CREDENTIAL
    message_for_class = "Invalid credential"

    def __init__(self, factor: str = "password") -> None:
        super().__init__(factor)


class MissingBiometricError(AuthFailure):
    code_for_class = ErrorCode.AUTH_MISSING_BIOMETRIC
    message_for_class = "Biometric sample required for biometric authentication"

    def __init__(self) -> None:
        super().__init__("biometric")


class BiometricMismatchError(AuthFailure):
    code_for_class = ErrorCode.AUTH_BIOMETRIC_MISMATCH
    message_for_class = "Biometric authentication failed"

    def __init__(self) -> None:
        super().__init__("biometric")


class TokenInvalidError(AuthFailure):
    code_for_class = ErrorCode.AUTH_TOKEN_INVALID
    message_for_class = "Token is invalid or expired"

    def __init__(self) -> None:
        super().__init__("token")


class SecondFactorRequiredError(AuthFailure):
    code_for_class = ErrorCode.AUTH_SECOND_FACTOR_REQUIRED
    message_for_class = "Multi-factor authentication requires a biometric sample or a token"

    def __init__(self) -> None:
        super().__init__("second_factor")


class AuthTimeoutError(AuthFailure):
    code_for_class = ErrorCode.AUTH_TIMEOUT
    message_for_class = "Authentication timed out"

    def __init__(self, factor: str) -> None:
        super().__init__(factor, f"Authentication timed out verifying {factor}")


class UnsupportedMethodError(AuthFailure):
    """A protocol violation rather than a bad credential."""

    code_for_class = ErrorCode.AUTH_UNSUPPORTED_METHOD
    message_for_class = "Unsupported authentication method"

    def __init__(self, method: object) -> None:
        super().__init__(
            "method",
            f"Unsupported authentication method: {method!r}",
            http_status=400,
        )


# ── Lookup / ownership ────────────────────────────────────────────────── #


class NotFoundError(ClinsignError):
    http_status = 404

    def __init__(self, entity: str, entity_id: str | None, code: ErrorCode) -> None:
        super().__init__(
            code,
            f"{entity} not found",
            detail={"entity": entity, "id": entity_id} if entity_id else {"entity": entity},
        )


class ForbiddenError(ClinsignError):
    """The caller may not act on a record owned by someone else."""

    http_status = 403

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS, message)


class ImmutableRecordError(ClinsignError):
    """Raised when an append-only row is updated or deleted."""

    http_status = 409

    def __init__(self, entity: str) -> None:
        super().__init__(
            ErrorCode.SIGNATURE_IMMUTABLE,
            f"{entity} records are append-only and cannot be modified or deleted",
            detail={"entity": entity},
        )


# ── Audit ─────────────────────────────────────────────────────────────── #


class AuditWriteFailure(ClinsignError):
    """
    An audit entry could not be appended.

    Escalated separately from the triggering operation: losing the audit
    trail is itself a compliance violation.
    """

    def __init__(
        self,
        message: str = "Failed to write audit entry",
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(ErrorCode.AUDIT_WRITE_FAILED, message, detail=detail)


class SignatureAuditError(AuditWriteFailure):
    """The signature was persisted but its audit entry was not."""

    def __init__(self, signature: SignatureRecord, cause: AuditWriteFailure) -> None:
        super().__init__(
            "Signature stored but its audit entry could not be written",
            {"signature_id": signature.id, "cause": cause.message},
        )
        self.signature = signature
