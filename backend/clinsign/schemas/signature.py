"""Electronic signature schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from clinsign.db.base import as_utc
from clinsign.db.models.signature import (
    AuthMethod,
    BiometricType,
    ElectronicSignature,
    SignatureMeaning,
)


class SignerSnapshot(BaseModel):
    """Who the signer was at the moment of signing."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(min_length=1, max_length=36)
    user_name: str = Field(min_length=1, max_length=255)
    user_role: str = Field(min_length=1, max_length=50)


# ── Biometrics ────────────────────────────────────────────────────────── #


class BiometricSample(BaseModel):
    """A raw biometric capture. Never persisted; only its digest is."""

    model_config = ConfigDict(frozen=True)

    type: BiometricType
    template: str = Field(min_length=1, description="Encoded biometric template")
    metadata: dict[str, Any] = Field(default_factory=dict)


class BiometricDigest(BaseModel):
    """One-way digest of a biometric sample."""

    model_config = ConfigDict(frozen=True)

    type: BiometricType | None
    hash: str
    algorithm: str
    captured_at: datetime | None

    @field_validator("captured_at")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return as_utc(v) if v is not None else None


# ── Credentials (tagged union keyed on ``kind``) ──────────────────────── #


class PasswordCredential(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["password"] = "password"
    password: SecretStr


class BiometricCredential(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["biometric"] = "biometric"
    sample: BiometricSample


class TokenCredential(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["token"] = "token"
    token: SecretStr


class MultiFactorCredential(BaseModel):
    """Password plus a biometric sample or a token."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["multi_factor"] = "multi_factor"
    password: SecretStr
    biometric: BiometricSample | None = None
    token: SecretStr | None = None


Credential = Annotated[
    PasswordCredential | BiometricCredential | TokenCredential | MultiFactorCredential,
    Field(discriminator="kind"),
]


# ── Records and derived views ─────────────────────────────────────────── #


class SignatureRecord(BaseModel):
    """Read-only view of a persisted signature."""

    model_config = ConfigDict(frozen=True)

    id: str
    document_id: str
    user_id: str
    user_name: str
    user_role: str
    meaning: SignatureMeaning
    auth_method: AuthMethod
    signed_at: datetime | None
    ip_address: str
    user_agent: str | None = None
    biometric_digest: BiometricDigest | None = None
    record_hash: str

    @classmethod
    def from_orm_row(cls, row: ElectronicSignature) -> SignatureRecord:
        digest = None
        if row.has_biometric:
            digest = BiometricDigest(
                type=row.biometric_type,
                hash=row.biometric_hash or "",
                algorithm=row.biometric_algorithm or "",
                captured_at=row.biometric_captured_at,
            )
        return cls(
            id=row.id,
            document_id=row.document_id,
            user_id=row.user_id,
            user_name=row.user_name,
            user_role=row.user_role,
            meaning=row.meaning,
            auth_method=row.auth_method,
            signed_at=row.signed_at,
            ip_address=row.ip_address,
            user_agent=row.user_agent,
            biometric_digest=digest,
            record_hash=row.record_hash,
        )


class IntegrityResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    signature_id: str
    is_valid: bool
    issues: list[str]


class ComplianceReport(BaseModel):
    """Derived view over a document's signatures. Never persisted or cached."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    total_signatures: int
    signatures_by_meaning: dict[SignatureMeaning, int]
    signatures_by_method: dict[AuthMethod, int]
    is_compliant: bool
    violations: list[str]
    signatures: list[SignatureRecord] = Field(default_factory=list)
