"""
Electronic signature model.

A signature is a legally binding attestation attached to exactly one
document (form response). Rows are append-only: the subject snapshot,
meaning, method and timestamp are frozen at signing time and guarded by
ORM listeners. ``record_hash`` covers every attested field so tampering
at the storage layer is detectable.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import Index, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from clinsign.db.base import Base, UTCDateTime, UUIDPrimaryKeyMixin, make_append_only


class SignatureMeaning(StrEnum):
    """Declared reason for signing."""

    AUTHORED = "AUTHORED"
    REVIEWED = "REVIEWED"
    APPROVED = "APPROVED"
    WITNESSED = "WITNESSED"
    VERIFIED = "VERIFIED"


class AuthMethod(StrEnum):
    PASSWORD = "PASSWORD"
    BIOMETRIC = "BIOMETRIC"
    TOKEN = "TOKEN"
    MULTI_FACTOR = "MULTI_FACTOR"


class BiometricType(StrEnum):
    FINGERPRINT = "FINGERPRINT"
    FACIAL = "FACIAL"
    IRIS = "IRIS"
    VOICE = "VOICE"
    HANDWRITTEN = "HANDWRITTEN"


class ElectronicSignature(Base, UUIDPrimaryKeyMixin):
    """Single immutable signature record."""

    __tablename__ = "electronic_signatures"
    __table_args__ = (
        Index("ix_electronic_signatures_document_signed", "document_id", "signed_at"),
        Index("ix_electronic_signatures_user_signed", "user_id", "signed_at"),
    )

    document_id: Mapped[str] = mapped_column(String(36), nullable=False)

    # Subject snapshot, never re-resolved
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    user_role: Mapped[str] = mapped_column(String(50), nullable=False)

    meaning: Mapped[SignatureMeaning] = mapped_column(
        SAEnum(SignatureMeaning, name="signature_meaning"), nullable=False, index=True
    )
    auth_method: Mapped[AuthMethod] = mapped_column(
        SAEnum(AuthMethod, name="signature_auth_method"), nullable=False
    )
    signed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    ip_address: Mapped[str] = mapped_column(String(45), nullable=False)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Biometric digest; all four columns are set together or not at all
    biometric_type: Mapped[BiometricType | None] = mapped_column(
        SAEnum(BiometricType, name="biometric_type"), nullable=True
    )
    biometric_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    biometric_algorithm: Mapped[str | None] = mapped_column(String(32), nullable=True)
    biometric_captured_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    record_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    @property
    def has_biometric(self) -> bool:
        return self.biometric_hash is not None or self.biometric_algorithm is not None

    def __repr__(self) -> str:
        return f"<ElectronicSignature {self.meaning} by {self.user_name} [{self.auth_method}]>"


make_append_only(ElectronicSignature, "ElectronicSignature")
