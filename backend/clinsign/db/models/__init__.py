"""Database model registry. Import all models here so metadata.create_all can discover them."""

from clinsign.db.models.audit import AccessType, AuditEntry
from clinsign.db.models.form_response import FormResponse, ResponseStatus
from clinsign.db.models.participant import Participant, ParticipantStatus
from clinsign.db.models.signature import (
    AuthMethod,
    BiometricType,
    ElectronicSignature,
    SignatureMeaning,
)
from clinsign.db.models.user import RoleEnum, User

__all__ = [
    "AccessType",
    "AuditEntry",
    "AuthMethod",
    "BiometricType",
    "ElectronicSignature",
    "FormResponse",
    "Participant",
    "ParticipantStatus",
    "ResponseStatus",
    "RoleEnum",
    "SignatureMeaning",
    "User",
]
