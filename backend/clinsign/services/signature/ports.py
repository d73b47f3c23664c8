"""
Collaborator interfaces consumed by the signature core.

Injected as capability objects; the core holds no process-wide state.
SQL and JWT-backed implementations live in ``services.signature.stores``.
"""

from __future__ import annotations

from typing import Any, Protocol

from clinsign.schemas.signature import BiometricDigest


class CredentialStore(Protocol):
    async def verify_password(self, user_id: str, plaintext: str) -> bool: ...


class TokenService(Protocol):
    async def verify_token(self, token: str) -> dict[str, Any]:
        """Return the token claims; raise on any invalid or expired token."""
        ...


class IdentityStore(Protocol):
    async def user_exists(self, user_id: str) -> bool: ...


class DocumentStore(Protocol):
    async def exists(self, document_id: str) -> bool: ...


class BiometricReferenceSource(Protocol):
    async def latest_biometric_digest(self, user_id: str) -> BiometricDigest | None: ...
