"""
Default collaborator adapters backed by the platform database and JWTs.

Soft-deleted users and form responses count as no longer existing.
"""

from __future__ import annotations

import asyncio
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinsign.config.settings import Settings
from clinsign.core.security import decode_signing_token, verify_password
from clinsign.db.models.form_response import FormResponse
from clinsign.db.models.user import User


class SqlCredentialStore:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def verify_password(self, user_id: str, plaintext: str) -> bool:
        result = await self._db.execute(
            select(User.password_hash).where(
                User.id == user_id,
                User.deleted_at.is_(None),
                User.is_active.is_(True),
            )
        )
        password_hash = result.scalar_one_or_none()
        if password_hash is None:
            return False
        # bcrypt is CPU-bound
        return await asyncio.to_thread(verify_password, plaintext, password_hash)


class JwtTokenService:
    """Verifies step-up signing tokens issued by the auth service."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def verify_token(self, token: str) -> dict[str, Any]:
        return decode_signing_token(token, self._settings)


class SqlIdentityStore:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def user_exists(self, user_id: str) -> bool:
        result = await self._db.execute(
            select(User.id).where(User.id == user_id, User.deleted_at.is_(None))
        )
        return result.scalar_one_or_none() is not None


class SqlDocumentStore:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def exists(self, document_id: str) -> bool:
        result = await self._db.execute(
            select(FormResponse.id).where(
                FormResponse.id == document_id, FormResponse.deleted_at.is_(None)
            )
        )
        return result.scalar_one_or_none() is not None
