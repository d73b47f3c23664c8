"""
Shared pytest fixtures for clinsign tests.

Provides:
  - async SQLite in-memory database (per-test isolation)
  - in-memory fakes for the credential, token, identity and document stores
  - a signature service wired to those fakes
"""
from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import clinsign.db.models  # noqa: F401  (registers mappers)
from clinsign.config.settings import Settings
from clinsign.db.base import Base, utcnow
from clinsign.db.models.signature import AuthMethod, ElectronicSignature, SignatureMeaning
from clinsign.schemas.signature import (
    BiometricDigest,
    BiometricSample,
    SignerSnapshot,
)
from clinsign.services.signature.biometrics import encode_biometric
from clinsign.services.signature.ledger import compute_record_hash
from clinsign.services.signature.service import ElectronicSignatureService


# ─── Settings ─────────────────────────────────────────────────────────────────

TEST_SETTINGS = Settings(
    _env_file=None,
    jwt_secret_key="test-secret-key-not-for-production-at-all",
    environment="testing",
    auth_timeout_seconds=0.5,
    log_json=False,
)

ALICE_ID = "11111111-1111-1111-1111-111111111111"
BOB_ID = "22222222-2222-2222-2222-222222222222"
ALICE_PASSWORD = "correct-horse-battery"
BOB_PASSWORD = "bob-secret-passphrase"
DOC_ID = "dddddddd-dddd-dddd-dddd-dddddddddddd"
VALID_TOKEN = "valid-step-up-token"


# ─── Fakes ────────────────────────────────────────────────────────────────────

class FakeCredentialStore:
    def __init__(self, passwords: dict[str, str], delay: float = 0.0) -> None:
        self.passwords = passwords
        self.delay = delay
        self.calls: list[str] = []

    async def verify_password(self, user_id: str, plaintext: str) -> bool:
        self.calls.append(user_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.passwords.get(user_id) == plaintext


class FakeTokenService:
    def __init__(self, tokens: dict[str, dict[str, Any]], delay: float = 0.0) -> None:
        self.tokens = tokens
        self.delay = delay

    async def verify_token(self, token: str) -> dict[str, Any]:
        if self.delay:
            await asyncio.sleep(self.delay)
        if token not in self.tokens:
            raise RuntimeError("token rejected by issuer")
        return self.tokens[token]


class FakeIdentityStore:
    def __init__(self, user_ids: set[str]) -> None:
        self.user_ids = user_ids

    async def user_exists(self, user_id: str) -> bool:
        return user_id in self.user_ids


class FakeDocumentStore:
    def __init__(self, document_ids: set[str]) -> None:
        self.document_ids = document_ids

    async def exists(self, document_id: str) -> bool:
        return document_id in self.document_ids


class FakeBiometricReferences:
    def __init__(self, digests: dict[str, BiometricDigest] | None = None) -> None:
        self.digests = digests or {}
        self.calls: list[str] = []

    async def latest_biometric_digest(self, user_id: str) -> BiometricDigest | None:
        self.calls.append(user_id)
        return self.digests.get(user_id)


# ─── Database ─────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create an async in-memory SQLite engine per test function."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Provide an async session that rolls back after each test."""
    factory = async_sessionmaker(db_engine, expire_on_commit=False, autoflush=False)
    async with factory() as session:
        yield session
        await session.rollback()


# ─── Collaborators & service ──────────────────────────────────────────────────

@pytest.fixture
def credential_store() -> FakeCredentialStore:
    return FakeCredentialStore({ALICE_ID: ALICE_PASSWORD, BOB_ID: BOB_PASSWORD})


@pytest.fixture
def token_service() -> FakeTokenService:
    return FakeTokenService({VALID_TOKEN: {"sub": ALICE_ID, "type": "signing"}})


@pytest.fixture
def identity_store() -> FakeIdentityStore:
    return FakeIdentityStore({ALICE_ID, BOB_ID})


@pytest.fixture
def document_store() -> FakeDocumentStore:
    return FakeDocumentStore({DOC_ID})


@pytest.fixture
def make_service(db_session, credential_store, token_service, identity_store, document_store):
    """Factory so tests can vary settings while sharing the fakes."""

    def _make(settings: Settings = TEST_SETTINGS) -> ElectronicSignatureService:
        return ElectronicSignatureService(
            db_session,
            settings,
            credential_store=credential_store,
            token_service=token_service,
            identity_store=identity_store,
            document_store=document_store,
        )

    return _make


@pytest.fixture
def service(make_service) -> ElectronicSignatureService:
    return make_service()


@pytest.fixture
def alice() -> SignerSnapshot:
    return SignerSnapshot(user_id=ALICE_ID, user_name="alice@study.org", user_role="coordinator")


@pytest.fixture
def bob() -> SignerSnapshot:
    return SignerSnapshot(
        user_id=BOB_ID, user_name="bob@study.org", user_role="principal_investigator"
    )


@pytest.fixture
def fingerprint() -> BiometricSample:
    return BiometricSample(type="FINGERPRINT", template="minutiae:4f2a9c01e7")


# ─── Direct row seeding (bypasses authentication) ─────────────────────────────

async def insert_signature(
    db: AsyncSession,
    *,
    document_id: str = DOC_ID,
    user_id: str = ALICE_ID,
    meaning: SignatureMeaning = SignatureMeaning.AUTHORED,
    auth_method: AuthMethod = AuthMethod.PASSWORD,
    signed_at: datetime | None = None,
    biometric: BiometricDigest | None = None,
    use_now: bool = True,
) -> ElectronicSignature:
    """Insert a signature row with a correct record hash, e.g. a legacy import."""
    signature_id = str(uuid.uuid4())
    if signed_at is None and use_now:
        signed_at = utcnow()
    fields = {
        "document_id": document_id,
        "user_id": user_id,
        "user_name": f"{user_id}@study.org",
        "user_role": "coordinator",
        "meaning": meaning,
        "auth_method": auth_method,
        "signed_at": signed_at,
        "ip_address": "10.0.0.1",
    }
    row = ElectronicSignature(
        id=signature_id,
        **fields,
        biometric_type=biometric.type if biometric else None,
        biometric_hash=biometric.hash if biometric else None,
        biometric_algorithm=biometric.algorithm if biometric else None,
        biometric_captured_at=biometric.captured_at if biometric else None,
        record_hash=compute_record_hash(signature_id=signature_id, biometric=biometric, **fields),
    )
    db.add(row)
    await db.flush()
    return row


async def enroll_biometric(
    db: AsyncSession,
    user_id: str,
    sample: BiometricSample,
    signed_at: datetime | None = None,
) -> ElectronicSignature:
    """Give a user a prior biometric signature to serve as their reference digest."""
    return await insert_signature(
        db,
        document_id=str(uuid.uuid4()),
        user_id=user_id,
        auth_method=AuthMethod.BIOMETRIC,
        signed_at=signed_at,
        biometric=encode_biometric(sample),
    )
