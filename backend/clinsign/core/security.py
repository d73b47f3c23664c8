"""
Cryptographic primitives used by the default credential and token stores.

Passwords are SHA-256 pre-hashed before bcrypt so inputs longer than
bcrypt's 72-byte limit are not silently truncated. Step-up signing tokens
are short-lived HS256 JWTs tagged ``type=signing``.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
from jose import JWTError, jwt

from clinsign.config.settings import Settings, get_settings

SIGNING_TOKEN_TYPE = "signing"


# ── Password ──────────────────────────────────────────────────────────── #


def _prehash(plain: str) -> bytes:
    return hashlib.sha256(plain.encode("utf-8")).hexdigest().encode("ascii")


def hash_password(plain: str) -> str:
    return bcrypt.hashpw(_prehash(plain), bcrypt.gensalt()).decode("ascii")


def verify_password(plain: str, hashed: str) -> bool:
    """False for a wrong password and for a stored hash bcrypt cannot parse."""
    try:
        return bcrypt.checkpw(_prehash(plain), hashed.encode("ascii"))
    except (ValueError, UnicodeEncodeError):
        return False


# ── Signing tokens ────────────────────────────────────────────────────── #


def create_signing_token(
    subject: str,
    settings: Settings | None = None,
    extra_claims: dict[str, Any] | None = None,
) -> str:
    """
    Issue a step-up token authorising ``subject`` to apply one signature.

    ``extra_claims`` are merged last and may override the defaults (tests
    use this to mint expired or mistyped tokens).
    """
    cfg = settings or get_settings()
    issued = datetime.now(UTC)
    claims: dict[str, Any] = {
        "sub": subject,
        "type": SIGNING_TOKEN_TYPE,
        "iat": issued,
        "exp": issued + timedelta(minutes=cfg.jwt_signing_token_expire_minutes),
        "jti": secrets.token_hex(16),
        **(extra_claims or {}),
    }
    return jwt.encode(claims, cfg.jwt_secret_key.get_secret_value(), algorithm=cfg.jwt_algorithm)


def decode_token(token: str, settings: Settings | None = None) -> dict[str, Any]:
    """
    Verify signature and expiry and return the claims.

    Raises:
        JWTError: Bad signature, expired, or malformed.
    """
    cfg = settings or get_settings()
    return jwt.decode(
        token,
        cfg.jwt_secret_key.get_secret_value(),
        algorithms=[cfg.jwt_algorithm],
    )


def decode_signing_token(token: str, settings: Settings | None = None) -> dict[str, Any]:
    """Like ``decode_token`` but also rejects tokens not issued for signing."""
    claims = decode_token(token, settings)
    if claims.get("type") != SIGNING_TOKEN_TYPE:
        raise JWTError("Token is not a signing token")
    return claims


def safe_str_compare(a: str, b: str) -> bool:
    """Constant-time string equality."""
    return secrets.compare_digest(a.encode(), b.encode())
