"""
Signature authenticator.

Verifies that the person applying a signature is who they claim to be,
using exactly one of the supported methods:

  PASSWORD      password checked by the credential store
  BIOMETRIC     sample compared with the signer's reference digest
  TOKEN         step-up token checked by the token service
  MULTI_FACTOR  password, then a biometric sample or a token (fail-fast)

The authenticator does no persistence. Every call to an external
collaborator runs under a timeout; a timeout is an authentication
failure, never left pending.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Any, TypeVar

import structlog

from clinsign.core.errors import (
    AuthTimeoutError,
    BiometricMismatchError,
    InvalidCredentialError,
    MissingBiometricError,
    SecondFactorRequiredError,
    TokenInvalidError,
    UnsupportedMethodError,
)
from clinsign.db.models.signature import AuthMethod
from clinsign.schemas.signature import (
    BiometricCredential,
    BiometricDigest,
    BiometricSample,
    Credential,
    MultiFactorCredential,
    PasswordCredential,
    TokenCredential,
)
from clinsign.services.signature import biometrics
from clinsign.services.signature.ports import (
    BiometricReferenceSource,
    CredentialStore,
    TokenService,
)

_log = structlog.get_logger(__name__)

_T = TypeVar("_T")


def coerce_method(method: AuthMethod | str) -> AuthMethod:
    """Parse a method value; anything outside the closed set is a protocol error."""
    try:
        return AuthMethod(method)
    except ValueError:
        raise UnsupportedMethodError(method) from None


class SignatureAuthenticator:
    """
    Dispatches a signing credential to the matching verification path.

    Usage:
        authenticator = SignatureAuthenticator(credentials, tokens, ledger)
        await authenticator.authenticate(user_id, AuthMethod.PASSWORD,
                                         PasswordCredential(password="..."))
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        token_service: TokenService,
        biometric_references: BiometricReferenceSource,
        timeout_seconds: float = 5.0,
    ) -> None:
        self._credentials = credential_store
        self._tokens = token_service
        self._references = biometric_references
        self._timeout = timeout_seconds

    async def authenticate(
        self,
        user_id: str,
        method: AuthMethod | str,
        credential: Credential | None,
        biometric_reference: BiometricDigest | None = None,
        *,
        pin_reference: bool = False,
    ) -> BiometricSample | None:
        """
        Return the biometric sample that was verified, or None when no
        biometric factor took part. Raise an AuthFailure subclass on failure.

        ``biometric_reference`` replaces the signer's most recent digest as
        the comparison target. With ``pin_reference`` a missing reference
        is a mismatch instead of a lookup (re-validating a signature that
        never carried a digest).
        """
        resolved = coerce_method(method)
        verified: BiometricSample | None = None
        try:
            if resolved is AuthMethod.PASSWORD:
                await self._check_password(user_id, _password_of(credential))
            elif resolved is AuthMethod.BIOMETRIC:
                verified = await self._check_biometric(
                    user_id, _biometric_sample_of(credential), biometric_reference, pin_reference
                )
            elif resolved is AuthMethod.TOKEN:
                await self._check_token(user_id, _token_of(credential))
            elif resolved is AuthMethod.MULTI_FACTOR:
                verified = await self._check_multi_factor(
                    user_id, credential, biometric_reference, pin_reference
                )
            else:  # pragma: no cover - AuthMethod is closed
                raise UnsupportedMethodError(method)
        except Exception as exc:
            _log.info(
                "signing_authentication_failed",
                user_id=user_id,
                method=resolved.value,
                reason=getattr(exc, "code", type(exc).__name__),
            )
            raise

        _log.debug("signing_authentication_succeeded", user_id=user_id, method=resolved.value)
        return verified

    # ── Factors ───────────────────────────────────────────────────────── #

    async def _check_password(self, user_id: str, password: str | None) -> None:
        if not password:
            raise InvalidCredentialError("password")
        ok = await self._bounded(self._credentials.verify_password(user_id, password), "password")
        if not ok:
            raise InvalidCredentialError("password")

    async def _check_biometric(
        self,
        user_id: str,
        sample: BiometricSample | None,
        reference: BiometricDigest | None,
        pinned: bool = False,
    ) -> BiometricSample:
        if sample is None:
            raise MissingBiometricError()
        if reference is None and not pinned:
            reference = await self._bounded(
                self._references.latest_biometric_digest(user_id), "biometric"
            )
        # No reference on file means nothing to match against
        if reference is None or not biometrics.matches(reference, sample):
            raise BiometricMismatchError()
        return sample

    async def _check_token(self, user_id: str, token: str | None) -> None:
        if not token:
            raise TokenInvalidError()
        try:
            claims = await asyncio.wait_for(self._tokens.verify_token(token), self._timeout)
        except TimeoutError:
            raise AuthTimeoutError("token") from None
        except Exception:
            raise TokenInvalidError() from None
        subject = claims.get("sub") if isinstance(claims, dict) else None
        if subject is not None and str(subject) != user_id:
            raise TokenInvalidError()

    async def _check_multi_factor(
        self,
        user_id: str,
        credential: Credential | None,
        reference: BiometricDigest | None,
        pinned: bool,
    ) -> BiometricSample | None:
        if not isinstance(credential, MultiFactorCredential):
            # Without a password there is no first factor
            raise InvalidCredentialError("password")
        await self._check_password(user_id, credential.password.get_secret_value())
        if credential.biometric is not None:
            return await self._check_biometric(user_id, credential.biometric, reference, pinned)
        if credential.token is not None:
            await self._check_token(user_id, credential.token.get_secret_value())
            return None
        raise SecondFactorRequiredError()

    async def _bounded(self, call: Awaitable[_T], factor: str) -> _T:
        try:
            return await asyncio.wait_for(call, self._timeout)
        except TimeoutError:
            raise AuthTimeoutError(factor) from None


# ── Credential field extraction ─────────────────────────────────────────── #


def _password_of(credential: Any) -> str | None:
    if isinstance(credential, (PasswordCredential, MultiFactorCredential)):
        return credential.password.get_secret_value()
    return None


def _biometric_sample_of(credential: Any) -> BiometricSample | None:
    if isinstance(credential, BiometricCredential):
        return credential.sample
    if isinstance(credential, MultiFactorCredential):
        return credential.biometric
    return None


def _token_of(credential: Any) -> str | None:
    if isinstance(credential, TokenCredential):
        return credential.token.get_secret_value()
    if isinstance(credential, MultiFactorCredential) and credential.token is not None:
        return credential.token.get_secret_value()
    return None