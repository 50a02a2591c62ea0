"""Session token signing and verification.

The identity provider signs end-user session tokens with HS256. The signing
key is the UTF-8 encoding of the shared secret string exactly as configured in
``SESSION_JWT_SECRET``; it is never base64-decoded first. Exactly one key
interpretation is ever tried.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
from jwt import ExpiredSignatureError, InvalidTokenError

from embed_broker.core.config import Settings
from embed_broker.core.errors import BrokerError, Unauthenticated


SESSION_ALGORITHM = "HS256"


class SecurityError(BrokerError):
    """Raised when critical security components are misconfigured."""

    default_public_message = "Session verification is not configured"


def signing_key(settings: Settings) -> bytes:
    """Return the HMAC key used for session tokens."""

    if settings.session_jwt_secret is None:
        raise SecurityError("SESSION_JWT_SECRET environment variable is not configured.")
    return settings.session_jwt_secret.get_secret_value().encode("utf-8")


def create_session_token(
    *,
    settings: Settings,
    sub: str,
    email: Optional[str] = None,
    expires_minutes: int = 60,
    extra_claims: Optional[dict[str, Any]] = None,
) -> str:
    """Create a signed session token, mainly for local development."""

    now = datetime.now(tz=timezone.utc)
    payload: dict[str, Any] = {
        "sub": sub,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    if email:
        payload["email"] = email
    if settings.session_jwt_audience:
        payload["aud"] = settings.session_jwt_audience
    if settings.session_jwt_issuer:
        payload["iss"] = settings.session_jwt_issuer
    payload.update(extra_claims or {})
    return jwt.encode(payload, signing_key(settings), algorithm=SESSION_ALGORITHM)


def decode_session_token(token: str, settings: Settings) -> dict[str, Any]:
    """Verify a session token and return its claims."""

    key = signing_key(settings)
    options: dict[str, Any] = {"require": ["exp", "sub"]}
    if not settings.session_jwt_audience:
        options["verify_aud"] = False
    try:
        return jwt.decode(
            token,
            key,
            algorithms=[SESSION_ALGORITHM],
            audience=settings.session_jwt_audience,
            issuer=settings.session_jwt_issuer,
            options=options,
        )
    except ExpiredSignatureError as exc:
        raise Unauthenticated(f"Session token has expired: {exc}") from exc
    except InvalidTokenError as exc:
        raise Unauthenticated(f"Session token rejected: {exc}") from exc


__all__ = [
    "SESSION_ALGORITHM",
    "SecurityError",
    "create_session_token",
    "decode_session_token",
    "signing_key",
]
