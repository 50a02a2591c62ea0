"""Authentication of the end user calling the broker."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from embed_broker.core.config import Settings
from embed_broker.core.errors import Unauthenticated
from embed_broker.core.security import decode_session_token
from embed_broker.schemas.embed import UserIdentity


logger = logging.getLogger(__name__)

security_scheme = HTTPBearer(auto_error=False)


class RequestAuthenticator:
    """Turn a bearer session token into a :class:`UserIdentity`."""

    def __init__(self, *, settings: Settings) -> None:
        self._settings = settings

    def authenticate(self, credentials: Optional[str]) -> UserIdentity:
        """Verify ``credentials`` and return the identity it names."""

        if credentials is None or not credentials.strip():
            raise Unauthenticated(
                "Missing or invalid Authorization header",
                public_message="Missing or invalid Authorization header",
            )

        try:
            claims = decode_session_token(credentials.strip(), self._settings)
        except Unauthenticated as exc:
            logger.warning("Session token verification failed: %s", exc)
            raise

        sub = claims.get("sub")
        if not isinstance(sub, str) or not sub:
            logger.warning("Session token has no usable subject claim")
            raise Unauthenticated("Session token subject is empty")

        email = claims.get("email")
        identity = UserIdentity(
            user_id=sub, email=email if isinstance(email, str) else None
        )
        logger.info("Authenticated request from user %s", identity.user_id)
        return identity


def get_authenticator(request: Request) -> RequestAuthenticator:
    """Return the authenticator owned by the running application."""

    return request.app.state.broker.authenticator


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(security_scheme),
    authenticator: RequestAuthenticator = Depends(get_authenticator),
) -> UserIdentity:
    """Return the identity of the caller based on the bearer token."""

    token = credentials.credentials if credentials is not None else None
    return authenticator.authenticate(token)


__all__ = [
    "RequestAuthenticator",
    "get_authenticator",
    "get_current_identity",
    "security_scheme",
]
