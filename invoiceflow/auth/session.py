"""Session resolution from request headers.

Sessions are HS256 JWTs signed with ``auth_secret`` and sent as
``Authorization: Bearer <token>``. Sign-up and sign-in flows belong to the
identity provider that issues these tokens; this service only issues and
verifies them.
"""

import logging
import time
from collections.abc import Mapping

import jwt
from pydantic import BaseModel

from invoiceflow.shared.config import Settings

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


class AuthSession(BaseModel):
    """Authenticated session.

    Attributes:
        user_id: Stable user identifier (JWT subject)
        email: User email if present in the token
        expires_at: Expiry in milliseconds since epoch
    """

    user_id: str
    email: str | None = None
    expires_at: int


class SessionService:
    """Issues and verifies session tokens."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def is_available(self) -> bool:
        return bool(self.settings.auth_secret)

    def issue_token(self, user_id: str, email: str | None = None) -> str:
        """Issue a signed session token.

        The API never mints tokens itself. This is the signing half of the
        token contract, for the identity provider's sign-in hook or an
        operator issuing a token for an integration account. It writes
        the claims ``resolve_session`` reads (``sub``, ``exp`` and optionally
        ``email``) plus ``iat``.

        Raises:
            ValueError: If no auth secret is configured
        """
        if not self.is_available():
            raise ValueError(
                "Auth secret not configured. Set APP_AUTH_SECRET environment variable."
            )

        issued_at = int(time.time())
        claims = {
            "sub": user_id,
            "iat": issued_at,
            "exp": issued_at + self.settings.session_ttl_seconds,
        }
        if email:
            claims["email"] = email
        return jwt.encode(claims, self.settings.auth_secret, algorithm=JWT_ALGORITHM)

    def resolve_session(self, headers: Mapping[str, str]) -> AuthSession | None:
        """Resolve the session carried by request headers.

        Returns:
            AuthSession, or None if the token is missing, invalid or expired
        """
        if not self.is_available():
            return None

        authorization = headers.get("authorization") or ""
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None

        try:
            claims = jwt.decode(
                token.strip(),
                self.settings.auth_secret,
                algorithms=[JWT_ALGORITHM],
                options={"require": ["sub", "exp"]},
            )
        except jwt.InvalidTokenError as e:
            logger.info(f"Rejected session token: {e}")
            return None

        return AuthSession(
            user_id=str(claims["sub"]),
            email=claims.get("email"),
            expires_at=int(claims["exp"]) * 1000,
        )
