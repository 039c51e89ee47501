"""
Token Service

Issues and verifies signed, time-limited access tokens (JWT, HS256 by
default). Tokens are never persisted; verification only needs the shared
secret.

Failure kinds:
    - Missing or malformed Authorization header -> Unauthenticated (401)
    - Expired token -> TokenExpired (401)
    - Bad signature, garbage token, missing claims -> Forbidden (403)
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt

from bistro.core.config import Settings
from bistro.core.exceptions import Forbidden, TokenExpired, Unauthenticated

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer"


@dataclass(frozen=True)
class TokenClaims:
    """Decoded identity claims carried by a verified token."""
    email: str
    role: Optional[str]
    issued_at: datetime
    expires_at: datetime


class TokenService:
    """
    Signs identity claims and verifies bearer tokens.

    Example:
        >>> service = TokenService("s3cret", lifetime=timedelta(hours=1))
        >>> token = service.issue("a@x.com")
        >>> service.verify(token).email
        'a@x.com'
    """

    def __init__(
        self,
        secret: str,
        lifetime: timedelta = timedelta(hours=1),
        algorithm: str = "HS256",
    ):
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._secret = secret
        self.lifetime = lifetime
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        """
        Build the service from settings.

        Raises:
            ValueError: If ACCESS_TOKEN_SECRET is missing outside development
        """
        secret = settings.access_token_secret
        if not secret:
            if not settings.is_development:
                raise ValueError(
                    "ACCESS_TOKEN_SECRET is required outside development mode. "
                    "Set it in your .env file or environment variables."
                )
            secret = secrets.token_urlsafe(32)
            logger.warning(
                "ACCESS_TOKEN_SECRET not set, using an ephemeral secret "
                "(tokens will not survive a restart)"
            )

        return cls(
            secret,
            lifetime=timedelta(minutes=settings.access_token_expire_minutes),
            algorithm=settings.access_token_algorithm,
        )

    def issue(
        self,
        email: str,
        role: Optional[str] = None,
        issued_at: Optional[datetime] = None,
    ) -> str:
        """Sign {email, role?} with iat and exp = iat + lifetime."""
        issued_at = issued_at or datetime.now(timezone.utc)
        payload: dict[str, Any] = {
            "email": email,
            "iat": issued_at,
            "exp": issued_at + self.lifetime,
        }
        if role is not None:
            payload["role"] = role

        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenClaims:
        """
        Decode and validate a raw token.

        Raises:
            TokenExpired: The token's exp is in the past
            Forbidden: Signature or structure is invalid
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpired("Access token has expired")
        except jwt.PyJWTError as e:
            logger.debug(f"Token rejected: {e}")
            raise Forbidden("Invalid access token")

        email = payload.get("email")
        if not isinstance(email, str) or not email:
            raise Forbidden("Access token carries no email claim")

        return TokenClaims(
            email=email,
            role=payload.get("role"),
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    def verify_header(self, authorization: Optional[str]) -> TokenClaims:
        """Parse an `Authorization: Bearer <token>` header and verify it."""
        if not authorization:
            raise Unauthenticated("Missing Authorization header")

        parts = authorization.split()
        if len(parts) != 2 or parts[0].lower() != BEARER_PREFIX:
            raise Unauthenticated("Authorization header must be 'Bearer <token>'")

        return self.verify(parts[1])
