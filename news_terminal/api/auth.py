"""
Request authentication.

Two schemes:
    - job endpoints (POST /ingest, POST /archive) take the shared internal
      secret as a bearer token
    - viewer endpoints take an HS256 user JWT whose `sub` is the user id
"""
from __future__ import annotations

import hmac
import logging
from typing import Optional

import jwt

from news_terminal.core.types import AuthorizationError

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def bearer_token(header: Optional[str]) -> Optional[str]:
    """Extract the token from an Authorization header value."""
    if not header or not header.startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX):].strip()
    return token or None


def verify_internal_secret(header: Optional[str], secret: str) -> None:
    """
    Check a job request's bearer secret.

    Raises:
        AuthorizationError: If the secret is unconfigured, missing or wrong.
    """
    provided = bearer_token(header)
    # compare_digest only accepts ASCII str, so compare encoded bytes.
    if not secret or provided is None or not hmac.compare_digest(
        provided.encode("utf-8"), secret.encode("utf-8")
    ):
        raise AuthorizationError(
            "Unauthorized: Invalid or missing internal secret", scheme="internal"
        )


class TokenVerifier:
    """Verifies user JWTs and returns the user id."""

    def __init__(self, secret: str, audience: str = "", issuer: str = "") -> None:
        self._secret = secret
        self._audience = audience or None
        self._issuer = issuer or None

    def verify(self, token: Optional[str]) -> str:
        """
        Verify a token and return its subject.

        Raises:
            AuthorizationError: If the token is missing, expired or invalid.
        """
        if not token:
            raise AuthorizationError("Missing or invalid authorization header", scheme="jwt")
        if not self._secret:
            raise AuthorizationError("Token verification is not configured", scheme="jwt")

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=["HS256"],
                audience=self._audience,
                issuer=self._issuer,
                options={
                    "verify_signature": True,
                    "verify_exp": True,
                    "verify_aud": self._audience is not None,
                    "verify_iss": self._issuer is not None,
                    "require": ["exp", "sub"],
                },
            )
        except jwt.ExpiredSignatureError as e:
            logger.warning("Auth: token expired")
            raise AuthorizationError("Token expired", scheme="jwt") from e
        except jwt.InvalidTokenError as e:
            logger.warning(f"Auth: invalid token - {e}")
            raise AuthorizationError("Invalid token", scheme="jwt") from e

        subject = claims.get("sub")
        if not subject:
            raise AuthorizationError("Token has no subject", scheme="jwt")
        return str(subject)

    def verify_header(self, header: Optional[str]) -> str:
        return self.verify(bearer_token(header))
