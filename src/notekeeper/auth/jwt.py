"""Session token minting and validation.

Learn: JWT (JSON Web Token) provides stateless authentication.
One token type only: a session token carrying the account id as `sub`,
signed with the process-wide secret and valid for a fixed window
(24h by default). There is no refresh token and no server-side
revocation list — logout is the client throwing the token away, and a
leaked token stays valid until `exp`.
"""

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

import jwt

from notekeeper.config import settings


class TokenError(Exception):
    """Raised when token verification fails."""


class TokenExpired(TokenError):
    pass


class TokenInvalid(TokenError):
    pass


class TokenIssuer:
    """Mints and validates session tokens with one signing key."""

    token_type = "session"

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        ttl: timedelta = timedelta(hours=24),
    ):
        self._secret = secret
        self._algorithm = algorithm
        self.ttl = ttl

    def mint(self, subject_id: str, now: Optional[datetime] = None) -> str:
        """Create a signed session token for `subject_id`."""
        issued = now or datetime.now(timezone.utc)
        payload = {
            "sub": subject_id,
            "type": self.token_type,
            "iat": issued,
            "exp": issued + self.ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def validate(self, token: str) -> str:
        """Verify signature and expiry, returning the subject id.

        Raises TokenExpired or TokenInvalid.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["sub", "exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpired("Token has expired")
        except jwt.InvalidTokenError as e:
            raise TokenInvalid(f"Invalid token: {e}")

        if payload.get("type") != self.token_type:
            raise TokenInvalid("Not a session token")
        return str(payload["sub"])


@lru_cache(maxsize=1)
def get_token_issuer() -> TokenIssuer:
    """The process-wide issuer, built once from settings."""
    return TokenIssuer(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        ttl=timedelta(hours=settings.session_token_expire_hours),
    )
