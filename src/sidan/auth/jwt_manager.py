"""JWT manager for first-party access tokens.

Access tokens are HMAC-SHA256 signed with a process-wide secret and carry
member identity plus granted scopes. They are issued by the device flow and
accepted as a Bearer alternative to session cookies.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt as pyjwt
from pydantic import ValidationError

from sidan.auth.errors import ExpiredToken, InvalidToken
from sidan.auth.models import JWTClaims

ISSUER = "sidan-backend"
ALGORITHM = "HS256"
BEARER_PREFIX = "Bearer "


class JWTManager:
    """JWT manager with HS256 signing.

    Only HS256 is accepted on validation; tokens whose header names any
    other algorithm (including "none") are rejected.
    """

    def __init__(
        self,
        secret: bytes,
        lifetime: timedelta = timedelta(hours=8),
        issuer: str = ISSUER,
    ):
        """Initialize JWT manager.

        Args:
            secret: HMAC signing secret
            lifetime: Token lifetime (exp = iat + lifetime)
            issuer: Expected and issued `iss` claim
        """
        self.secret = secret
        self.lifetime = lifetime
        self.issuer = issuer

    def encode_token(self, payload: dict[str, Any]) -> str:
        """Sign a raw payload."""
        return pyjwt.encode(payload, self.secret, algorithm=ALGORITHM)

    def generate(
        self,
        member_number: int,
        email: str,
        scopes: list[str],
        provider: str,
        now: datetime | None = None,
    ) -> str:
        """Create an access token.

        Args:
            member_number: External member number
            email: Member email (also the `sub` claim)
            scopes: Granted scopes
            provider: Provider used to authenticate
            now: Issue time (defaults to current UTC time)

        Returns:
            Encoded JWT string

        Example:
            >>> manager = JWTManager(b"x" * 32)
            >>> token = manager.generate(42, "a@b.se", ["read:member"], "google")
            >>> manager.validate(token).member_number
            42
        """
        now = now or datetime.now(timezone.utc)
        issued = int(now.timestamp())
        payload = {
            "member_number": member_number,
            "email": email,
            "scopes": list(scopes),
            "provider": provider,
            "iss": self.issuer,
            "sub": email,
            "iat": issued,
            "nbf": issued,
            "exp": int((now + self.lifetime).timestamp()),
        }
        return self.encode_token(payload)

    def validate(self, token: str) -> JWTClaims:
        """Verify signature and registered claims.

        Raises:
            ExpiredToken: `exp` has passed
            InvalidToken: Any other parse, signature, algorithm or claim failure
        """
        try:
            payload = pyjwt.decode(
                token,
                self.secret,
                algorithms=[ALGORITHM],
                issuer=self.issuer,
                options={"require": ["exp", "iat", "nbf", "iss", "sub"]},
            )
        except pyjwt.ExpiredSignatureError as e:
            raise ExpiredToken() from e
        except pyjwt.InvalidTokenError as e:
            raise InvalidToken() from e

        try:
            return JWTClaims.model_validate(payload)
        except ValidationError as e:
            raise InvalidToken() from e


def extract_bearer(auth_header: str | None) -> str:
    """Extract the token from an `Authorization: Bearer <token>` header.

    The prefix is case-sensitive and must be followed by a token.

    Example:
        >>> extract_bearer("Bearer abc")
        'abc'
        >>> extract_bearer("bearer abc")
        ''
    """
    if auth_header and len(auth_header) > len(BEARER_PREFIX) and auth_header.startswith(BEARER_PREFIX):
        return auth_header[len(BEARER_PREFIX):]
    return ""
