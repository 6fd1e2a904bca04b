"""PKCE (RFC 7636) helpers for the authorization-code flow."""

import base64
import hashlib
import secrets


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_pkce_verifier() -> str:
    """Generate a code verifier.

    Returns:
        43-character URL-safe string (32 random bytes, unpadded base64url)
    """
    return _b64url(secrets.token_bytes(32))


def pkce_challenge(verifier: str) -> str:
    """Derive the S256 code challenge for a verifier.

    Example:
        >>> pkce_challenge("dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk")
        'E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM'
    """
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())
