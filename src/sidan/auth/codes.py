"""Random identifiers for auth flows.

- Device codes: opaque, polled by headless clients
- User codes: short XXXX-XXXX codes typed by humans
- State ids and nonces: CSRF protection for the authorization-code flow
"""

import base64
import hmac
import re
import secrets

USER_CODE_PATTERN = re.compile(r"^[A-Z2-7]{8}$")


def _b32(data: bytes) -> str:
    return base64.b32encode(data).decode("ascii").rstrip("=")


def generate_device_code() -> str:
    """Generate a device code (base32 of 32 random bytes, unpadded)."""
    return _b32(secrets.token_bytes(32))


def generate_user_code() -> str:
    """Generate a user code formatted XXXX-XXXX.

    Five random bytes encode to exactly eight base32 characters.
    """
    code = _b32(secrets.token_bytes(5))[:8]
    return f"{code[:4]}-{code[4:8]}"


def validate_user_code(code: str) -> bool:
    """Check user code format.

    Accepts exactly 8 characters from the base32 alphabet (A-Z, 2-7)
    once dashes are removed.

    Example:
        >>> validate_user_code("ABCD-EFGH")
        True
        >>> validate_user_code("ABCD-EFG1")
        False
    """
    return bool(USER_CODE_PATTERN.match(code.replace("-", "")))


def normalize_user_code(code: str) -> str:
    """Normalize user input to the stored XXXX-XXXX form.

    Uppercases, strips whitespace and inserts the dash when it was omitted.
    """
    cleaned = code.strip().upper()
    if len(cleaned) == 8 and "-" not in cleaned:
        cleaned = f"{cleaned[:4]}-{cleaned[4:]}"
    return cleaned


def mask_user_code(code: str) -> str:
    """Mask a user code for logs."""
    return f"{code[:2]}**-****" if code else ""


def generate_state() -> str:
    """Generate an authorization state id (64 hex characters)."""
    return secrets.token_hex(32)


def generate_nonce() -> str:
    """Generate a CSRF nonce (64 hex characters)."""
    return secrets.token_hex(32)


def constant_time_equals(a: str, b: str) -> bool:
    """Compare two secrets without leaking timing information."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))
