"""Typed errors for the authentication core.

Every error carries the HTTP status and envelope code it maps to, so the
API layer can translate it once at the handler boundary. Nested call sites
raise these and never swallow them.
"""


class AuthCoreError(Exception):
    """Base class for all authentication core errors."""

    status_code: int = 500
    error: str = "server_error"
    kind: str = "internal"

    def __init__(self, description: str | None = None):
        self.description = description or self.default_description()
        super().__init__(self.description)

    @classmethod
    def default_description(cls) -> str:
        return cls.__doc__.strip().splitlines()[0] if cls.__doc__ else cls.__name__


# Request validation (400)


class InputError(AuthCoreError):
    """Malformed request."""

    status_code = 400
    error = "invalid_request"
    kind = "input"


class UnsupportedProvider(InputError):
    """Unknown or unconfigured provider."""

    def __init__(self, provider: str | None = None):
        self.provider = provider
        super().__init__(f"unsupported provider: {provider}" if provider else None)


class CSRFError(AuthCoreError):
    """Invalid or missing authorization state."""

    status_code = 400
    error = "invalid_state"
    kind = "csrf"


# Authentication (401) and authorization (403)


class AuthError(AuthCoreError):
    """Authentication required."""

    status_code = 401
    error = "unauthorized"
    kind = "auth"


class InvalidToken(AuthError):
    """invalid token"""


class ExpiredToken(AuthError):
    """token expired"""


class MemberUnregistered(AuthError):
    """Email not registered with a member."""


class NoVerifiedEmail(AuthError):
    """No verified email returned by provider."""


class ScopeError(AuthCoreError):
    """insufficient permissions"""

    status_code = 403
    error = "forbidden"
    kind = "scope"


# Device grant lifecycle (RFC 8628 section 3.5)


class GrantError(AuthCoreError):
    """Device grant error."""

    status_code = 400
    error = "invalid_grant"
    kind = "grant"


class InvalidRequest(GrantError):
    """The request is missing a required parameter or is malformed."""

    error = "invalid_request"


class UnsupportedGrantType(GrantError):
    """The grant type is not supported."""

    error = "unsupported_grant_type"


class AuthorizationPending(GrantError):
    """User has not yet authorized the device."""

    error = "authorization_pending"


class AccessDenied(GrantError):
    """The user denied the authorization request."""

    status_code = 403
    error = "access_denied"


class ExpiredDeviceCode(GrantError):
    """The device code has expired."""

    error = "expired_token"


class InvalidGrant(GrantError):
    """The device code is invalid or was already used."""

    error = "invalid_grant"


# Upstream provider failures (502)


class UpstreamError(AuthCoreError):
    """Upstream provider request failed."""

    status_code = 502
    error = "upstream_error"
    kind = "upstream"


class CodeExchangeFailed(UpstreamError):
    """code exchange failed"""


class UserInfoFailed(UpstreamError):
    """userinfo request failed"""


class TokenRefreshFailed(UpstreamError):
    """token refresh failed"""


# Crypto and storage (500)


class CryptoError(AuthCoreError):
    """Token encryption failed."""

    kind = "crypto"


class InvalidKeyError(CryptoError):
    """Invalid encryption key."""


class StorageError(AuthCoreError):
    """State store operation failed."""

    kind = "storage"


class NotFound(StorageError):
    """Record not found."""

    status_code = 404
    error = "not_found"


class Expired(NotFound):
    """Record expired."""


class Conflict(StorageError):
    """Record already exists."""

    status_code = 409
    error = "conflict"
