"""Auth records shared by the flow engines and the state store.

Records are typed pydantic models. Timestamps are timezone-aware UTC.
Provider tokens hold ciphertext only; plaintext never reaches the store.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemberType(str, Enum):
    """Member category, controls granted scopes."""

    MEMBER = "member"
    PROSPECT = "prospect"
    SUSPECT = "suspect"

    @property
    def prefix(self) -> str:
        return {"member": "#", "prospect": "P", "suspect": "S"}[self.value]


class Member(BaseModel):
    """Community member (read-only for the auth core)."""

    id: int = Field(description="Internal identifier")
    number: int = Field(description="External member number (unique)")
    email: str = Field(description="Primary email (unique, case-insensitive)")
    type: MemberType = Field(default=MemberType.MEMBER, description="Member type")
    valid: bool = Field(default=True, description="Whether the member may log in")
    name: str | None = Field(default=None, description="Display name")

    @property
    def username(self) -> str:
        """Public username, e.g. '#42' or 'P7'."""
        return f"{self.type.prefix}{self.number}"


class AuthState(BaseModel):
    """In-flight authorization-code flow (CSRF nonce + PKCE verifier)."""

    id: str = Field(description="Opaque state id, stored in the auth_state cookie")
    provider: str = Field(description="Upstream provider name")
    nonce: str = Field(description="Value sent upstream as the OAuth state parameter")
    pkce_verifier: str = Field(min_length=43, max_length=128)
    redirect_uri: str | None = Field(default=None, description="Post-login redirect")
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) > self.expires_at


class Session(BaseModel):
    """Server-side session referenced by the session_id cookie."""

    id: str
    member_id: int
    scopes: list[str] = Field(default_factory=list)
    provider: str | None = Field(default=None, description="Provider used to log in")
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime
    last_activity_at: datetime = Field(default_factory=utcnow)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) > self.expires_at


class DeviceStatus(str, Enum):
    """Device code lifecycle.

    pending -> approved -> completed
    pending -> denied
    """

    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    COMPLETED = "completed"


class DeviceCode(BaseModel):
    """Pending RFC 8628 device authorization."""

    device_code: str = Field(description="Opaque code polled by the device")
    user_code: str = Field(description="XXXX-XXXX code typed by the user")
    verification_uri: str
    provider: str
    expires_at: datetime
    interval: int = Field(default=5, ge=5, description="Polling interval in seconds")
    status: DeviceStatus = DeviceStatus.PENDING
    member_number: int | None = None
    email: str | None = None
    scopes: list[str] | None = None
    created_at: datetime = Field(default_factory=utcnow)
    last_polled_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) > self.expires_at


class ProviderToken(BaseModel):
    """Encrypted upstream token for one member and provider."""

    member_id: int
    provider: str
    access_token: str = Field(description="AEAD ciphertext")
    refresh_token: str | None = Field(default=None, description="AEAD ciphertext")
    expires_at: datetime | None = Field(default=None, description="None means no expiry")
    token_type: str = "Bearer"
    updated_at: datetime = Field(default_factory=utcnow)

    def needs_refresh(self, skew: timedelta, now: datetime | None = None) -> bool:
        """True when the token expires within `skew`."""
        if self.expires_at is None:
            return False
        return self.expires_at - (now or utcnow()) <= skew


class JWTClaims(BaseModel):
    """Claims carried by first-party access tokens."""

    member_number: int
    email: str
    scopes: list[str] = Field(default_factory=list)
    provider: str
    iss: str
    sub: str
    iat: int
    nbf: int
    exp: int


class AuthContext(BaseModel):
    """Authenticated caller, from a session cookie or a bearer token."""

    member_number: int
    email: str
    scopes: list[str] = Field(default_factory=list)
    provider: str | None = None
    via: Literal["session", "bearer"] = "session"
    session: Session | None = None
    member: Member | None = None

    def has_scope(self, scope: str) -> bool:
        return scope in self.scopes
