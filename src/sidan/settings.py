"""Application settings using Pydantic Settings."""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_JWT_SECRET = "sidan-dev-jwt-secret-change-in-production"
DEV_TOKEN_ENCRYPTION_KEY = "00" * 32


class ProviderSettings(BaseModel):
    """Client registration for one upstream OAuth2 provider."""

    client_id: str = Field(default="", description="OAuth client ID")
    client_secret: str = Field(default="", description="OAuth client secret")
    redirect_url: str = Field(
        default="",
        description="Callback URL registered with the provider "
        "(e.g. https://api.example.com/auth/google/callback)",
    )
    scopes: list[str] = Field(
        default_factory=list,
        description="Requested upstream scopes (provider defaults when empty)",
    )

    @property
    def configured(self) -> bool:
        return bool(self.client_id)


class AuthSettings(BaseSettings):
    """Authentication configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AUTH__",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Process-wide secrets, loaded once at startup
    jwt_secret: str = Field(
        default=DEV_JWT_SECRET,
        description="HMAC-SHA256 signing secret for access tokens - CHANGE IN PRODUCTION",
    )
    token_encryption_key: str = Field(
        default=DEV_TOKEN_ENCRYPTION_KEY,
        description="AES-256-GCM key for provider tokens at rest (64 hex chars) - "
        "generate with `sidan gen-key`",
    )

    # Lifetimes
    session_ttl_hours: int = Field(default=8, description="Server session lifetime")
    jwt_ttl_hours: int = Field(default=8, description="Access token lifetime")
    state_ttl_minutes: int = Field(default=10, description="Authorization state lifetime")
    device_code_ttl_minutes: int = Field(default=10, description="Device code lifetime")
    device_poll_interval: int = Field(
        default=5, ge=5, description="Minimum device polling interval in seconds"
    )
    refresh_skew_seconds: int = Field(
        default=300,
        description="Refresh upstream tokens when they expire within this window",
    )
    cleanup_interval_seconds: int = Field(
        default=300, description="Janitor interval for expired auth records"
    )

    # Cookies and redirects
    cookie_secure: bool = Field(
        default=False, description="Mark auth cookies Secure (enable behind HTTPS)"
    )
    allowed_redirect_hosts: list[str] = Field(
        default_factory=list,
        description="Hosts allowed as absolute redirect_uri targets after login",
    )

    # Storage
    state_store: str = Field(
        default="memory",
        description="State store backend: memory",
    )

    # Upstream providers
    google: ProviderSettings = Field(default_factory=ProviderSettings)
    github: ProviderSettings = Field(default_factory=ProviderSettings)

    def provider_settings(self) -> dict[str, ProviderSettings]:
        """Configured providers keyed by name."""
        return {
            name: cfg
            for name, cfg in (("google", self.google), ("github", self.github))
            if cfg.configured
        }

    def uses_dev_secrets(self) -> bool:
        return (
            self.jwt_secret == DEV_JWT_SECRET
            or self.token_encryption_key == DEV_TOKEN_ENCRYPTION_KEY
        )


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SIDAN_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # API
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")
    api_base_url: str = Field(
        default="http://localhost:8000",
        description="Public base URL of this API (used for redirects and logs)",
    )

    # Outbound HTTP
    http_timeout: float = Field(
        default=10.0, description="Timeout in seconds for upstream provider calls"
    )

    # Authentication (nested)
    auth: AuthSettings = Field(default_factory=AuthSettings)


settings = Settings()
