"""OAuth provider factory.

Creates and manages provider instances based on configuration.
"""

import httpx
from loguru import logger

from sidan.auth.errors import UnsupportedProvider
from sidan.auth.provider_github import GitHubProvider
from sidan.auth.provider_google import GoogleProvider
from sidan.auth.providers import OAuthProvider
from sidan.settings import ProviderSettings, Settings, settings

PROVIDER_CLASSES: dict[str, type[OAuthProvider]] = {
    "google": GoogleProvider,
    "github": GitHubProvider,
}


def build_provider(
    name: str,
    config: ProviderSettings,
    timeout: float = 10.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> OAuthProvider:
    """Instantiate a built-in provider.

    Raises:
        UnsupportedProvider: Name is not google or github
    """
    provider_cls = PROVIDER_CLASSES.get(name.lower())
    if provider_cls is None:
        raise UnsupportedProvider(name)

    return provider_cls(
        client_id=config.client_id,
        client_secret=config.client_secret,
        redirect_url=config.redirect_url,
        scopes=config.scopes,
        timeout=timeout,
        transport=transport,
    )


class ProviderRegistry:
    """Configured providers keyed by name.

    Example:
        >>> registry = ProviderRegistry.from_settings(settings)
        >>> provider = registry.get("google")
        >>> url = provider.build_auth_url(state, challenge)
    """

    def __init__(self, providers: dict[str, OAuthProvider] | None = None):
        self._providers: dict[str, OAuthProvider] = dict(providers or {})

    @classmethod
    def from_settings(
        cls,
        app_settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "ProviderRegistry":
        """Build providers that have a client_id configured."""
        providers = {}
        for name, config in app_settings.auth.provider_settings().items():
            providers[name] = build_provider(
                name, config, timeout=app_settings.http_timeout, transport=transport
            )
            logger.info(f"Registered OAuth provider: {name}")

        if not providers:
            logger.warning("No OAuth providers configured")

        return cls(providers)

    def get(self, name: str | None) -> OAuthProvider:
        """Look up a provider.

        Raises:
            UnsupportedProvider: Unknown or unconfigured provider
        """
        provider = self._providers.get((name or "").lower())
        if provider is None:
            raise UnsupportedProvider(name)
        return provider

    def names(self) -> list[str]:
        return sorted(self._providers)

    def __contains__(self, name: str) -> bool:
        return (name or "").lower() in self._providers


# Global registry instance (lazy-initialized)
_registry_instance: ProviderRegistry | None = None


def get_provider_registry() -> ProviderRegistry:
    """Get or create the global provider registry.

    Use this for dependency injection in FastAPI routes.
    """
    global _registry_instance

    if _registry_instance is None:
        _registry_instance = ProviderRegistry.from_settings(settings)

    return _registry_instance
