"""Upstream token refresh.

Handlers call `ensure_fresh` before using a member's provider token. A token
close to expiry is refreshed once, even when many requests need it at the
same time: refreshes are serialized per (member_id, provider).
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from loguru import logger

from sidan.auth.crypto import TokenCipher
from sidan.auth.models import utcnow
from sidan.auth.provider_factory import ProviderRegistry
from sidan.auth.state_store import StateStore


class TokenRefreshManager:
    """Keeps stored provider tokens usable."""

    def __init__(
        self,
        store: StateStore,
        registry: ProviderRegistry,
        cipher: TokenCipher,
        skew: timedelta = timedelta(minutes=5),
    ):
        self.store = store
        self.registry = registry
        self.cipher = cipher
        self.skew = skew
        # (member_id, provider) -> lock and number of holders plus waiters
        self._locks: dict[tuple[int, str], asyncio.Lock] = {}
        self._users: dict[tuple[int, str], int] = {}

    @asynccontextmanager
    async def _locked(self, key: tuple[int, str]) -> AsyncIterator[None]:
        """Hold the lock for `key`; the entry is dropped once nobody uses it."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    async def ensure_fresh(self, member_id: int, provider_name: str) -> str:
        """Return a usable access token, refreshing it when due.

        Tokens without expires_at never expire. Tokens expiring within
        `skew` are refreshed with the stored refresh token; when there is
        none, the current access token is returned as is.

        Args:
            member_id: Member owning the token
            provider_name: Provider the token was issued by

        Returns:
            Plaintext access token

        Raises:
            NotFound: No stored token
            UnsupportedProvider: Provider no longer configured
            TokenRefreshFailed: Provider rejected the refresh (stored row unchanged)
            CryptoError: Stored ciphertext cannot be decrypted
        """
        async with self._locked((member_id, provider_name)):
            token = await self.store.get_provider_token(member_id, provider_name)

            if not token.needs_refresh(self.skew):
                return self.cipher.decrypt(token.access_token)

            refresh_token = self.cipher.decrypt(token.refresh_token or "")
            if not refresh_token:
                logger.warning(
                    f"{provider_name} token for member {member_id} is expiring "
                    f"and has no refresh token"
                )
                return self.cipher.decrypt(token.access_token)

            provider = self.registry.get(provider_name)
            fresh = await provider.refresh_token(refresh_token)

            updated = token.model_copy(
                update={
                    "access_token": self.cipher.encrypt(fresh.access_token),
                    "refresh_token": (
                        self.cipher.encrypt(fresh.refresh_token)
                        if fresh.refresh_token
                        else token.refresh_token
                    ),
                    "expires_at": fresh.expires_at,
                    "token_type": fresh.token_type,
                    "updated_at": utcnow(),
                }
            )
            await self.store.upsert_provider_token(updated)

            logger.info(f"Refreshed {provider_name} token for member {member_id}")
            return fresh.access_token
