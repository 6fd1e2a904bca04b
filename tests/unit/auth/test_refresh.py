"""Tests for upstream token refresh."""

import asyncio
from datetime import timedelta

import pytest

from sidan.auth.errors import NotFound, TokenRefreshFailed
from sidan.auth.models import ProviderToken, utcnow
from sidan.auth.providers import ProviderTokenSet
from sidan.auth.refresh import TokenRefreshManager


@pytest.fixture
def manager(store, registry, cipher) -> TokenRefreshManager:
    return TokenRefreshManager(store, registry, cipher, skew=timedelta(minutes=5))


async def seed(store, cipher, expires_in: timedelta | None, refresh: str | None = "rt-old") -> ProviderToken:
    token = ProviderToken(
        member_id=1,
        provider="google",
        access_token=cipher.encrypt("at-old"),
        refresh_token=cipher.encrypt(refresh) if refresh else None,
        expires_at=utcnow() + expires_in if expires_in is not None else None,
    )
    await store.upsert_provider_token(token)
    return token


@pytest.mark.asyncio
async def test_no_expiry_never_refreshes(manager, store, cipher, google):
    await seed(store, cipher, None)
    assert await manager.ensure_fresh(1, "google") == "at-old"
    assert google.refresh_calls == []


@pytest.mark.asyncio
async def test_far_expiry_is_noop(manager, store, cipher, google):
    await seed(store, cipher, timedelta(hours=1))
    assert await manager.ensure_fresh(1, "google") == "at-old"
    assert google.refresh_calls == []


@pytest.mark.asyncio
async def test_near_expiry_refreshes_and_keeps_refresh_token(manager, store, cipher, google):
    original = await seed(store, cipher, timedelta(minutes=2))
    google.refreshed = ProviderTokenSet(
        access_token="at-new", refresh_token=None, expires_at=utcnow() + timedelta(hours=1)
    )

    assert await manager.ensure_fresh(1, "google") == "at-new"
    assert google.refresh_calls == ["rt-old"]

    stored = await store.get_provider_token(1, "google")
    assert cipher.decrypt(stored.access_token) == "at-new"
    assert stored.refresh_token == original.refresh_token
    assert stored.expires_at == google.refreshed.expires_at


@pytest.mark.asyncio
async def test_rotated_refresh_token_is_stored(manager, store, cipher, google):
    await seed(store, cipher, timedelta(seconds=-10))
    google.refreshed = ProviderTokenSet(access_token="at-new", refresh_token="rt-new")

    await manager.ensure_fresh(1, "google")

    stored = await store.get_provider_token(1, "google")
    assert cipher.decrypt(stored.refresh_token) == "rt-new"


@pytest.mark.asyncio
async def test_missing_refresh_token_returns_current(manager, store, cipher, google):
    await seed(store, cipher, timedelta(minutes=1), refresh=None)
    assert await manager.ensure_fresh(1, "google") == "at-old"
    assert google.refresh_calls == []


@pytest.mark.asyncio
async def test_failure_leaves_row_unchanged(manager, store, cipher, google):
    original = await seed(store, cipher, timedelta(minutes=1))

    async def fail(refresh_token):
        raise TokenRefreshFailed()

    google.refresh_token = fail

    with pytest.raises(TokenRefreshFailed):
        await manager.ensure_fresh(1, "google")

    stored = await store.get_provider_token(1, "google")
    assert stored.access_token == original.access_token
    assert stored.expires_at == original.expires_at


@pytest.mark.asyncio
async def test_missing_token(manager):
    with pytest.raises(NotFound):
        await manager.ensure_fresh(1, "google")


@pytest.mark.asyncio
async def test_concurrent_callers_refresh_once(manager, store, cipher, google):
    await seed(store, cipher, timedelta(minutes=1))
    calls = []

    async def slow_refresh(refresh_token):
        calls.append(refresh_token)
        await asyncio.sleep(0.01)
        return ProviderTokenSet(access_token="at-new", expires_at=utcnow() + timedelta(hours=1))

    google.refresh_token = slow_refresh

    results = await asyncio.gather(*(manager.ensure_fresh(1, "google") for _ in range(5)))

    assert results == ["at-new"] * 5
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_lock_entries_are_dropped_after_use(manager, store, cipher, google):
    await seed(store, cipher, timedelta(minutes=1))

    async def fail(refresh_token):
        raise TokenRefreshFailed()

    await asyncio.gather(*(manager.ensure_fresh(1, "google") for _ in range(3)))
    assert manager._locks == {}

    await seed(store, cipher, timedelta(minutes=1))
    google.refresh_token = fail
    with pytest.raises(TokenRefreshFailed):
        await manager.ensure_fresh(1, "google")
    assert manager._locks == {}
