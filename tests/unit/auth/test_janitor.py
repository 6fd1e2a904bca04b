"""Tests for the expired-record janitor."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from sidan.auth.errors import StorageError
from sidan.auth.janitor import Janitor
from sidan.auth.models import AuthState, Session, utcnow


@pytest.mark.asyncio
async def test_run_once_cleans_every_table(store):
    past = utcnow() - timedelta(minutes=1)
    await store.create_auth_state(
        AuthState(id="s", provider="google", nonce="n", pkce_verifier="v" * 43, expires_at=past)
    )
    await store.create_session(Session(id="x", member_id=1, expires_at=past))

    results = await Janitor(store).run_once()

    assert results == {"auth_states": 1, "sessions": 1, "device_codes": 0}


@pytest.mark.asyncio
async def test_failure_does_not_skip_other_cleanups(store):
    store.cleanup_expired_auth_states = AsyncMock(side_effect=StorageError("db down"))
    store.cleanup_expired_sessions = AsyncMock(return_value=2)
    store.cleanup_expired_device_codes = AsyncMock(return_value=3)

    results = await Janitor(store).run_once()

    assert results == {"auth_states": -1, "sessions": 2, "device_codes": 3}


@pytest.mark.asyncio
async def test_loop_runs_until_stopped(store):
    janitor = Janitor(store, interval=0.01)
    janitor.run_once = AsyncMock(return_value={})

    janitor.start()
    assert janitor.running
    await asyncio.sleep(0.05)
    await janitor.stop()

    assert not janitor.running
    assert janitor.run_once.await_count >= 1


@pytest.mark.asyncio
async def test_stop_interrupts_sleep(store):
    janitor = Janitor(store, interval=3600)
    janitor.start()
    await asyncio.sleep(0)

    await asyncio.wait_for(janitor.stop(), timeout=1)

    assert not janitor.running
