"""Tests for the CLI device-flow client and config file."""

import json
import stat

import httpx
import pytest

from sidan.auth.device_flow import DEVICE_CODE_GRANT_TYPE, DeviceAuthorization
from sidan.cli.device_client import (
    DEFAULT_API_ENDPOINT,
    CLIConfig,
    DeviceClient,
    NetworkError,
    ProtocolError,
    load_config,
    mask_token,
    save_config,
)

AUTH = DeviceAuthorization(
    device_code="DEV",
    user_code="ABCD-EFGH",
    verification_uri="https://api.example.com/auth/device/verify?code=ABCD-EFGH&provider=google",
    expires_in=600,
    interval=5,
)


class FakeClock:
    """Monotonic clock advanced by the fake sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def scripted(responses):
    """Transport answering token polls from a list of (status, body)."""
    requests = []
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        status, body = queue.pop(0)
        return httpx.Response(status, json=body)

    return httpx.MockTransport(handler), requests


def make_client(transport, clock) -> DeviceClient:
    return DeviceClient("https://api.example.com", transport=transport, sleep=clock.sleep, clock=clock)


class TestConfigFile:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "config.json")
        assert config.api_endpoint == DEFAULT_API_ENDPOINT
        assert config.tokens == {}

    def test_save_sets_private_permissions(self, tmp_path):
        path = tmp_path / "sidan" / "config.json"
        save_config(CLIConfig(tokens={"google": "jwt"}), path)

        assert stat.S_IMODE(path.parent.stat().st_mode) == 0o700
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert json.loads(path.read_text()) == {
            "api_endpoint": DEFAULT_API_ENDPOINT,
            "tokens": {"google": "jwt"},
        }
        assert load_config(path).tokens == {"google": "jwt"}

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{nope")
        with pytest.raises(NetworkError):
            load_config(path)

    def test_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SIDAN_CONFIG_DIR", str(tmp_path))
        save_config(CLIConfig(api_endpoint="http://localhost:8000"))
        assert (tmp_path / "config.json").exists()
        assert load_config().api_endpoint == "http://localhost:8000"

    def test_mask_token(self):
        assert mask_token("eyJhbGciOiJIUzI1NiJ9.payload") == "eyJhbGci…"
        assert mask_token("short") == "…"


class TestStart:
    @pytest.mark.asyncio
    async def test_start(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            return httpx.Response(200, json=AUTH.model_dump())

        client = DeviceClient("https://api.example.com/", transport=httpx.MockTransport(handler))
        auth = await client.start("google")

        assert seen["url"] == "https://api.example.com/auth/device?provider=google"
        assert auth == AUTH

    @pytest.mark.asyncio
    async def test_start_rejected(self):
        transport = httpx.MockTransport(
            lambda r: httpx.Response(400, json={"error": "invalid_request", "detail": "unsupported provider: x"})
        )
        with pytest.raises(ProtocolError) as exc_info:
            await DeviceClient("https://api.example.com", transport=transport).start("x")
        assert exc_info.value.error == "invalid_request"

    @pytest.mark.asyncio
    async def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NetworkError):
            await DeviceClient("https://api.example.com", transport=httpx.MockTransport(handler)).start("google")


class TestPolling:
    @pytest.mark.asyncio
    async def test_pending_then_success(self):
        clock = FakeClock()
        transport, requests = scripted(
            [
                (400, {"error": "authorization_pending"}),
                (400, {"error": "authorization_pending"}),
                (200, {"access_token": "jwt", "token_type": "Bearer", "expires_in": 28800}),
            ]
        )

        token = await make_client(transport, clock).wait_for_token(AUTH)

        assert token.access_token == "jwt"
        assert clock.sleeps == [5, 5, 5]
        assert json.loads(requests[0].content) == {
            "device_code": "DEV",
            "grant_type": DEVICE_CODE_GRANT_TYPE,
        }

    @pytest.mark.asyncio
    async def test_slow_down_increases_interval(self):
        clock = FakeClock()
        transport, _ = scripted(
            [
                (400, {"error": "slow_down"}),
                (400, {"error": "authorization_pending"}),
                (200, {"access_token": "jwt", "expires_in": 28800}),
            ]
        )

        await make_client(transport, clock).wait_for_token(AUTH)

        assert clock.sleeps == [5, 10, 10]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", ["expired_token", "access_denied", "invalid_grant"])
    async def test_terminal_errors(self, error):
        transport, _ = scripted([(400, {"error": error})])
        with pytest.raises(ProtocolError) as exc_info:
            await make_client(transport, FakeClock()).wait_for_token(AUTH)
        assert exc_info.value.error == error
        assert exc_info.value.exit_code == 2

    @pytest.mark.asyncio
    async def test_local_deadline(self):
        short = AUTH.model_copy(update={"expires_in": 12})
        transport, requests = scripted([(400, {"error": "authorization_pending"})] * 10)

        with pytest.raises(ProtocolError) as exc_info:
            await make_client(transport, FakeClock()).wait_for_token(short)

        assert exc_info.value.error == "expired_token"
        assert len(requests) == 2
