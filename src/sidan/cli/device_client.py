"""Device-flow client and local CLI configuration.

The CLI obtains access tokens with the device authorization grant and keeps
them in ~/.sidan/config.json (directory 0700, file 0600):

    {"api_endpoint": "https://api.chalmerslosers.com",
     "tokens": {"google": "<jwt>"}}

Set SIDAN_CONFIG_DIR to use another directory.
"""

import asyncio
import json
import os
import time
from pathlib import Path
from typing import Awaitable, Callable

import httpx
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from sidan.auth.device_flow import DEVICE_CODE_GRANT_TYPE, DeviceAuthorization, TokenResponse

DEFAULT_API_ENDPOINT = "https://api.chalmerslosers.com"
CONFIG_FILE = "config.json"
SLOW_DOWN_INCREMENT = 5


class DeviceClientError(Exception):
    """Base class for CLI client failures."""

    exit_code = 1


class ProtocolError(DeviceClientError):
    """Server answered with an OAuth error (expired, denied, ...)."""

    exit_code = 2

    def __init__(self, error: str, description: str | None = None):
        self.error = error
        self.description = description
        super().__init__(f"{error}: {description}" if description else error)


class NetworkError(DeviceClientError):
    """Network or local file failure."""

    exit_code = 3


class CLIConfig(BaseModel):
    """Contents of the local config file."""

    api_endpoint: str = Field(default=DEFAULT_API_ENDPOINT)
    tokens: dict[str, str] = Field(default_factory=dict)


def config_dir() -> Path:
    return Path(os.environ.get("SIDAN_CONFIG_DIR") or Path.home() / ".sidan")


def config_path() -> Path:
    return config_dir() / CONFIG_FILE


def load_config(path: Path | None = None) -> CLIConfig:
    """Load the config file; a missing file yields defaults.

    Raises:
        NetworkError: File unreadable or not a valid config document
    """
    path = path or config_path()
    if not path.exists():
        return CLIConfig()

    try:
        return CLIConfig.model_validate(json.loads(path.read_text()))
    except (OSError, ValueError, ValidationError) as e:
        raise NetworkError(f"cannot read {path}: {e}") from e


def save_config(config: CLIConfig, path: Path | None = None) -> Path:
    """Write the config file with owner-only permissions.

    Raises:
        NetworkError: Directory or file cannot be written
    """
    path = path or config_path()
    try:
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        os.chmod(path.parent, 0o700)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            json.dump(config.model_dump(), f, indent=2)
        os.chmod(path, 0o600)
    except OSError as e:
        raise NetworkError(f"cannot write {path}: {e}") from e
    return path


def mask_token(token: str) -> str:
    """Show only the first 8 characters of a token."""
    return f"{token[:8]}…" if len(token) > 8 else "…"


class DeviceClient:
    """Client side of the device authorization grant.

    Example:
        >>> client = DeviceClient("https://api.chalmerslosers.com")
        >>> auth = await client.start("google")
        >>> print(auth.verification_uri, auth.user_code)
        >>> token = await client.wait_for_token(auth)
    """

    def __init__(
        self,
        api_endpoint: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api_endpoint = api_endpoint.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._sleep = sleep
        self._clock = clock

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_endpoint, timeout=self.timeout, transport=self._transport
        )

    @staticmethod
    def _error_from(response: httpx.Response) -> ProtocolError:
        try:
            body = response.json()
        except ValueError:
            return ProtocolError("invalid_response", f"HTTP {response.status_code}")
        if not isinstance(body, dict):
            return ProtocolError("invalid_response", f"HTTP {response.status_code}")
        return ProtocolError(
            body.get("error") or "invalid_response",
            body.get("error_description") or body.get("detail"),
        )

    async def start(self, provider: str) -> DeviceAuthorization:
        """Request a device code.

        Raises:
            ProtocolError: Server rejected the request
            NetworkError: Server unreachable
        """
        try:
            async with self._client() as client:
                response = await client.post("/auth/device", params={"provider": provider})
        except httpx.HTTPError as e:
            raise NetworkError(f"cannot reach {self.api_endpoint}: {e}") from e

        if response.status_code != 200:
            raise self._error_from(response)

        try:
            return DeviceAuthorization.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ProtocolError("invalid_response", "malformed device authorization") from e

    async def wait_for_token(self, auth: DeviceAuthorization) -> TokenResponse:
        """Poll until the user approves, denies or the code expires.

        Sleeps `interval` seconds before every poll; `slow_down` adds five
        seconds, `authorization_pending` keeps the interval.

        Raises:
            ProtocolError: expired_token, access_denied, other OAuth errors,
                or the local deadline passed
            NetworkError: Server unreachable
        """
        interval = max(auth.interval, 1)
        deadline = self._clock() + auth.expires_in
        payload = {"device_code": auth.device_code, "grant_type": DEVICE_CODE_GRANT_TYPE}

        async with self._client() as client:
            while True:
                await self._sleep(interval)
                if self._clock() > deadline:
                    raise ProtocolError("expired_token", "device code expired before approval")

                try:
                    response = await client.post("/auth/device/token", json=payload)
                except httpx.HTTPError as e:
                    raise NetworkError(f"cannot reach {self.api_endpoint}: {e}") from e

                if response.status_code == 200:
                    try:
                        return TokenResponse.model_validate(response.json())
                    except (ValueError, ValidationError) as e:
                        raise ProtocolError("invalid_response", "malformed token response") from e

                error = self._error_from(response)
                if error.error == "authorization_pending":
                    logger.debug("Authorization pending")
                    continue
                if error.error == "slow_down":
                    interval += SLOW_DOWN_INCREMENT
                    logger.debug(f"Slowing down to {interval}s")
                    continue
                raise error
