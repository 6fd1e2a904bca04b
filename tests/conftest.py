"""Shared fixtures for auth tests.

Flows and routes run against an in-memory store seeded with members and
fake providers that never touch the network. Provider HTTP behaviour is
tested separately with httpx.MockTransport.
"""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from sidan.api.main import create_app
from sidan.auth.crypto import TokenCipher
from sidan.auth.dependencies import get_jwt_manager, get_token_cipher
from sidan.auth.errors import CodeExchangeFailed
from sidan.auth.jwt_manager import JWTManager
from sidan.auth.models import Member, MemberType
from sidan.auth.provider_factory import ProviderRegistry, get_provider_registry
from sidan.auth.providers import OAuthProvider, ProviderTokenSet, UserInfo
from sidan.auth.state_store_factory import get_state_store
from sidan.auth.state_store_memory import MemoryStateStore
from sidan.settings import AuthSettings

TEST_KEY = "11" * 32
TEST_SECRET = b"test-signing-secret-" * 4


class FakeProvider(OAuthProvider):
    """Provider double with scripted token and user-info responses."""

    auth_url = "https://provider.example/authorize"
    token_url = "https://provider.example/token"
    userinfo_url = "https://provider.example/userinfo"

    def __init__(self, name: str, email: str = "alice@example.com", verified: bool = True):
        self.name = name
        super().__init__("client-id", "client-secret", f"http://testserver/auth/{name}/callback")
        self.user_info = UserInfo(
            provider_user_id="u-1", email=email, email_verified=verified, name="Alice"
        )
        self.tokens = ProviderTokenSet(access_token="upstream-access", refresh_token="upstream-refresh")
        self.refreshed = ProviderTokenSet(access_token="fresh-access", refresh_token=None)
        self.fail_exchange = False
        self.exchanges: list[tuple[str, str]] = []
        self.refresh_calls: list[str] = []

    async def exchange_code(self, code: str, code_verifier: str) -> ProviderTokenSet:
        self.exchanges.append((code, code_verifier))
        if self.fail_exchange:
            raise CodeExchangeFailed()
        return self.tokens

    async def refresh_token(self, refresh_token: str) -> ProviderTokenSet:
        self.refresh_calls.append(refresh_token)
        return self.refreshed

    async def fetch_user_info(self, access_token: str) -> UserInfo:
        return self.user_info


@pytest.fixture
def members() -> list[Member]:
    return [
        Member(id=1, number=42, email="alice@example.com", type=MemberType.MEMBER, name="Alice"),
        Member(id=2, number=7, email="bob@example.com", type=MemberType.PROSPECT, name="Bob"),
        Member(id=3, number=9, email="carol@example.com", type=MemberType.SUSPECT, name="Carol"),
        Member(id=4, number=13, email="gone@example.com", valid=False, name="Gone"),
    ]


@pytest.fixture
def store(members) -> MemoryStateStore:
    return MemoryStateStore(members=members)


@pytest.fixture
def cipher() -> TokenCipher:
    return TokenCipher(TEST_KEY)


@pytest.fixture
def jwt_manager() -> JWTManager:
    return JWTManager(TEST_SECRET, lifetime=timedelta(hours=8))


@pytest.fixture
def google() -> FakeProvider:
    return FakeProvider("google")


@pytest.fixture
def github() -> FakeProvider:
    return FakeProvider("github")


@pytest.fixture
def registry(google, github) -> ProviderRegistry:
    return ProviderRegistry({"google": google, "github": github})


@pytest.fixture
def auth_settings() -> AuthSettings:
    return AuthSettings(
        jwt_secret=TEST_SECRET.decode(),
        token_encryption_key=TEST_KEY,
        allowed_redirect_hosts=["app.example.com"],
    )


@pytest.fixture
def app(store, registry, jwt_manager, cipher):
    application = create_app()
    application.dependency_overrides[get_state_store] = lambda: store
    application.dependency_overrides[get_provider_registry] = lambda: registry
    application.dependency_overrides[get_jwt_manager] = lambda: jwt_manager
    application.dependency_overrides[get_token_cipher] = lambda: cipher
    return application


@pytest.fixture
def client(app) -> TestClient:
    """Test client without lifespan (the janitor is tested on its own)."""
    return TestClient(app)
