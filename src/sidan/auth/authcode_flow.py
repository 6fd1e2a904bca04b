"""Authorization-code flow with PKCE.

Browser login against an upstream provider:
1. initiate: persist AuthState (CSRF nonce + PKCE verifier), redirect upstream
2. complete: consume AuthState, verify nonce, exchange code, resolve member
3. issue: create Session and store the encrypted provider token

The AuthState is consumed before the nonce is checked, so a mismatching
callback also burns the state and a replay can never succeed.
"""

from dataclasses import dataclass
from datetime import timedelta
from urllib.parse import urlparse

from loguru import logger

from sidan.auth.codes import constant_time_equals, generate_nonce, generate_state
from sidan.auth.crypto import TokenCipher
from sidan.auth.errors import (
    CSRFError,
    InputError,
    MemberUnregistered,
    NoVerifiedEmail,
    NotFound,
)
from sidan.auth.models import AuthState, Member, ProviderToken, Session, utcnow
from sidan.auth.pkce import generate_pkce_verifier, pkce_challenge
from sidan.auth.provider_factory import ProviderRegistry
from sidan.auth.scopes import scopes_for_member_type
from sidan.auth.state_store import StateStore
from sidan.settings import AuthSettings


@dataclass
class LoginResult:
    """Outcome of a successful callback."""

    session: Session
    member: Member
    redirect_uri: str | None


def is_safe_redirect(redirect_uri: str, allowed_hosts: list[str]) -> bool:
    """Check a post-login redirect target.

    Relative paths are always allowed. Absolute http(s) URLs must point at
    one of the allowed hosts.

    Example:
        >>> is_safe_redirect("/auth/device/verify?code=ABCD-EFGH", [])
        True
        >>> is_safe_redirect("https://evil.example/", ["api.example.com"])
        False
    """
    if redirect_uri.startswith("/"):
        return not redirect_uri.startswith("//") and "\\" not in redirect_uri

    parsed = urlparse(redirect_uri)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return False
    return parsed.hostname.lower() in {h.lower() for h in allowed_hosts}


class AuthCodeFlow:
    """Authorization-code + PKCE flow engine."""

    def __init__(
        self,
        store: StateStore,
        registry: ProviderRegistry,
        cipher: TokenCipher,
        auth_settings: AuthSettings,
        api_base_url: str | None = None,
    ):
        self.store = store
        self.registry = registry
        self.cipher = cipher
        self.settings = auth_settings
        self.state_ttl = timedelta(minutes=auth_settings.state_ttl_minutes)
        self.session_ttl = timedelta(hours=auth_settings.session_ttl_hours)

        self.allowed_redirect_hosts = list(auth_settings.allowed_redirect_hosts)
        if api_base_url:
            host = urlparse(api_base_url).hostname
            if host:
                self.allowed_redirect_hosts.append(host)

    async def initiate(
        self, provider_name: str, redirect_uri: str | None = None
    ) -> tuple[AuthState, str]:
        """Start a login.

        Args:
            provider_name: Registered provider
            redirect_uri: Where to send the browser after login

        Returns:
            Persisted AuthState and the upstream authorization URL

        Raises:
            UnsupportedProvider: Provider not registered
            InputError: redirect_uri is not an allowed target
        """
        provider = self.registry.get(provider_name)

        if redirect_uri and not is_safe_redirect(redirect_uri, self.allowed_redirect_hosts):
            logger.warning(f"Rejected redirect target for {provider_name} login")
            raise InputError("redirect_uri not allowed")

        now = utcnow()
        verifier = generate_pkce_verifier()
        state = AuthState(
            id=generate_state(),
            provider=provider.get_provider_name(),
            nonce=generate_nonce(),
            pkce_verifier=verifier,
            redirect_uri=redirect_uri or None,
            created_at=now,
            expires_at=now + self.state_ttl,
        )
        await self.store.create_auth_state(state)

        url = provider.build_auth_url(state.nonce, pkce_challenge(verifier))
        logger.info(f"Initiated {state.provider} login")
        return state, url

    async def complete(
        self,
        provider_name: str,
        state_id: str | None,
        state: str | None,
        code: str | None,
    ) -> LoginResult:
        """Finish a login from the provider callback.

        Args:
            provider_name: Provider in the callback path
            state_id: Value of the auth_state cookie
            state: `state` query parameter echoed by the provider
            code: Authorization code

        Raises:
            CSRFError: Missing, expired, foreign or mismatching auth state
            InputError: Missing code
            CodeExchangeFailed, UserInfoFailed: Provider call failed
            NoVerifiedEmail: Provider email not verified
            MemberUnregistered: No valid member owns the email
        """
        provider = self.registry.get(provider_name)

        if not state_id:
            raise CSRFError("missing auth state")

        try:
            auth_state = await self.store.consume_auth_state(state_id)
        except NotFound as e:
            logger.warning(f"Callback for {provider_name} with unknown or expired auth state")
            raise CSRFError("invalid or expired auth state") from e

        if auth_state.provider != provider.get_provider_name():
            raise CSRFError("auth state belongs to another provider")

        if not state or not constant_time_equals(auth_state.nonce, state):
            logger.warning(f"State mismatch on {provider_name} callback")
            raise CSRFError("state mismatch")

        if not code:
            raise InputError("missing code")

        tokens = await provider.exchange_code(code, auth_state.pkce_verifier)
        user_info = await provider.fetch_user_info(tokens.access_token)

        if not user_info.email or not user_info.email_verified:
            logger.warning(f"{provider_name} returned no verified email")
            raise NoVerifiedEmail()

        try:
            member = await self.store.get_member_by_verified_emails([user_info.email])
        except NotFound as e:
            logger.warning(f"{provider_name} login for unregistered email")
            logger.debug(f"Unregistered email: {user_info.email}")
            raise MemberUnregistered() from e

        now = utcnow()
        session = Session(
            id=generate_state(),
            member_id=member.id,
            scopes=scopes_for_member_type(member.type),
            provider=provider.get_provider_name(),
            created_at=now,
            expires_at=now + self.session_ttl,
            last_activity_at=now,
        )
        await self.store.create_session(session)

        await self.store.upsert_provider_token(
            ProviderToken(
                member_id=member.id,
                provider=provider.get_provider_name(),
                access_token=self.cipher.encrypt(tokens.access_token),
                refresh_token=self.cipher.encrypt(tokens.refresh_token) if tokens.refresh_token else None,
                expires_at=tokens.expires_at,
                token_type=tokens.token_type,
                updated_at=now,
            )
        )

        logger.info(f"Member {member.username} logged in via {provider_name}")
        return LoginResult(session=session, member=member, redirect_uri=auth_state.redirect_uri)

    async def logout(self, session_id: str | None) -> bool:
        """Delete a session; returns False when there was none."""
        if not session_id:
            return False
        deleted = await self.store.delete_session(session_id)
        if deleted:
            logger.info("Session logged out")
        return deleted
