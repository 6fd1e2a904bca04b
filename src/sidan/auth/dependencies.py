"""FastAPI authentication dependencies.

Provides dependency injection for authentication using modern FastAPI patterns.
A caller is authenticated by the `session_id` cookie or, when no cookie is
sent, by an `Authorization: Bearer <jwt>` header.
"""

from datetime import timedelta
from typing import Annotated, Callable

from fastapi import Depends, Request
from loguru import logger

from sidan.auth.crypto import TokenCipher
from sidan.auth.errors import AuthCoreError, AuthError, NotFound, ScopeError
from sidan.auth.jwt_manager import JWTManager, extract_bearer
from sidan.auth.models import AuthContext, utcnow
from sidan.auth.provider_factory import get_provider_registry
from sidan.auth.refresh import TokenRefreshManager
from sidan.auth.state_store import StateStore
from sidan.auth.state_store_factory import get_state_store
from sidan.settings import settings

SESSION_COOKIE = "session_id"
AUTH_STATE_COOKIE = "auth_state"

# Process-wide secrets, created on first use
_jwt_manager: JWTManager | None = None
_token_cipher: TokenCipher | None = None
_refresh_manager: TokenRefreshManager | None = None


def get_jwt_manager() -> JWTManager:
    """Get the JWT manager configured from settings (singleton)."""
    global _jwt_manager
    if _jwt_manager is None:
        _jwt_manager = JWTManager(
            secret=settings.auth.jwt_secret.encode("utf-8"),
            lifetime=timedelta(hours=settings.auth.jwt_ttl_hours),
        )
    return _jwt_manager


def get_token_cipher() -> TokenCipher:
    """Get the provider-token cipher configured from settings (singleton).

    Raises:
        InvalidKeyError: SIDAN_AUTH__TOKEN_ENCRYPTION_KEY is not 64 hex characters
    """
    global _token_cipher
    if _token_cipher is None:
        _token_cipher = TokenCipher(settings.auth.token_encryption_key)
    return _token_cipher


def get_refresh_manager() -> TokenRefreshManager:
    """Get the upstream token refresh manager (singleton).

    Handlers that call a provider API on behalf of a member use it to get a
    usable access token.

    Example:
        >>> @router.get("/calendar")
        >>> async def calendar(
        ...     auth: RequiredAuth,
        ...     refresher: Annotated[TokenRefreshManager, Depends(get_refresh_manager)],
        ... ):
        ...     token = await refresher.ensure_fresh(auth.member.id, "google")
    """
    global _refresh_manager
    if _refresh_manager is None:
        _refresh_manager = TokenRefreshManager(
            get_state_store(),
            get_provider_registry(),
            get_token_cipher(),
            skew=timedelta(seconds=settings.auth.refresh_skew_seconds),
        )
    return _refresh_manager


async def load_auth_context(
    request: Request,
    store: StateStore,
    jwt_manager: JWTManager,
) -> AuthContext:
    """Authenticate a request.

    Raises:
        AuthError: No credentials, unknown or expired session, missing member
        InvalidToken, ExpiredToken: Bearer token rejected
    """
    session_id = request.cookies.get(SESSION_COOKIE)

    if session_id:
        try:
            session = await store.get_session(session_id)
        except NotFound as e:
            raise AuthError("no session") from e

        if utcnow() > session.expires_at:
            await store.delete_session(session_id)
            logger.debug("Deleted expired session")
            raise AuthError("session expired")

        await store.touch_session(session_id)

        try:
            member = await store.get_member_by_id(session.member_id)
        except NotFound as e:
            logger.warning(f"Session references missing member {session.member_id}")
            raise AuthError("member not found") from e

        if not member.valid:
            await store.delete_session(session_id)
            logger.warning(f"Session for invalidated member {member.number} deleted")
            raise AuthError("member not found")

        return AuthContext(
            member_number=member.number,
            email=member.email,
            scopes=list(session.scopes),
            provider=session.provider,
            via="session",
            session=session,
            member=member,
        )

    token = extract_bearer(request.headers.get("Authorization"))
    if token:
        claims = jwt_manager.validate(token)
        return AuthContext(
            member_number=claims.member_number,
            email=claims.email,
            scopes=list(claims.scopes),
            provider=claims.provider,
            via="bearer",
        )

    raise AuthError("no session")


async def require_auth(
    request: Request,
    store: Annotated[StateStore, Depends(get_state_store)],
    jwt_manager: Annotated[JWTManager, Depends(get_jwt_manager)],
) -> AuthContext:
    """Require authentication (fail with 401 if none).

    The context is also available as `request.state.auth`.

    Example:
        >>> @router.get("/me")
        >>> async def me(auth: RequiredAuth):
        ...     return {"member_number": auth.member_number}
    """
    try:
        ctx = await load_auth_context(request, store, jwt_manager)
    except AuthError as e:
        logger.warning(f"Authentication failed: {e.description}")
        raise

    request.state.auth = ctx
    return ctx


async def optional_auth(
    request: Request,
    store: Annotated[StateStore, Depends(get_state_store)],
    jwt_manager: Annotated[JWTManager, Depends(get_jwt_manager)],
) -> AuthContext | None:
    """Authenticate when possible; callers that fail for any reason get None."""
    try:
        ctx = await load_auth_context(request, store, jwt_manager)
    except AuthError as e:
        logger.debug(f"Anonymous request: {e.description}")
        return None
    except AuthCoreError as e:
        logger.warning(f"Treating request as anonymous after {e.kind} error: {e.description}")
        return None

    request.state.auth = ctx
    return ctx


def require_scope(scope: str) -> Callable:
    """Dependency factory requiring one scope (403 when missing).

    Example:
        >>> @router.put("/members/{number}")
        >>> async def update(auth: Annotated[AuthContext, Depends(require_scope("write:member"))]):
        ...     ...
    """

    async def check_scope(ctx: Annotated[AuthContext, Depends(require_auth)]) -> AuthContext:
        if not ctx.has_scope(scope):
            logger.warning(f"Member {ctx.member_number} lacks scope {scope}")
            raise ScopeError()
        return ctx

    return check_scope


# Type aliases for convenience
OptionalAuth = Annotated[AuthContext | None, Depends(optional_auth)]
RequiredAuth = Annotated[AuthContext, Depends(require_auth)]
