"""Browser login endpoints.

Authorization-code flow with PKCE against the configured providers, plus
session introspection and logout. Login and callback are public; the
session endpoint requires a session cookie or bearer token.
"""

from typing import Annotated

from fastapi import APIRouter, Cookie, Depends, HTTPException, Query, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from pydantic import BaseModel, Field

from sidan.api.pages import login_complete_page
from sidan.auth.authcode_flow import AuthCodeFlow
from sidan.auth.crypto import TokenCipher
from sidan.auth.dependencies import (
    AUTH_STATE_COOKIE,
    SESSION_COOKIE,
    RequiredAuth,
    get_token_cipher,
)
from sidan.auth.errors import AuthError, NotFound, UnsupportedProvider
from sidan.auth.provider_factory import ProviderRegistry, get_provider_registry
from sidan.auth.state_store import StateStore
from sidan.auth.state_store_factory import get_state_store
from sidan.settings import settings

router = APIRouter(prefix="/auth", tags=["Auth"])


class SessionInfo(BaseModel):
    """Current session introspection."""

    username: str = Field(description="Public username, e.g. #42")
    email: str = Field(description="Member email")
    scopes: list[str] = Field(description="Granted scopes")


def get_auth_code_flow(
    store: Annotated[StateStore, Depends(get_state_store)],
    registry: Annotated[ProviderRegistry, Depends(get_provider_registry)],
    cipher: Annotated[TokenCipher, Depends(get_token_cipher)],
) -> AuthCodeFlow:
    return AuthCodeFlow(store, registry, cipher, settings.auth, settings.api_base_url)


def _unknown_provider(provider: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"unsupported provider: {provider}",
    )


@router.get("/{provider}/login")
async def login(
    provider: str,
    flow: Annotated[AuthCodeFlow, Depends(get_auth_code_flow)],
    redirect_uri: str | None = None,
) -> RedirectResponse:
    """Start a login and redirect to the provider.

    Sets the HTTPOnly `auth_state` cookie that binds the browser to this flow.
    """
    try:
        state, url = await flow.initiate(provider, redirect_uri)
    except UnsupportedProvider:
        raise _unknown_provider(provider)

    response = RedirectResponse(url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
    response.set_cookie(
        AUTH_STATE_COOKIE,
        state.id,
        max_age=int(flow.state_ttl.total_seconds()),
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.auth.cookie_secure,
    )
    return response


@router.get("/{provider}/callback")
async def callback(
    provider: str,
    flow: Annotated[AuthCodeFlow, Depends(get_auth_code_flow)],
    code: str | None = None,
    state: str | None = None,
    auth_state: Annotated[str | None, Cookie()] = None,
) -> Response:
    """Finish a login: verify state, exchange the code, start a session."""
    try:
        result = await flow.complete(provider, auth_state, state, code)
    except UnsupportedProvider:
        raise _unknown_provider(provider)

    if result.redirect_uri:
        response: Response = RedirectResponse(
            result.redirect_uri, status_code=status.HTTP_307_TEMPORARY_REDIRECT
        )
    else:
        response = HTMLResponse(login_complete_page())

    response.set_cookie(
        SESSION_COOKIE,
        result.session.id,
        max_age=int(flow.session_ttl.total_seconds()),
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.auth.cookie_secure,
    )
    response.delete_cookie(AUTH_STATE_COOKIE, path="/")
    return response


@router.get("/session")
async def session_info(
    auth: RequiredAuth,
    store: Annotated[StateStore, Depends(get_state_store)],
) -> SessionInfo:
    """Describe the authenticated caller."""
    member = auth.member
    if member is None:
        try:
            member = await store.get_member_by_number(auth.member_number)
        except NotFound as e:
            raise AuthError("member not found") from e

    return SessionInfo(username=member.username, email=auth.email, scopes=auth.scopes)


@router.post("/logout")
async def logout(
    flow: Annotated[AuthCodeFlow, Depends(get_auth_code_flow)],
    session_id: Annotated[str | None, Cookie()] = None,
) -> JSONResponse:
    """Delete the current session and clear its cookie."""
    await flow.logout(session_id)
    response = JSONResponse({"success": True})
    response.delete_cookie(SESSION_COOKIE, path="/")
    return response
