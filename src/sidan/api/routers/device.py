"""Device authorization endpoints (RFC 8628).

Flow for headless clients such as the sidan CLI:
1. POST /auth/device?provider=google        -> device_code + user_code
2. user opens GET /auth/device/verify, signs in, approves (or denies)
3. client polls POST /auth/device/token     -> access token

Initiation, the verification page and polling are public; approval and
denial require a signed-in member.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse

from sidan.api.pages import already_approved_page, request_denied_page, verification_page
from sidan.auth.dependencies import OptionalAuth, RequiredAuth, get_jwt_manager
from sidan.auth.device_flow import DeviceAuthorization, DeviceFlow, TokenResponse
from sidan.auth.errors import InputError, InvalidRequest
from sidan.auth.jwt_manager import JWTManager
from sidan.auth.models import DeviceStatus
from sidan.auth.provider_factory import ProviderRegistry, get_provider_registry
from sidan.auth.state_store import StateStore
from sidan.auth.state_store_factory import get_state_store
from sidan.settings import settings

router = APIRouter(prefix="/auth/device", tags=["Device Authorization"])


def get_device_flow(
    store: Annotated[StateStore, Depends(get_state_store)],
    registry: Annotated[ProviderRegistry, Depends(get_provider_registry)],
    jwt_manager: Annotated[JWTManager, Depends(get_jwt_manager)],
) -> DeviceFlow:
    return DeviceFlow(store, registry, jwt_manager, settings.auth)


def _get_base_url(request: Request) -> str:
    """Get API base URL from request.

    Args:
        request: FastAPI request

    Returns:
        Base URL (e.g., https://api.chalmerslosers.com)
    """
    # Use X-Forwarded-Host if behind proxy (production)
    host = request.headers.get("x-forwarded-host") or request.headers.get(
        "host", "localhost:8000"
    )
    scheme = request.headers.get("x-forwarded-proto", request.url.scheme)
    return f"{scheme}://{host}".rstrip("/")


async def _read_params(request: Request, error: type[InputError] | type[InvalidRequest]) -> dict[str, Any]:
    """Read a JSON or form-encoded request body into a dict."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/x-www-form-urlencoded"):
        form = await request.form()
        return {k: v for k, v in form.items() if isinstance(v, str)}

    try:
        data = await request.json()
    except ValueError as e:
        raise error("malformed request body") from e

    if not isinstance(data, dict):
        raise error("malformed request body")
    return data


def _optional_str(params: dict[str, Any], key: str, error: type[Exception]) -> str | None:
    value = params.get(key)
    if value is not None and not isinstance(value, str):
        raise error(f"{key} must be a string")
    return value


@router.post("")
async def initiate(
    request: Request,
    flow: Annotated[DeviceFlow, Depends(get_device_flow)],
    provider: str | None = None,
) -> DeviceAuthorization:
    """Start a device authorization.

    Example:
        ```
        POST /auth/device?provider=google

        {"device_code": "...", "user_code": "ABCD-EFGH",
         "verification_uri": "https://.../auth/device/verify?code=ABCD-EFGH&provider=google",
         "expires_in": 600, "interval": 5}
        ```
    """
    return await flow.initiate(provider, _get_base_url(request))


@router.get("/verify", response_class=HTMLResponse)
async def verification(
    flow: Annotated[DeviceFlow, Depends(get_device_flow)],
    auth: OptionalAuth,
    code: str = "",
    provider: str | None = None,
) -> HTMLResponse:
    """Verification page shown to the user (no state change)."""
    device = await flow.verification_status(code)

    if device.status in (DeviceStatus.APPROVED, DeviceStatus.COMPLETED):
        return HTMLResponse(already_approved_page())
    if device.status == DeviceStatus.DENIED:
        return HTMLResponse(request_denied_page())

    signed_in_as = None
    if auth is not None:
        signed_in_as = auth.member.username if auth.member else auth.email

    return HTMLResponse(verification_page(device.user_code, provider or device.provider, signed_in_as))


@router.post("/verify")
async def approve(
    request: Request,
    auth: RequiredAuth,
    flow: Annotated[DeviceFlow, Depends(get_device_flow)],
) -> dict[str, bool]:
    """Approve a pending user code for the signed-in member."""
    params = await _read_params(request, InputError)
    user_code = _optional_str(params, "user_code", InputError)
    if not user_code:
        raise InputError("user_code is required")

    await flow.approve(user_code, auth)
    return {"success": True}


@router.post("/deny")
async def deny(
    request: Request,
    auth: RequiredAuth,
    flow: Annotated[DeviceFlow, Depends(get_device_flow)],
) -> dict[str, bool]:
    """Deny a pending user code; the device's next poll gets access_denied."""
    params = await _read_params(request, InputError)
    user_code = _optional_str(params, "user_code", InputError)
    if not user_code:
        raise InputError("user_code is required")

    await flow.deny(user_code, auth)
    return {"success": True}


@router.post("/token")
async def token(
    request: Request,
    flow: Annotated[DeviceFlow, Depends(get_device_flow)],
) -> TokenResponse:
    """Poll for the access token.

    Accepts JSON or form-encoded `{device_code, grant_type}`. Errors use the
    RFC 8628 envelope `{error, error_description}`.
    """
    params = await _read_params(request, InvalidRequest)
    return await flow.poll(
        _optional_str(params, "device_code", InvalidRequest),
        _optional_str(params, "grant_type", InvalidRequest),
    )
