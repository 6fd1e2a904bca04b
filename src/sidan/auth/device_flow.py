"""Device authorization grant (RFC 8628).

Headless clients (the sidan CLI) obtain an access token without a browser:
1. initiate: device gets device_code + user_code
2. the user opens the verification page, logs in, approves (or denies)
3. the device polls the token endpoint until approved, denied or expired

Status transitions are compare-and-set in the store, so two concurrent polls
of the same approved code issue exactly one JWT.
"""

from datetime import timedelta
from urllib.parse import urlencode

from loguru import logger
from pydantic import BaseModel

from sidan.auth.codes import (
    generate_device_code,
    generate_user_code,
    mask_user_code,
    normalize_user_code,
    validate_user_code,
)
from sidan.auth.errors import (
    AccessDenied,
    AuthorizationPending,
    Conflict,
    ExpiredDeviceCode,
    InputError,
    InvalidGrant,
    InvalidRequest,
    NotFound,
    StorageError,
    UnsupportedGrantType,
)
from sidan.auth.jwt_manager import JWTManager
from sidan.auth.models import AuthContext, DeviceCode, DeviceStatus, utcnow
from sidan.auth.provider_factory import ProviderRegistry
from sidan.auth.scopes import scopes_for_member_type
from sidan.auth.state_store import StateStore
from sidan.settings import AuthSettings

DEVICE_CODE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"
USER_CODE_ATTEMPTS = 5


class DeviceAuthorization(BaseModel):
    """Response to a device authorization request."""

    device_code: str
    user_code: str
    verification_uri: str
    expires_in: int
    interval: int


class TokenResponse(BaseModel):
    """Successful token poll."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int


class DeviceFlow:
    """Device-authorization flow engine."""

    def __init__(
        self,
        store: StateStore,
        registry: ProviderRegistry,
        jwt_manager: JWTManager,
        auth_settings: AuthSettings,
    ):
        self.store = store
        self.registry = registry
        self.jwt = jwt_manager
        self.code_ttl = timedelta(minutes=auth_settings.device_code_ttl_minutes)
        self.interval = auth_settings.device_poll_interval

    async def initiate(self, provider_name: str | None, base_url: str) -> DeviceAuthorization:
        """Create a pending device code.

        Args:
            provider_name: Provider the user will log in with
            base_url: Public scheme://host of this API

        Raises:
            UnsupportedProvider: Provider not registered
        """
        provider = self.registry.get(provider_name).get_provider_name()

        for attempt in range(USER_CODE_ATTEMPTS):
            now = utcnow()
            user_code = generate_user_code()
            query = urlencode({"code": user_code, "provider": provider})
            device = DeviceCode(
                device_code=generate_device_code(),
                user_code=user_code,
                verification_uri=f"{base_url.rstrip('/')}/auth/device/verify?{query}",
                provider=provider,
                expires_at=now + self.code_ttl,
                interval=self.interval,
                status=DeviceStatus.PENDING,
                created_at=now,
            )
            try:
                await self.store.create_device_code(device)
                break
            except Conflict:
                logger.debug(f"User code collision (attempt {attempt + 1})")
        else:
            raise StorageError("could not allocate a unique user code")

        logger.info(f"Device authorization started for {provider} ({mask_user_code(user_code)})")
        return DeviceAuthorization(
            device_code=device.device_code,
            user_code=device.user_code,
            verification_uri=device.verification_uri,
            expires_in=int(self.code_ttl.total_seconds()),
            interval=device.interval,
        )

    async def _load_by_user_code(self, user_code: str, missing: str) -> DeviceCode:
        normalized = normalize_user_code(user_code or "")
        if not validate_user_code(normalized):
            raise InputError("invalid user code format")

        # the store's unique user-code index does the comparison
        try:
            return await self.store.get_device_code_by_user_code(normalized)
        except NotFound as e:
            raise InputError(missing) from e

    async def verification_status(self, user_code: str) -> DeviceCode:
        """Load a device code for the verification page (no state change).

        Raises:
            InputError: Bad format, unknown or expired code
        """
        return await self._load_by_user_code(user_code, "invalid or expired code")

    async def approve(self, user_code: str, ctx: AuthContext) -> DeviceCode:
        """Bind the authenticated member to a pending code.

        Scopes come from the member type when the member record is loaded,
        otherwise from the caller's token.

        Raises:
            InputError: Code unknown, expired or no longer pending
        """
        device = await self._load_by_user_code(user_code, "code already used or expired")

        scopes = scopes_for_member_type(ctx.member.type) if ctx.member else list(ctx.scopes)
        try:
            approved = await self.store.update_device_code_status(
                device.device_code,
                DeviceStatus.PENDING,
                DeviceStatus.APPROVED,
                member_number=ctx.member_number,
                email=ctx.email,
                scopes=scopes,
            )
        except NotFound as e:
            raise InputError("code already used or expired") from e

        if approved is None:
            raise InputError("code already used or expired")

        logger.info(f"Device code {mask_user_code(device.user_code)} approved by member {ctx.member_number}")
        return approved

    async def deny(self, user_code: str, ctx: AuthContext) -> DeviceCode:
        """Reject a pending code; the next poll receives access_denied.

        Raises:
            InputError: Code unknown, expired or no longer pending
        """
        device = await self._load_by_user_code(user_code, "code already used or expired")

        try:
            denied = await self.store.update_device_code_status(
                device.device_code, DeviceStatus.PENDING, DeviceStatus.DENIED
            )
        except NotFound as e:
            raise InputError("code already used or expired") from e

        if denied is None:
            raise InputError("code already used or expired")

        logger.info(f"Device code {mask_user_code(device.user_code)} denied by member {ctx.member_number}")
        return denied

    async def poll(self, device_code: str | None, grant_type: str | None) -> TokenResponse:
        """Redeem a device code.

        Raises:
            UnsupportedGrantType: grant_type is not the device_code grant
            InvalidRequest: device_code missing
            ExpiredDeviceCode: Unknown, expired or already redeemed and removed
            AuthorizationPending: User has not acted yet
            AccessDenied: User denied the request
            InvalidGrant: Code in any other state
        """
        if grant_type != DEVICE_CODE_GRANT_TYPE:
            raise UnsupportedGrantType()
        if not device_code:
            raise InvalidRequest("device_code is required")

        try:
            device = await self.store.get_device_code_by_device_code(device_code)
        except NotFound as e:
            raise ExpiredDeviceCode() from e

        await self.store.mark_device_code_polled(device_code, utcnow())

        if device.status == DeviceStatus.PENDING:
            raise AuthorizationPending()
        if device.status == DeviceStatus.DENIED:
            raise AccessDenied()
        if device.status != DeviceStatus.APPROVED:
            raise InvalidGrant()

        try:
            redeemed = await self.store.update_device_code_status(
                device_code, DeviceStatus.APPROVED, DeviceStatus.COMPLETED
            )
        except NotFound as e:
            raise ExpiredDeviceCode() from e

        if redeemed is None:
            logger.warning("Device code redeemed concurrently")
            raise InvalidGrant()

        if redeemed.member_number is None or not redeemed.email:
            await self.store.delete_device_code(device_code)
            raise InvalidGrant("approved device code has no member binding")

        token = self.jwt.generate(
            member_number=redeemed.member_number,
            email=redeemed.email,
            scopes=redeemed.scopes or [],
            provider=redeemed.provider,
        )
        await self.store.delete_device_code(device_code)

        logger.info(f"Issued access token for member {redeemed.member_number} via device flow")
        return TokenResponse(
            access_token=token,
            token_type="Bearer",
            expires_in=int(self.jwt.lifetime.total_seconds()),
        )
