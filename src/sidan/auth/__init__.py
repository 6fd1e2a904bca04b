"""Authentication and authorization for sidan.

This module provides:
- Authorization-code login with PKCE against Google and GitHub
- Device authorization grant (RFC 8628) for the sidan CLI
- HS256 JWT access tokens and server-side sessions
- AES-256-GCM encryption of stored provider tokens
- FastAPI dependencies for session, bearer and scope checks
"""

from sidan.auth.authcode_flow import AuthCodeFlow, LoginResult
from sidan.auth.crypto import TokenCipher, generate_key
from sidan.auth.dependencies import (
    OptionalAuth,
    RequiredAuth,
    get_refresh_manager,
    optional_auth,
    require_auth,
    require_scope,
)
from sidan.auth.device_flow import DEVICE_CODE_GRANT_TYPE, DeviceFlow
from sidan.auth.janitor import Janitor
from sidan.auth.jwt_manager import JWTManager, extract_bearer
from sidan.auth.models import AuthContext, Member, MemberType
from sidan.auth.provider_factory import ProviderRegistry, get_provider_registry
from sidan.auth.providers import OAuthProvider, UserInfo
from sidan.auth.refresh import TokenRefreshManager
from sidan.auth.state_store import StateStore
from sidan.auth.state_store_factory import get_state_store

__all__ = [
    "AuthCodeFlow",
    "AuthContext",
    "DEVICE_CODE_GRANT_TYPE",
    "DeviceFlow",
    "Janitor",
    "JWTManager",
    "LoginResult",
    "Member",
    "MemberType",
    "OAuthProvider",
    "OptionalAuth",
    "ProviderRegistry",
    "RequiredAuth",
    "StateStore",
    "TokenCipher",
    "TokenRefreshManager",
    "UserInfo",
    "extract_bearer",
    "generate_key",
    "get_provider_registry",
    "get_refresh_manager",
    "get_state_store",
    "optional_auth",
    "require_auth",
    "require_scope",
]
