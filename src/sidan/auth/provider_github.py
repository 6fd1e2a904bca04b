"""GitHub OAuth2 provider.

GitHub's /user endpoint may hide the email, so the address is chosen from
/user/emails: the first primary and verified entry, else the first verified.
"""

from typing import Any

from loguru import logger

from sidan.auth.errors import NoVerifiedEmail, UserInfoFailed
from sidan.auth.providers import OAuthProvider, UserInfo


def select_verified_email(emails: list[dict[str, Any]]) -> str | None:
    """Pick the email GitHub vouches for.

    Example:
        >>> select_verified_email([
        ...     {"email": "a@x.se", "primary": False, "verified": True},
        ...     {"email": "b@x.se", "primary": True, "verified": True},
        ... ])
        'b@x.se'
    """
    for entry in emails:
        if entry.get("primary") and entry.get("verified"):
            return entry.get("email")
    for entry in emails:
        if entry.get("verified"):
            return entry.get("email")
    return None


class GitHubProvider(OAuthProvider):
    """GitHub accounts."""

    name = "github"
    auth_url = "https://github.com/login/oauth/authorize"
    token_url = "https://github.com/login/oauth/access_token"
    userinfo_url = "https://api.github.com/user"
    emails_url = "https://api.github.com/user/emails"
    default_scopes = ["read:user", "user:email"]

    async def fetch_user_info(self, access_token: str) -> UserInfo:
        async with self._http_client() as client:
            user = await self._get_json(client, self.config.userinfo_url, access_token)
            emails = await self._get_json(client, self.emails_url, access_token)

        if not isinstance(emails, list):
            raise UserInfoFailed("unexpected /user/emails response")

        email = select_verified_email(emails)
        if not email:
            logger.warning(f"GitHub user {user.get('login')} has no verified email")
            raise NoVerifiedEmail()

        return UserInfo(
            provider_user_id=str(user.get("id", "")),
            email=email,
            email_verified=True,
            name=user.get("name") or user.get("login"),
            picture=user.get("avatar_url"),
        )
