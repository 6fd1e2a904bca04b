"""Google OAuth2 provider."""

from sidan.auth.providers import OAuthProvider, UserInfo


class GoogleProvider(OAuthProvider):
    """Google accounts.

    Requests offline access with forced consent so every login yields a
    refresh token.
    """

    name = "google"
    auth_url = "https://accounts.google.com/o/oauth2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    userinfo_url = "https://www.googleapis.com/oauth2/v2/userinfo"
    default_scopes = ["openid", "email", "profile"]

    def extra_auth_params(self) -> dict[str, str]:
        return {"access_type": "offline", "prompt": "consent"}

    async def fetch_user_info(self, access_token: str) -> UserInfo:
        async with self._http_client() as client:
            data = await self._get_json(client, self.config.userinfo_url, access_token)

        return UserInfo(
            provider_user_id=str(data.get("id", "")),
            email=data.get("email") or "",
            email_verified=bool(data.get("verified_email", False)),
            name=data.get("name"),
            picture=data.get("picture"),
        )
