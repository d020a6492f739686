"""Google OAuth: offline access with a userinfo lookup, keyed by email."""

from typing import Optional
from urllib.parse import urlencode

import httpx

from oauth.base import OAuthProvider, raise_for_token_response

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


class GoogleOAuthProvider(OAuthProvider):
    name = "google"
    label = "Google"

    def build_authorize_url(self, state: str, redirect_uri: str) -> str:
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": self.config.scope,
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return f"{GOOGLE_AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, client: httpx.AsyncClient, code: str,
                            redirect_uri: str) -> dict:
        response = await client.post(GOOGLE_TOKEN_URL, data={
            "code": code,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        })
        return raise_for_token_response(response)

    async def fetch_profile(self, client: httpx.AsyncClient, tokens: dict) -> Optional[dict]:
        response = await client.get(
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {tokens['access_token']}"},
        )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("Unexpected userinfo payload")
        return data

    def resolve_identity(self, tokens: dict, profile: Optional[dict]) -> Optional[str]:
        profile = profile or {}
        return profile.get("email") or profile.get("id")

    def build_record(self, tokens: dict, profile: Optional[dict]) -> dict:
        profile = profile or {}
        return {
            "access_token": tokens["access_token"],
            "refresh_token": tokens.get("refresh_token"),
            "scope": tokens.get("scope", self.config.scope),
            "expiresIn": tokens.get("expires_in"),
            "email": profile.get("email"),
            "name": profile.get("name"),
        }
