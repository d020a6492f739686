"""Notion OAuth: Basic-auth token exchange, identity taken from the token response."""

import base64
from typing import Optional
from urllib.parse import urlencode

import httpx

from oauth.base import OAuthProvider, raise_for_token_response

NOTION_AUTHORIZE_URL = "https://api.notion.com/v1/oauth/authorize"
NOTION_TOKEN_URL = "https://api.notion.com/v1/oauth/token"


class NotionOAuthProvider(OAuthProvider):
    name = "notion"
    label = "Notion"

    def build_authorize_url(self, state: str, redirect_uri: str) -> str:
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "owner": "user",
            "state": state,
        }
        return f"{NOTION_AUTHORIZE_URL}?{urlencode(params)}"

    def _basic_auth(self) -> str:
        raw = f"{self.config.client_id}:{self.config.client_secret}".encode()
        return "Basic " + base64.b64encode(raw).decode()

    async def exchange_code(self, client: httpx.AsyncClient, code: str,
                            redirect_uri: str) -> dict:
        response = await client.post(
            NOTION_TOKEN_URL,
            json={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            },
            headers={"Authorization": self._basic_auth()},
        )
        return raise_for_token_response(response)

    def resolve_identity(self, tokens: dict, profile: Optional[dict]) -> Optional[str]:
        owner = tokens.get("owner") or {}
        user = owner.get("user") or {}
        return user.get("id") or tokens.get("workspace_id")

    def build_record(self, tokens: dict, profile: Optional[dict]) -> dict:
        owner = tokens.get("owner") or {}
        return {
            "access_token": tokens["access_token"],
            "refresh_token": tokens.get("refresh_token"),
            "scope": tokens.get("scope", ""),
            "expiresIn": tokens.get("expires_in"),
            "workspace_id": tokens.get("workspace_id"),
            "workspace_name": tokens.get("workspace_name"),
            "bot_id": tokens.get("bot_id"),
            "owner_user_id": (owner.get("user") or {}).get("id"),
        }
