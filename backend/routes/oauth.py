"""OAuth bridge endpoints: authorization landing, provider callback, record status."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from auth import verify_api_key
from config import PUBLIC_BASE_URL
from guard import propagation_headers
from models import CredentialStatus
from oauth import OAuthProvider, get_user_credentials
from oauth.pages import render_error_page

logger = logging.getLogger(__name__)

router = APIRouter()


def _base_url(request: Request) -> str:
    return PUBLIC_BASE_URL or str(request.base_url).rstrip("/")


def _provider(request: Request, name: str):
    providers: dict[str, OAuthProvider] = request.app.state.oauth_providers
    return providers.get(name)


def _page(html: str, status_code: int) -> HTMLResponse:
    # Links on these pages lead back into /oauth; they must not carry our own Referer
    return HTMLResponse(html, status_code=status_code, headers={"Referrer-Policy": "no-referrer"})


def _unknown_provider(name: str) -> HTMLResponse:
    return _page(render_error_page(f"Unknown OAuth provider: {name}", name), 404)


@router.get("/oauth/{provider}")
async def oauth_authorize(request: Request, provider: str, redirect: bool = False):
    bridge = _provider(request, provider)
    if bridge is None:
        return _unknown_provider(provider)
    page = await bridge.build_authorization_request(_base_url(request), redirect=redirect)
    if page.redirect_url:
        return RedirectResponse(page.redirect_url, status_code=302)
    return _page(page.html, page.status_code)


@router.get("/oauth/{provider}/callback")
async def oauth_callback(request: Request, provider: str):
    bridge = _provider(request, provider)
    if bridge is None:
        return _unknown_provider(provider)
    outcome = await bridge.handle_callback(request.query_params, _base_url(request),
                                           headers=propagation_headers(request))
    return _page(outcome.html, outcome.status_code)


@router.get("/api/oauth/{provider}/status", response_model=CredentialStatus,
            dependencies=[Depends(verify_api_key)])
async def oauth_status(request: Request, provider: str, user: str):
    """Whether a credential record exists for ``user``. Tokens are never returned."""
    if _provider(request, provider) is None:
        raise HTTPException(status_code=404, detail=f"Unknown OAuth provider: {provider}")
    record = await get_user_credentials(request.app.state.kv_store, user)
    connected = bool(record) and record.get("provider") == provider
    return {
        "provider": provider,
        "user": user,
        "connected": connected,
        "scope": record.get("scope") if connected else None,
        "updatedAt": record.get("updatedAt") if connected else None,
    }
