"""
OAuth bridge: the authorization-code flow shared by every provider.

    UNAUTHENTICATED -> STATE_ISSUED -> CALLBACK_RECEIVED -> STATE_VERIFIED
        -> TOKEN_EXCHANGED -> PROFILE_FETCHED (optional) -> PERSISTED
        -> SUCCESS | FAILURE

Provider subclasses supply the authorize URL, the token exchange request,
the optional profile call and how to derive the record's identity. Network
steps and persistence retry with linear backoff before failing.

The bridge is framework-free: it returns AuthorizationPage / CallbackOutcome
values that the route layer turns into HTTP responses.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import httpx

from config import (
    AGENT_SIGNATURE, OAUTH_BACKOFF_SECONDS, OAUTH_HTTP_TIMEOUT, OAUTH_MAX_ATTEMPTS,
)
from errors import OAUTH_STATUS, ErrorCode, OAuthError
from kv import KeyValueStore
from oauth.credentials import save_user_credentials
from oauth.pages import render_error_page, render_landing_page, render_success_page
from oauth.state import issue_state, verify_state
from profile_config import ProviderConfig
from retry import RetryExhausted, linear_backoff, retry_async

logger = logging.getLogger(__name__)


class OAuthStage(Enum):
    UNAUTHENTICATED = "unauthenticated"
    STATE_ISSUED = "state_issued"
    CALLBACK_RECEIVED = "callback_received"
    STATE_VERIFIED = "state_verified"
    TOKEN_EXCHANGED = "token_exchanged"
    PROFILE_FETCHED = "profile_fetched"
    PERSISTED = "persisted"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class AuthorizationPage:
    status_code: int
    html: str = ""
    redirect_url: Optional[str] = None
    stage: OAuthStage = OAuthStage.STATE_ISSUED


@dataclass
class CallbackOutcome:
    success: bool
    status_code: int
    html: str
    stage: OAuthStage
    error: Optional[ErrorCode] = None
    identity: Optional[str] = None
    stages: list[OAuthStage] = field(default_factory=list)


class OAuthProvider(ABC):
    """One provider's authorization-code flow."""

    name: str = ""
    label: str = ""

    def __init__(self, config: ProviderConfig, store: KeyValueStore,
                 attempts: int = OAUTH_MAX_ATTEMPTS,
                 backoff_seconds: float = OAUTH_BACKOFF_SECONDS,
                 timeout: float = OAUTH_HTTP_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 sleep=None):
        self.config = config
        self.store = store
        self.attempts = attempts
        self.backoff = linear_backoff(backoff_seconds)
        self.timeout = timeout
        self._transport = transport
        self._sleep = sleep

    # ── Provider hooks ──

    @abstractmethod
    def build_authorize_url(self, state: str, redirect_uri: str) -> str:
        ...

    @abstractmethod
    async def exchange_code(self, client: httpx.AsyncClient, code: str,
                            redirect_uri: str) -> dict:
        """POST the authorization code; return the decoded token response."""

    async def fetch_profile(self, client: httpx.AsyncClient, tokens: dict) -> Optional[dict]:
        """Identity lookup after the exchange. None when the provider has none."""
        return None

    @abstractmethod
    def resolve_identity(self, tokens: dict, profile: Optional[dict]) -> Optional[str]:
        ...

    @abstractmethod
    def build_record(self, tokens: dict, profile: Optional[dict]) -> dict:
        ...

    # ── Shared flow ──

    def redirect_uri(self, base_url: str) -> str:
        return f"{base_url.rstrip('/')}/oauth/{self.name}/callback"

    def _client(self, headers: Optional[dict] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"User-Agent": AGENT_SIGNATURE, **(headers or {})},
        )

    async def _retry(self, operation, label: str, retry_on=(httpx.HTTPError, ValueError)):
        kwargs = {"sleep": self._sleep} if self._sleep else {}
        return await retry_async(operation, attempts=self.attempts, backoff=self.backoff,
                                 retry_on=retry_on, label=f"{self.name} {label}", **kwargs)

    async def build_authorization_request(self, base_url: str,
                                          redirect: bool = False) -> AuthorizationPage:
        """Issue a state token and produce the landing page (or a 302 target)."""
        if not self.config.client_id:
            logger.error("[OAuth] %s client id is not configured", self.name)
            return AuthorizationPage(
                status_code=500,
                html=render_error_page(f"{self.label} OAuth client ID is not configured", self.name),
                stage=OAuthStage.UNAUTHENTICATED,
            )

        state = await issue_state(self.store, self.name)
        auth_url = self.build_authorize_url(state, self.redirect_uri(base_url))
        logger.info("[OAuth] %s authorization request issued", self.name)
        if redirect:
            return AuthorizationPage(status_code=302, redirect_url=auth_url)
        return AuthorizationPage(status_code=200, html=render_landing_page(self.label, auth_url))

    async def handle_callback(self, params, base_url: str,
                              headers: Optional[dict] = None) -> CallbackOutcome:
        """Verify state, exchange the code, fetch identity, persist the record.

        ``headers`` (request id, hop count) are sent on every outbound call.
        """
        stages = [OAuthStage.CALLBACK_RECEIVED]
        try:
            identity = await self._complete(params, base_url, stages, headers)
        except OAuthError as e:
            logger.warning("[OAuth] %s callback failed at %s (%s): %s", self.name,
                           stages[-1].value, e.code.value, e.message)
            stages.append(OAuthStage.FAILURE)
            return CallbackOutcome(
                success=False,
                status_code=OAUTH_STATUS.get(e.code, 500),
                html=render_error_page(e.message, self.name),
                stage=OAuthStage.FAILURE,
                error=e.code,
                stages=stages,
            )

        logger.info("[OAuth] %s authorization stored for %s", self.name, identity)
        stages.append(OAuthStage.SUCCESS)
        return CallbackOutcome(
            success=True,
            status_code=200,
            html=render_success_page(f"Successfully authenticated with {self.label}!"),
            stage=OAuthStage.SUCCESS,
            identity=identity,
            stages=stages,
        )

    async def _complete(self, params, base_url: str, stages: list,
                        headers: Optional[dict] = None) -> str:
        provider_error = params.get("error")
        if provider_error:
            raise OAuthError(ErrorCode.OAUTH_PROVIDER_ERROR,
                             f"Authentication Error: {provider_error}")
        code = params.get("code")
        if not code:
            raise OAuthError(ErrorCode.OAUTH_PROVIDER_ERROR, "Authorization code is missing")

        if not await verify_state(self.store, params.get("state"), self.name):
            raise OAuthError(ErrorCode.OAUTH_STATE_INVALID, "Invalid state parameter")
        stages.append(OAuthStage.STATE_VERIFIED)

        if not self.config.client_id or not self.config.client_secret:
            raise OAuthError(ErrorCode.CONFIG_NOT_FOUND,
                             f"{self.label} OAuth client is not configured")

        redirect_uri = self.redirect_uri(base_url)
        try:
            async with self._client(headers) as client:
                tokens = await self._retry(
                    lambda: self.exchange_code(client, code, redirect_uri), "token exchange")
                stages.append(OAuthStage.TOKEN_EXCHANGED)

                profile = await self._retry(
                    lambda: self.fetch_profile(client, tokens), "profile fetch")
                if profile is not None:
                    stages.append(OAuthStage.PROFILE_FETCHED)
        except RetryExhausted as e:
            raise OAuthError(ErrorCode.OAUTH_EXCHANGE_FAILED,
                             f"Authentication failed: {e.last_error}") from e

        identity = self.resolve_identity(tokens, profile)
        if not identity:
            raise OAuthError(ErrorCode.OAUTH_PROVIDER_ERROR,
                             f"{self.label} did not return a user identity")

        record = self.build_record(tokens, profile)
        record["provider"] = self.name
        record["identity"] = identity
        try:
            await self._retry(lambda: save_user_credentials(self.store, identity, record),
                              "credential persistence", retry_on=(Exception,))
        except RetryExhausted as e:
            raise OAuthError(ErrorCode.PERSISTENCE_FAILED,
                             f"Could not save credentials: {e.last_error}") from e
        stages.append(OAuthStage.PERSISTED)
        return identity


def raise_for_token_response(response: httpx.Response) -> dict:
    """Decode a token endpoint response, raising on HTTP or payload errors."""
    response.raise_for_status()
    data = response.json()
    if not isinstance(data, dict) or not data.get("access_token"):
        raise ValueError(f"Token response missing access_token: {str(data)[:200]}")
    return data
