"""
Request guard: per-request loop and depth protection plus correlation ids.

Each request walks ENTRY -> LOOP_CHECK -> DEPTH_CHECK -> DISPATCH -> RESPONSE.

  LOOP_CHECK   Referer host or User-Agent identifies this service itself
               (a request we issued came back to us) -> 429 + Retry-After.
  DEPTH_CHECK  X-Hop-Count above the limit -> 400. Otherwise the count is
               incremented and exposed on request.state for propagation.

Every response, including rejections and unexpected faults, carries
X-Request-ID (echoed or generated) and X-Hop-Count. The request id is also
injected into every log record emitted while the request is handled.
"""

import logging
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import urlparse

from fastapi.responses import HTMLResponse, JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from config import (
    AGENT_SIGNATURE, GUARD_EXEMPT_PATHS, HOP_COUNT_HEADER, LOOP_RETRY_AFTER_SECONDS,
    MAX_HOP_DEPTH, REQUEST_ID_HEADER, RETRY_AFTER_HEADER, SELF_DOMAINS,
)
from errors import API_STATUS, ErrorCode
from oauth.pages import render_generic_failure, render_rejection_page

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

_MAX_REQUEST_ID_LENGTH = 128


# ── Logging ──

class RequestIdFilter(logging.Filter):
    """Stamp the current request id onto every record as ``request_id``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def configure_logging(level: int = logging.INFO):
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: [%(request_id)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RequestIdFilter) for f in handler.filters):
            handler.addFilter(RequestIdFilter())


# ── Pure checks ──

class GuardStage(Enum):
    ENTRY = "entry"
    LOOP_CHECK = "loop_check"
    DEPTH_CHECK = "depth_check"
    DISPATCH = "dispatch"
    RESPONSE = "response"


@dataclass
class GuardDecision:
    allowed: bool
    stage: GuardStage
    hop_count: int
    error: Optional[ErrorCode] = None
    message: str = ""


def _host_matches(host: str, domains) -> bool:
    host = host.lower().rstrip(".")
    return any(host == d or host.endswith("." + d) for d in domains)


def is_self_referential(referer: str, user_agent: str, domains, signature: str) -> bool:
    """True when the request was issued by this service."""
    if referer:
        host = urlparse(referer).hostname or ""
        if host and _host_matches(host, domains):
            return True
    if signature and user_agent and signature.lower() in user_agent.lower():
        return True
    return False


def parse_hop_count(value: Optional[str]) -> int:
    """Incoming hop count; missing, malformed or negative values read as 0."""
    if value is None or not value.strip():
        return 0
    try:
        count = int(value.strip())
    except ValueError:
        logger.warning("Ignoring malformed %s header: %r", HOP_COUNT_HEADER, value[:32])
        return 0
    return max(count, 0)


def resolve_request_id(value: Optional[str]) -> str:
    """Echo a caller-supplied id if it is sane, otherwise mint one."""
    if value:
        value = value.strip()
        if value and len(value) <= _MAX_REQUEST_ID_LENGTH and value.isprintable():
            return value
    return uuid.uuid4().hex


def evaluate_request(headers, domains=SELF_DOMAINS, signature: str = AGENT_SIGNATURE,
                     max_depth: int = MAX_HOP_DEPTH) -> GuardDecision:
    """Run LOOP_CHECK then DEPTH_CHECK against request headers."""
    hops = parse_hop_count(headers.get(HOP_COUNT_HEADER))

    if is_self_referential(headers.get("referer", ""), headers.get("user-agent", ""),
                           domains, signature):
        return GuardDecision(False, GuardStage.LOOP_CHECK, hops + 1, ErrorCode.LOOP_DETECTED,
                             "Request loop detected: this service called itself")

    if hops > max_depth:
        return GuardDecision(False, GuardStage.DEPTH_CHECK, hops + 1, ErrorCode.DEPTH_EXCEEDED,
                             f"Request depth {hops} exceeds the limit of {max_depth}")

    return GuardDecision(True, GuardStage.DISPATCH, hops + 1)


def propagation_headers(request: Request) -> dict:
    """Headers to attach to outbound calls made on behalf of this request."""
    return {
        REQUEST_ID_HEADER: getattr(request.state, "request_id", request_id_var.get()),
        HOP_COUNT_HEADER: str(getattr(request.state, "hop_count", 1)),
        "User-Agent": AGENT_SIGNATURE,
    }


def _wants_html(path: str) -> bool:
    return path.startswith("/oauth")


# ── Middleware ──

class RequestGuardMiddleware(BaseHTTPMiddleware):
    """Reject loops and over-deep chains; stamp correlation headers."""

    def __init__(self, app, domains=None, signature: Optional[str] = None,
                 max_depth: Optional[int] = None, retry_after: Optional[int] = None,
                 exempt_paths=None):
        super().__init__(app)
        self.domains = [d.lower() for d in (domains if domains is not None else SELF_DOMAINS)]
        self.signature = AGENT_SIGNATURE if signature is None else signature
        self.max_depth = MAX_HOP_DEPTH if max_depth is None else max_depth
        self.retry_after = LOOP_RETRY_AFTER_SECONDS if retry_after is None else retry_after
        self.exempt_paths = tuple(GUARD_EXEMPT_PATHS if exempt_paths is None else exempt_paths)

    def _reject(self, request: Request, decision: GuardDecision, request_id: str) -> Response:
        status_code = API_STATUS[decision.error]
        if _wants_html(request.url.path):
            response = HTMLResponse(render_rejection_page(decision.message, request_id),
                                    status_code=status_code)
        else:
            response = JSONResponse(
                status_code=status_code,
                content={
                    "success": False,
                    "error": decision.error.value,
                    "message": decision.message,
                    "request_id": request_id,
                },
            )
        if decision.error == ErrorCode.LOOP_DETECTED:
            response.headers[RETRY_AFTER_HEADER] = str(self.retry_after)
        return response

    def _failure(self, request: Request, request_id: str) -> Response:
        if _wants_html(request.url.path):
            return HTMLResponse(render_generic_failure(request_id), status_code=500)
        return JSONResponse(status_code=500, content={
            "success": False,
            "error": ErrorCode.INTERNAL_ERROR.value,
            "message": "An unexpected error occurred",
            "request_id": request_id,
        })

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        token = request_id_var.set(request_id)
        try:
            path = request.url.path
            if any(path.startswith(p) for p in self.exempt_paths):
                decision = GuardDecision(
                    True, GuardStage.DISPATCH,
                    parse_hop_count(request.headers.get(HOP_COUNT_HEADER)) + 1)
            else:
                decision = evaluate_request(request.headers, self.domains,
                                            self.signature, self.max_depth)

            request.state.request_id = request_id
            request.state.hop_count = decision.hop_count

            if not decision.allowed:
                logger.warning("Rejected %s %s at %s: %s", request.method, path,
                               decision.stage.value, decision.error.value)
                response = self._reject(request, decision, request_id)
            else:
                try:
                    response = await call_next(request)
                except Exception:
                    logger.exception("Unhandled error on %s %s", request.method, path)
                    response = self._failure(request, request_id)

            response.headers[REQUEST_ID_HEADER] = request_id
            response.headers[HOP_COUNT_HEADER] = str(decision.hop_count)
            return response
        finally:
            request_id_var.reset(token)
