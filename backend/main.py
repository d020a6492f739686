"""
AIVELLE: intent resolution and workflow dispatch service.
FastAPI backend routing free-text requests to workflow modules, with an
OAuth bridge for third-party integrations.
"""

import logging

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from auth import redacted_key
from config import KV_BACKEND, KV_SQLITE_PATH, ROUTING_RULES_PATH, SYSTEM_NAME, WORKFLOW_ROOT
from core import RoutingRuleStore, WorkflowDispatcher, FlowManager
from errors import ErrorCode
from guard import RequestGuardMiddleware, configure_logging
from kv import create_store
from oauth import create_providers
from profile_config import get_profile
from routes import register_routes

logger = logging.getLogger(__name__)


def _init_state(app: FastAPI):
    """Fill in any collaborator not injected through create_app()."""
    state = app.state
    if getattr(state, "rule_store", None) is None:
        state.rule_store = RoutingRuleStore(ROUTING_RULES_PATH)
    if getattr(state, "dispatcher", None) is None:
        state.dispatcher = WorkflowDispatcher(WORKFLOW_ROOT)
    if getattr(state, "flow_manager", None) is None:
        state.flow_manager = FlowManager(state.rule_store, state.dispatcher)
    if getattr(state, "kv_store", None) is None:
        state.kv_store = create_store(KV_BACKEND, KV_SQLITE_PATH)
    if getattr(state, "oauth_providers", None) is None:
        state.oauth_providers = create_providers(get_profile(), state.kv_store)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    _init_state(app)
    logger.info("API key: ****...%s", redacted_key())
    logger.info("Set X-API-Key header to authenticate.")

    status = app.state.rule_store.get_status()
    if status["status"] == "ready":
        logger.info("Routing table ready: %d enabled scenarios", status["enabledScenarios"])
    else:
        logger.error("Startup error: %s", status.get("error"))
    yield
    await app.state.kv_store.close()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        return response


async def _validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = errors[0].get("msg", "Invalid request body") if errors else "Invalid request body"
    return JSONResponse(status_code=400, content={
        "success": False,
        "error": ErrorCode.INVALID_INPUT.value,
        "message": detail,
        "request_id": getattr(request.state, "request_id", None),
    })


def create_app(**state) -> FastAPI:
    """Build the application.

    Keyword arguments (rule_store, dispatcher, flow_manager, kv_store,
    oauth_providers) are placed on app.state as-is; the rest are built from
    the profile at startup.
    """
    app = FastAPI(
        title=SYSTEM_NAME,
        description="Intent resolution and workflow dispatch API",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    for key, value in state.items():
        setattr(app.state, key, value)

    app.add_exception_handler(RequestValidationError, _validation_error)

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_profile().web.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Added last so it wraps everything: every response gets correlation headers
    app.add_middleware(RequestGuardMiddleware)

    register_routes(app)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
