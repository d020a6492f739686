"""Intent routing endpoints: free-text dispatch and the intent catalogue."""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from errors import ConfigNotFound, ErrorCode, status_for
from models import RouteRequest

logger = logging.getLogger(__name__)

router = APIRouter()


def _respond(request: Request, result: dict) -> JSONResponse:
    if result.get("success"):
        return JSONResponse(result)
    body = dict(result)
    body["request_id"] = getattr(request.state, "request_id", None)
    return JSONResponse(body, status_code=status_for(result.get("error")))


async def _route(request: Request, body: RouteRequest) -> JSONResponse:
    flow = request.app.state.flow_manager
    options = dict(body.context or {})
    options["requestId"] = getattr(request.state, "request_id", None)
    options["hopCount"] = getattr(request.state, "hop_count", 1)

    if body.intent:
        result = await flow.dispatch_intent(body.intent, options)
    else:
        result = await flow.handle_user_input(body.prompt, options)
    return _respond(request, result)


@router.post("/")
async def route_root(request: Request, body: RouteRequest):
    return await _route(request, body)


@router.post("/api/route-workflow")
async def route_workflow(request: Request, body: RouteRequest):
    """Match the prompt (or take the named intent) and run its workflow."""
    return await _route(request, body)


@router.get("/api/intents")
def list_intents(request: Request):
    store = request.app.state.rule_store
    try:
        intents = store.get_available_intents()
    except ConfigNotFound as e:
        return _respond(request, {"success": False, "error": ErrorCode.CONFIG_NOT_FOUND.value,
                                  "message": str(e)})
    return {"success": True, "count": len(intents), "intents": intents}


@router.get("/api/intents/{category}")
def list_intents_by_category(request: Request, category: str):
    store = request.app.state.rule_store
    try:
        intents = store.get_intents_by_category(category)
    except ConfigNotFound as e:
        return _respond(request, {"success": False, "error": ErrorCode.CONFIG_NOT_FOUND.value,
                                  "message": str(e)})
    return {"success": True, "category": category, "count": len(intents), "intents": intents}
