"""Health, routing status, and routing-table reload endpoints."""

import logging

from fastapi import APIRouter, Depends, Request

from auth import verify_api_key
from config import SYSTEM_NAME

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
def health(request: Request):
    routing = request.app.state.rule_store.get_status()
    return {"status": "ok", "service": SYSTEM_NAME, "routing": routing["status"]}


@router.get("/api/status")
def api_status(request: Request):
    return request.app.state.rule_store.get_status()


@router.post("/api/routing/reload", dependencies=[Depends(verify_api_key)])
def reload_routing(request: Request):
    """Drop the cached routing table and load the artifact again."""
    store = request.app.state.rule_store
    store.clear_cache()
    status = store.get_status()
    logger.info("Routing table reload requested: %s", status["status"])
    return status
