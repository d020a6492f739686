"""
Pydantic request/response models shared across route modules.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from config import MAX_INPUT_LENGTH


class RouteRequest(BaseModel):
    """Body of POST / and POST /api/route-workflow.

    ``intent`` dispatches a named workflow directly; otherwise ``prompt`` is
    matched against the routing table.
    """
    prompt: Optional[str] = Field(default=None, max_length=MAX_INPUT_LENGTH)
    intent: Optional[str] = None
    context: Optional[dict[str, Any]] = None


class CredentialStatus(BaseModel):
    provider: str
    user: str
    connected: bool
    scope: Optional[str] = None
    updatedAt: Optional[float] = None
