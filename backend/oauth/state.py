"""
Single-use CSRF state tokens for the authorization-code flow.

issue_state() stores a fresh random token with a TTL; verify_state()
consumes it through the store's atomic take(), so a token can validate at
most one callback even when two callbacks race.
"""

import json
import logging
import secrets
import time
from typing import Optional

from config import OAUTH_STATE_PREFIX, OAUTH_STATE_TTL
from kv import KeyValueStore

logger = logging.getLogger(__name__)


def _state_key(token: str) -> str:
    return f"{OAUTH_STATE_PREFIX}{token}"


async def issue_state(store: KeyValueStore, provider: str, ttl: int = OAUTH_STATE_TTL) -> str:
    token = secrets.token_urlsafe(32)
    await store.put_json(_state_key(token), {
        "provider": provider,
        "createdAt": time.time(),
    }, ttl=ttl)
    return token


async def verify_state(store: KeyValueStore, token: Optional[str],
                       provider: Optional[str] = None) -> bool:
    """Consume a state token. False if missing, expired, already used,
    or issued for a different provider."""
    if not token:
        return False
    raw = await store.take(_state_key(token))
    if raw is None:
        return False
    if provider is not None:
        try:
            issued_for = json.loads(raw).get("provider")
        except (ValueError, AttributeError):
            issued_for = None
        if issued_for and issued_for != provider:
            logger.warning("State token issued for %s presented to %s", issued_for, provider)
            return False
    return True
