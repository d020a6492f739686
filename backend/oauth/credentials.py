"""
Durable per-user OAuth credential records.

Records live under ``oauth_user_<identity>`` with no TTL; a re-authorization
overwrites the previous record.
"""

import time
from typing import Optional

from config import OAUTH_USER_PREFIX
from kv import KeyValueStore


def credential_key(identity: str) -> str:
    return f"{OAUTH_USER_PREFIX}{identity}"


async def save_user_credentials(store: KeyValueStore, identity: str, record: dict) -> dict:
    stored = dict(record)
    stored["updatedAt"] = time.time()
    await store.put_json(credential_key(identity), stored)
    return stored


async def get_user_credentials(store: KeyValueStore, identity: str) -> Optional[dict]:
    """Read a user's record back, e.g. from inside a workflow."""
    if not identity:
        return None
    return await store.get_json(credential_key(identity))
