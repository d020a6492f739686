"""
API key loading and verification for operator endpoints.

The key comes from AIVELLE_API_KEY, or is generated once and kept in a
0600 file beside the backend.
"""

import os
import secrets
from pathlib import Path

from fastapi import HTTPException, Request


_API_KEY_PATH = Path(__file__).parent / ".aivelle_api_key"


def _load_or_create_api_key() -> str:
    if _API_KEY_PATH.exists():
        return _API_KEY_PATH.read_text().strip()
    key = secrets.token_urlsafe(32)
    _API_KEY_PATH.write_text(key)
    _API_KEY_PATH.chmod(0o600)
    return key


AIVELLE_API_KEY = os.environ.get("AIVELLE_API_KEY") or _load_or_create_api_key()


def verify_api_key(request: Request):
    """Dependency that checks for a valid API key in the X-API-Key header."""
    key = request.headers.get("x-api-key")
    if not key or not secrets.compare_digest(key, AIVELLE_API_KEY):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


def redacted_key() -> str:
    return AIVELLE_API_KEY[-4:] if len(AIVELLE_API_KEY) > 4 else "****"
