"""
Configuration: centralized settings for the entire backend.
All user-configurable values come from profile.yaml via get_profile().
Wire names, key prefixes and internal limits remain as code constants.
"""

from pathlib import Path as _Path

from profile_config import get_profile

_profile = get_profile()

# ── Service Identity ──
SYSTEM_NAME = _profile.system.name
PUBLIC_BASE_URL = _profile.system.base_url.rstrip("/")
SELF_DOMAINS = [d.lower() for d in _profile.system.domains if d]
AGENT_SIGNATURE = _profile.system.agent_signature

# ── Correlation Headers ──
REQUEST_ID_HEADER = "X-Request-ID"
HOP_COUNT_HEADER = "X-Hop-Count"
RETRY_AFTER_HEADER = "Retry-After"

# ── Request Guard ──
MAX_HOP_DEPTH = _profile.guard.max_depth
LOOP_RETRY_AFTER_SECONDS = _profile.guard.retry_after_seconds
GUARD_EXEMPT_PATHS = tuple(_profile.guard.exempt_paths)

# ── Routing ──
ROUTING_RULES_PATH = _Path(_profile.routing.rules_path)
WORKFLOW_ROOT = _Path(_profile.routing.workflow_root)
DEFAULT_PRIORITY = _profile.routing.default_priority

# Scoring weights for the keyword matcher
TRIGGER_WEIGHT = 10
EXAMPLE_WORD_WEIGHT = 2
EXAMPLE_WORD_MIN_LENGTH = 3
CATEGORY_BONUS = 5

# ── Key/Value Storage ──
KV_BACKEND = _profile.storage.backend
KV_SQLITE_PATH = _Path(_profile.storage.sqlite_path)
KV_BUSY_TIMEOUT_MS = 5000

# ── OAuth ──
OAUTH_STATE_PREFIX = "oauth_state_"
OAUTH_USER_PREFIX = "oauth_user_"
OAUTH_STATE_TTL = _profile.oauth.state_ttl_seconds
OAUTH_MAX_ATTEMPTS = _profile.oauth.max_attempts
OAUTH_BACKOFF_SECONDS = _profile.oauth.backoff_seconds
OAUTH_HTTP_TIMEOUT = _profile.oauth.http_timeout

# ── Input Limits ──
MAX_INPUT_LENGTH = 5000
LOG_PREVIEW_CHARS = 50
