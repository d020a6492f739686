"""
Error taxonomy shared by the guard, flow manager, dispatcher and OAuth bridge.

Only a few failures travel as exceptions inside a layer; everything that
crosses the Guard/Dispatcher/Bridge boundary is a structured result carrying
an ErrorCode.
"""

from enum import Enum


class ErrorCode(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    NO_INTENT_MATCHED = "NO_INTENT_MATCHED"
    WORKFLOW_NOT_FOUND = "WORKFLOW_NOT_FOUND"
    WORKFLOW_EXECUTION_ERROR = "WORKFLOW_EXECUTION_ERROR"
    CONFIG_NOT_FOUND = "CONFIG_NOT_FOUND"
    LOOP_DETECTED = "LOOP_DETECTED"
    DEPTH_EXCEEDED = "DEPTH_EXCEEDED"
    OAUTH_STATE_INVALID = "OAUTH_STATE_INVALID"
    OAUTH_PROVIDER_ERROR = "OAUTH_PROVIDER_ERROR"
    OAUTH_EXCHANGE_FAILED = "OAUTH_EXCHANGE_FAILED"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# HTTP status for each code on the JSON API path
API_STATUS = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.NO_INTENT_MATCHED: 404,
    ErrorCode.WORKFLOW_NOT_FOUND: 501,
    ErrorCode.WORKFLOW_EXECUTION_ERROR: 500,
    ErrorCode.CONFIG_NOT_FOUND: 503,
    ErrorCode.LOOP_DETECTED: 429,
    ErrorCode.DEPTH_EXCEEDED: 400,
    ErrorCode.INTERNAL_ERROR: 500,
}

# HTTP status for each code on the OAuth (HTML) path
OAUTH_STATUS = {
    ErrorCode.OAUTH_PROVIDER_ERROR: 400,
    ErrorCode.OAUTH_STATE_INVALID: 400,
    ErrorCode.OAUTH_EXCHANGE_FAILED: 502,
    ErrorCode.PERSISTENCE_FAILED: 500,
    ErrorCode.CONFIG_NOT_FOUND: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


def status_for(code) -> int:
    """Map an error code (enum or raw string) to its API status, 500 if unknown."""
    try:
        return API_STATUS.get(ErrorCode(code), 500)
    except ValueError:
        return 500


class ConfigNotFound(Exception):
    """The routing-table artifact is absent or unreadable."""


class OAuthError(Exception):
    """A terminal OAuth bridge failure; rendered as an error page."""

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class InvalidInput(ValueError):
    """User text is missing, not a string, or blank."""
