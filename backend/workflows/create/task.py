"""Add a to-do item extracted from the request text."""

import re
import uuid
from datetime import datetime, timezone

_REQUEST_SUFFIXES = re.compile(r"(을|를)?\s*(추가해\s*줘|추가해줘|추가|add)\s*$", re.IGNORECASE)
_PRIORITY_WORDS = {
    "high": ("urgent", "asap", "긴급", "급한"),
    "low": ("someday", "나중에", "언젠가"),
}


def _extract_title(text: str) -> str:
    title = _REQUEST_SUFFIXES.sub("", text.strip()).strip()
    return title or text.strip()


def _priority(text: str) -> str:
    lowered = text.lower()
    for level, words in _PRIORITY_WORDS.items():
        if any(w in lowered for w in words):
            return level
    return "normal"


async def run(context: dict) -> dict:
    text = context.get("input") or context.get("title") or ""
    if not text.strip():
        raise ValueError("Task description is empty")
    return {
        "task": {
            "id": uuid.uuid4().hex[:12],
            "title": _extract_title(text),
            "priority": _priority(text),
            "status": "open",
            "createdAt": datetime.now(timezone.utc).isoformat(),
        },
        "message": "Task added",
    }
