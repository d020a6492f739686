"""
Test fixtures for the AIVELLE routing and OAuth test suite.
"""

import json
import os
import sys
from pathlib import Path

import pytest

# Add backend to path
BACKEND_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(BACKEND_DIR))

# Set up a minimal profile before importing anything that reads config
os.environ["PROFILE_PATH"] = str(BACKEND_DIR.parent / "profile.yaml.example")
os.environ.setdefault("AIVELLE_API_KEY", "test-api-key")

from core import FlowManager, RoutingRuleStore, WorkflowDispatcher  # noqa: E402
from kv import MemoryKVStore  # noqa: E402


WORKFLOW_SOURCES = {
    "workflows/echo.py": (
        "def run(context):\n"
        "    return {'echo': context.get('input'), 'intent': context.get('intent')}\n"
    ),
    "workflows/async_echo.py": (
        "import asyncio\n\n"
        "async def run(context):\n"
        "    await asyncio.sleep(0)\n"
        "    return {'async': True, 'input': context.get('input')}\n"
    ),
    "workflows/object_style.py": (
        "class Draft:\n"
        "    def run(self, context):\n"
        "        return {'style': 'object', 'intent': context.get('intent')}\n\n"
        "workflow = Draft()\n"
    ),
    "workflows/broken.py": (
        "def run(context):\n"
        "    raise RuntimeError('boom')\n"
    ),
    "workflows/no_entry.py": "VALUE = 1\n",
}


def make_rule(category, triggers=(), examples=(), priority=None, enabled=True,
              code="", title=""):
    rule = {
        "category": category,
        "title": title,
        "description": f"{title or category} rule",
        "enabled": enabled,
        "triggers": list(triggers),
        "examples": list(examples),
        "paths": {"code": code, "scenario": ""},
    }
    if priority is not None:
        rule["priority"] = priority
    return rule


def write_rules(path: Path, rules: dict, fallback=None, default_priority=100) -> Path:
    routing = {"fallback_intent": fallback, "rules": rules}
    if default_priority is not None:
        routing["default_priority"] = default_priority
    path.write_text(json.dumps({
        "metadata": {
            "version": "test-1",
            "generated": "2025-01-01T00:00:00Z",
            "total_scenarios": len(rules),
            "categories": sorted({r.get("category", "") for r in rules.values()} - {""}),
        },
        "routing": routing,
    }, ensure_ascii=False), encoding="utf-8")
    return path


STANDARD_RULES = {
    "interact.chat": make_rule("interact", priority=10, code="workflows/echo.py",
                               title="Chat"),
    "create.task": make_rule("create", triggers=["할 일", "task"],
                             examples=["할 일을 추가해줘"], priority=120,
                             code="workflows/async_echo.py", title="Add Task"),
    "create.contentDraft": make_rule("create", triggers=["email", "draft"],
                                     priority=110, code="workflows/object_style.py",
                                     title="Content Draft"),
    "remind.meeting": make_rule("remind", triggers=["meeting"],
                                code="workflows/missing.py", title="Meeting"),
    "ops.explode": make_rule("ops", triggers=["explode"], priority=50,
                             code="workflows/broken.py", title="Broken"),
    "archive.old": make_rule("archive", triggers=["archive"], enabled=False,
                             code="workflows/echo.py", title="Archived"),
}


@pytest.fixture
def workflow_root(tmp_path):
    """A workflow root holding small modules of every entry-point shape."""
    root = tmp_path / "wf"
    for rel, source in WORKFLOW_SOURCES.items():
        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(source)
    return root


@pytest.fixture
def rules_path(tmp_path):
    return write_rules(tmp_path / "routing-rules.json", STANDARD_RULES,
                       fallback="interact.chat")


@pytest.fixture
def rule_store(rules_path):
    return RoutingRuleStore(rules_path)


@pytest.fixture
def dispatcher(workflow_root):
    return WorkflowDispatcher(workflow_root)


@pytest.fixture
def flow_manager(rule_store, dispatcher):
    return FlowManager(rule_store, dispatcher)


@pytest.fixture
def memory_store():
    return MemoryKVStore()


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


@pytest.fixture
def fake_sleep():
    return RecordingSleep()
