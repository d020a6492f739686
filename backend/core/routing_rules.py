"""
Routing rule store: loads the generated routing-table artifact and caches it.

The artifact (rules/routing-rules.json) is produced offline from scenario
definitions. Shape:

    {
      "metadata": {"version", "generated", "total_scenarios", "categories": [...]},
      "routing": {
        "default_priority": 100,
        "fallback_intent": "interact.chatResponse",
        "rules": {"<category>.<name>": {...rule...}}
      }
    }

The store is an explicitly owned object (one per app, held on app.state)
rather than a module-level cache. The parsed table is read-only until
clear_cache() is called.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

from config import DEFAULT_PRIORITY
from errors import ConfigNotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoutingRule:
    intent: str
    category: str
    title: str = ""
    description: str = ""
    priority: int = 100
    enabled: bool = True
    triggers: tuple[str, ...] = ()
    examples: tuple[str, ...] = ()
    code_path: str = ""
    scenario_path: str = ""

    def summary(self) -> dict:
        """Public view used by the intent listing endpoints."""
        return {
            "intent": self.intent,
            "category": self.category,
            "title": self.title,
            "description": self.description,
            "triggers": list(self.triggers),
            "priority": self.priority,
        }

    def to_dict(self) -> dict:
        data = self.summary()
        data.update({
            "enabled": self.enabled,
            "examples": list(self.examples),
            "paths": {"code": self.code_path, "scenario": self.scenario_path},
        })
        return data


@dataclass(frozen=True)
class RoutingTable:
    version: str
    generated_at: str
    total_scenarios: int
    categories: tuple[str, ...]
    rules: Mapping[str, RoutingRule]
    fallback_intent: Optional[str] = None
    default_priority: int = 100

    def enabled_rules(self) -> list[RoutingRule]:
        return [r for r in self.rules.values() if r.enabled]

    def fallback_rule(self) -> Optional[RoutingRule]:
        if not self.fallback_intent:
            return None
        rule = self.rules.get(self.fallback_intent)
        if rule is None or not rule.enabled:
            return None
        return rule


def _parse_rule(intent: str, raw: dict, default_priority: int) -> RoutingRule:
    if not isinstance(raw, dict):
        raise ValueError(f"rule {intent!r} is not an object")
    category = raw.get("category") or intent.split(".", 1)[0]
    paths = raw.get("paths") or {}
    priority = raw.get("priority")
    return RoutingRule(
        intent=intent,
        category=str(category),
        title=raw.get("title") or intent.split(".")[-1],
        description=raw.get("description", ""),
        priority=int(priority) if priority is not None else default_priority,
        enabled=raw.get("enabled", True) is not False,
        triggers=tuple(str(t) for t in raw.get("triggers") or []),
        examples=tuple(str(e) for e in raw.get("examples") or []),
        code_path=paths.get("code", ""),
        scenario_path=paths.get("scenario", ""),
    )


def parse_routing_table(raw: dict, default_priority: int = DEFAULT_PRIORITY) -> RoutingTable:
    """Build a RoutingTable from the decoded artifact JSON.

    ``default_priority`` applies when the artifact does not declare its own.
    """
    metadata = raw.get("metadata") or {}
    routing = raw.get("routing") or {}
    default_priority = int(routing.get("default_priority", default_priority))

    rules = {}
    for intent, rule_raw in (routing.get("rules") or {}).items():
        # JSON object keys are unique already; intent keys stay unique here
        rules[intent] = _parse_rule(intent, rule_raw, default_priority)

    return RoutingTable(
        version=str(metadata.get("version", "")),
        generated_at=str(metadata.get("generated", "")),
        total_scenarios=int(metadata.get("total_scenarios", len(rules))),
        categories=tuple(metadata.get("categories") or sorted({r.category for r in rules.values()})),
        rules=MappingProxyType(rules),
        fallback_intent=routing.get("fallback_intent"),
        default_priority=default_priority,
    )


class RoutingRuleStore:
    """Loads, caches and exposes read-only views of the routing table."""

    def __init__(self, rules_path: Path, default_priority: int = DEFAULT_PRIORITY):
        self.rules_path = Path(rules_path)
        self.default_priority = default_priority
        self._table: Optional[RoutingTable] = None
        self.load_count = 0

    @property
    def is_loaded(self) -> bool:
        return self._table is not None

    def load(self) -> RoutingTable:
        """Return the cached table, parsing the artifact on first access.

        Concurrent cold loads may both parse the file; parsing is
        deterministic, so whichever assignment lands last is equivalent.
        """
        if self._table is not None:
            return self._table

        if not self.rules_path.exists():
            raise ConfigNotFound(
                f"Routing rules not found at {self.rules_path}. "
                "Run the routing-rules generator first.")
        try:
            raw = json.loads(self.rules_path.read_text(encoding="utf-8"))
            table = parse_routing_table(raw, self.default_priority)
        except (OSError, ValueError, TypeError, AttributeError) as e:
            raise ConfigNotFound(f"Failed to load routing rules: {e}") from e

        self._table = table
        self.load_count += 1
        logger.info("Routing table loaded: version=%s, rules=%d, fallback=%s",
                    table.version, len(table.rules), table.fallback_intent)
        return table

    def clear_cache(self):
        """Drop the cached table; the next access re-reads the artifact."""
        self._table = None
        logger.info("Routing table cache cleared")

    def get_rule(self, intent: str) -> Optional[RoutingRule]:
        return self.load().rules.get(intent)

    def get_available_intents(self) -> list[dict]:
        """Enabled intents, highest priority first (intent key breaks ties)."""
        table = self.load()
        rules = sorted(table.enabled_rules(), key=lambda r: (-r.priority, r.intent))
        return [r.summary() for r in rules]

    def get_intents_by_category(self, category: str) -> list[dict]:
        return [i for i in self.get_available_intents() if i["category"] == category]

    def get_status(self) -> dict:
        try:
            table = self.load()
        except ConfigNotFound as e:
            return {"status": "error", "error": str(e), "cacheLoaded": False}
        return {
            "version": table.version,
            "generated": table.generated_at,
            "totalScenarios": table.total_scenarios,
            "enabledScenarios": len(table.enabled_rules()),
            "categories": list(table.categories),
            "fallbackIntent": table.fallback_intent,
            "cacheLoaded": self.is_loaded,
            "status": "ready",
        }
