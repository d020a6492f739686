"""
Keyword intent matcher.

Every enabled rule is scored against the input text:

    10 x triggers contained in the input (case-insensitive substring)
  +  2 x input words (len > 2) that appear as whole words in an example,
         summed over all examples
  +  5 if the category name is contained in the input

Zero-score rules are dropped. Candidates rank by score, then priority, then
intent key ascending, so equal score-and-priority ties are deterministic.

Trigger and category checks are plain substring tests, not tokenized: a
short trigger such as "ai" also fires inside "email". This is the current
product behaviour; tightening it to word boundaries changes which intents
win and must be decided on purpose.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from config import (
    CATEGORY_BONUS, EXAMPLE_WORD_MIN_LENGTH, EXAMPLE_WORD_WEIGHT, TRIGGER_WEIGHT,
)
from core.routing_rules import RoutingRule, RoutingRuleStore, RoutingTable
from errors import InvalidInput

logger = logging.getLogger(__name__)


@dataclass
class MatchResult:
    intent: str
    score: int
    matched_triggers: list[str] = field(default_factory=list)
    priority: int = 0
    is_fallback: bool = False
    rule: Optional[RoutingRule] = None

    def to_dict(self) -> dict:
        return {
            "intent": self.intent,
            "score": self.score,
            "matchedTriggers": list(self.matched_triggers),
            "priority": self.priority,
            "isFallback": self.is_fallback,
        }


def validate_input(text) -> str:
    """Return the stripped text, or raise InvalidInput."""
    if not isinstance(text, str) or not text.strip():
        raise InvalidInput("User input is required and must be a non-empty string")
    return text.strip()


def score_rule(text: str, rule: RoutingRule) -> tuple[int, list[str]]:
    """Score one rule against the input. Pure; returns (score, matched triggers)."""
    lowered = text.lower()
    input_words = lowered.split()
    score = 0

    matched = []
    for trigger in rule.triggers:
        if trigger and trigger.lower() in lowered:
            score += TRIGGER_WEIGHT
            matched.append(trigger)

    for example in rule.examples:
        example_words = set(example.lower().split())
        common = sum(
            1 for word in input_words
            if len(word) >= EXAMPLE_WORD_MIN_LENGTH and word in example_words
        )
        score += common * EXAMPLE_WORD_WEIGHT

    if rule.category and rule.category.lower() in lowered:
        score += CATEGORY_BONUS

    return score, matched


def rank_candidates(text: str, rules) -> list[MatchResult]:
    """All positive-scoring rules, best first."""
    candidates = []
    for rule in rules:
        if not rule.enabled:
            continue
        score, matched = score_rule(text, rule)
        if score > 0:
            candidates.append(MatchResult(
                intent=rule.intent,
                score=score,
                matched_triggers=matched,
                priority=rule.priority,
                rule=rule,
            ))
    candidates.sort(key=lambda m: (-m.score, -m.priority, m.intent))
    return candidates


def select_match(text: str, table: RoutingTable) -> Optional[MatchResult]:
    """Pick the winning rule, else the fallback rule, else None."""
    text = validate_input(text)
    candidates = rank_candidates(text, table.rules.values())
    if candidates:
        return candidates[0]

    fallback = table.fallback_rule()
    if fallback is None:
        return None
    return MatchResult(
        intent=fallback.intent,
        score=0,
        matched_triggers=[],
        priority=fallback.priority,
        is_fallback=True,
        rule=fallback,
    )


class IntentMatcher:
    """Matches free text against the table held by a RoutingRuleStore."""

    def __init__(self, store: RoutingRuleStore):
        self.store = store

    def match_intent(self, text: str) -> Optional[MatchResult]:
        table = self.store.load()
        match = select_match(text, table)
        if match is None:
            logger.info("No intent matched and no fallback configured")
        elif match.is_fallback:
            logger.info("No rule scored; using fallback intent %s", match.intent)
        else:
            logger.info("Matched intent %s (score=%d, triggers=%s)",
                        match.intent, match.score, match.matched_triggers)
        return match
