"""
Flow manager: the request-time pipeline from user text to workflow result.

    validate -> match intent -> build context -> execute workflow -> unify

Every failure is returned as a structured response with an error code; no
exception escapes handle_user_input() or dispatch_intent().
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from config import LOG_PREVIEW_CHARS
from core.dispatcher import WorkflowDispatcher
from core.matcher import IntentMatcher, MatchResult
from core.routing_rules import RoutingRule, RoutingRuleStore
from errors import ConfigNotFound, ErrorCode, InvalidInput

logger = logging.getLogger(__name__)


def _error(code: ErrorCode, message: str, **extra) -> dict:
    data = {"success": False, "error": code.value, "message": message}
    data.update(extra)
    return data


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class FlowManager:
    """Owns the matcher and dispatcher for one routing-rule store."""

    def __init__(self, store: RoutingRuleStore, dispatcher: WorkflowDispatcher):
        self.store = store
        self.matcher = IntentMatcher(store)
        self.dispatcher = dispatcher

    def _build_context(self, text: str, match: MatchResult, options: dict) -> dict:
        context = {
            "input": text,
            "intent": match.intent,
            "matchedTriggers": list(match.matched_triggers),
            "score": match.score,
            "isFallback": match.is_fallback,
            "rule": match.rule.to_dict(),
            "timestamp": _now_iso(),
        }
        context.update(options)
        return context

    def _unify(self, rule: RoutingRule, context: dict, workflow_result, started: float,
               match: Optional[MatchResult] = None) -> dict:
        public_context = {k: v for k, v in context.items() if k != "rule"}
        return {
            "success": workflow_result.success,
            "intent": rule.intent,
            "category": rule.category,
            "title": rule.title,
            "description": rule.description,
            "matchedTriggers": list(match.matched_triggers) if match else [],
            "score": match.score if match else None,
            "isFallback": match.is_fallback if match else False,
            "workflowPath": rule.code_path,
            "scenarioPath": rule.scenario_path,
            "result": workflow_result.result if workflow_result.success else None,
            "error": workflow_result.error.value if workflow_result.error else None,
            "message": workflow_result.message,
            "executionTime": round((time.perf_counter() - started) * 1000, 2),
            "context": public_context,
        }

    async def handle_user_input(self, text, options: Optional[dict] = None) -> dict:
        """Match free text to an intent and run its workflow."""
        started = time.perf_counter()
        options = options or {}

        try:
            match = self.matcher.match_intent(text)
        except InvalidInput as e:
            return _error(ErrorCode.INVALID_INPUT, str(e))
        except ConfigNotFound as e:
            logger.error("Routing table unavailable: %s", e)
            return _error(ErrorCode.CONFIG_NOT_FOUND, str(e))

        if match is None:
            return _error(ErrorCode.NO_INTENT_MATCHED,
                          "No matching workflow found for the input", input=text)

        logger.info("Dispatching '%s' -> %s", text.strip()[:LOG_PREVIEW_CHARS], match.intent)
        context = self._build_context(text, match, options)
        workflow_result = await self.dispatcher.execute_workflow(match.rule.code_path, context)
        return self._unify(match.rule, context, workflow_result, started, match)

    async def dispatch_intent(self, intent, context: Optional[dict] = None) -> dict:
        """Run a named intent's workflow directly, skipping text matching."""
        started = time.perf_counter()
        if not isinstance(intent, str) or not intent.strip():
            return _error(ErrorCode.INVALID_INPUT, "Intent must be a non-empty string")

        try:
            rule = self.store.get_rule(intent.strip())
        except ConfigNotFound as e:
            logger.error("Routing table unavailable: %s", e)
            return _error(ErrorCode.CONFIG_NOT_FOUND, str(e))

        if rule is None or not rule.enabled:
            return _error(ErrorCode.NO_INTENT_MATCHED,
                          f"No workflow mapped for intent: {intent}", intent=intent)

        full_context = {
            "intent": rule.intent,
            "isFallback": False,
            "rule": rule.to_dict(),
            "timestamp": _now_iso(),
        }
        full_context.update(context or {})
        workflow_result = await self.dispatcher.execute_workflow(rule.code_path, full_context)
        return self._unify(rule, full_context, workflow_result, started)
