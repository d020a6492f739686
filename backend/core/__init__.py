"""
Core package: intent resolution and workflow dispatch engine.

Structure:
    routing_rules.py  RoutingRuleStore, RoutingTable, RoutingRule
    matcher.py        score_rule() and IntentMatcher
    dispatcher.py     WorkflowDispatcher and WorkflowResult
    flow_manager.py   FlowManager: validate, match, dispatch, unify

Usage:
    from core import FlowManager, RoutingRuleStore, WorkflowDispatcher
"""

from core.dispatcher import WorkflowDispatcher, WorkflowResult
from core.flow_manager import FlowManager
from core.matcher import IntentMatcher, MatchResult, score_rule
from core.routing_rules import RoutingRule, RoutingRuleStore, RoutingTable

__all__ = [
    "FlowManager",
    "IntentMatcher",
    "MatchResult",
    "RoutingRule",
    "RoutingRuleStore",
    "RoutingTable",
    "WorkflowDispatcher",
    "WorkflowResult",
    "score_rule",
]
