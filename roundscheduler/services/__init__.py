"""
Services for rule evaluation, schedule optimization and schedule loading.
"""

from .helpers import ScheduleHelpers
from .rules import ScheduleRule
from .scripted_rule import ScriptedRule
from .scorer import ScheduleScorer, evaluate, generate_report
from .neighbors import NeighborGenerator
from .strategies import get_strategy, resolve_strategy, list_strategies
from .optimizer import ScheduleOptimizer, OptimizerState, optimize, deep_copy
from .registry import (
    RuleConfiguration,
    create_rule_from_configuration,
    create_rules_from_configurations,
    get_default_rules
)
from .loader import load_schedule_payload

__all__ = [
    "ScheduleHelpers",
    "ScheduleRule",
    "ScriptedRule",
    "ScheduleScorer",
    "evaluate",
    "generate_report",
    "NeighborGenerator",
    "get_strategy",
    "resolve_strategy",
    "list_strategies",
    "ScheduleOptimizer",
    "OptimizerState",
    "optimize",
    "deep_copy",
    "RuleConfiguration",
    "create_rule_from_configuration",
    "create_rules_from_configurations",
    "get_default_rules",
    "load_schedule_payload"
]
