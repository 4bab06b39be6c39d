"""
Schedule scoring.

The score of a schedule is the sum, over every violation, of the weight of the
rule that produced it. Lower is better and 0 means no violations.
"""

from collections import defaultdict
from typing import Callable, Dict, List, Optional, Sequence

from roundscheduler.models import EvaluationResult, Schedule
from roundscheduler.services.rules import ScheduleRule
from roundscheduler.core.config import SCORE_WEIGHTING
from roundscheduler.core.exceptions import RuleConfigurationError, ScriptedRuleError
from roundscheduler.core.logging_config import get_logger

logger = get_logger(__name__)

WeightFunction = Callable[[int], float]


def linear_weight(priority: int) -> float:
    return priority


def squared_weight(priority: int) -> float:
    return priority * priority


def exponential_weight(priority: int) -> float:
    return 2 ** (priority - 1)


WEIGHT_FUNCTIONS: Dict[str, WeightFunction] = {
    "linear": linear_weight,
    "squared": squared_weight,
    "exponential": exponential_weight,
}


def get_weight_function(name: str) -> WeightFunction:
    try:
        return WEIGHT_FUNCTIONS[name]
    except KeyError:
        raise RuleConfigurationError(
            f"Unknown score weighting '{name}' (expected one of: {', '.join(WEIGHT_FUNCTIONS)})"
        ) from None


class ScheduleScorer:
    """
    Evaluates schedules against a rule set.

    Scripted rule failures never abort a scoring pass: the failing rule contributes
    no violations and the failure is returned as a warning.
    """

    def __init__(self, weight_function: Optional[WeightFunction] = None):
        self.weight_function = weight_function or get_weight_function(SCORE_WEIGHTING)
        self._reported_failures = set()

    def evaluate(self, schedule: Schedule, rules: Sequence[ScheduleRule]) -> EvaluationResult:
        """
        Score a schedule and write the score and violations back onto it.

        Args:
            schedule: Schedule to evaluate
            rules: Rules to apply; disabled rules are skipped

        Returns:
            EvaluationResult with score, violations and warnings

        Raises:
            ScheduleIntegrityError: If a match references a missing team
        """
        schedule.validate_structure()

        violations = []
        warnings = []
        score = 0

        for rule in rules:
            if not rule.enabled:
                continue
            try:
                rule_violations = rule.evaluate(schedule)
            except ScriptedRuleError as e:
                warnings.append(str(e))
                self._log_failure(rule, e)
                continue

            weight = self.weight_function(rule.priority)
            score += weight * len(rule_violations)
            violations.extend(rule_violations)

        schedule.score = score
        schedule.violations = violations
        return EvaluationResult(score=score, violations=violations, warnings=warnings)

    def _log_failure(self, rule: ScheduleRule, error: ScriptedRuleError):
        key = getattr(rule, "rule_id", None) or rule.name
        if key in self._reported_failures:
            logger.debug(str(error))
        else:
            self._reported_failures.add(key)
            logger.warning(f"{error} (further failures of this rule are logged at debug level)")


def evaluate(schedule: Schedule, rules: Sequence[ScheduleRule],
             weight_function: Optional[WeightFunction] = None) -> EvaluationResult:
    """Score a schedule with a one-off scorer."""
    return ScheduleScorer(weight_function).evaluate(schedule, rules)


def generate_report(schedule: Schedule) -> str:
    """
    Plain-text summary of an evaluated schedule.

    Args:
        schedule: Schedule whose score and violations are already computed

    Returns:
        Report with the score, improvement and violations grouped by rule
    """
    lines = ["=" * 60, "SCHEDULE REPORT", "=" * 60]
    lines.append(f"Matches: {len(schedule.matches)}")
    lines.append(f"Score: {schedule.score}")
    if schedule.original_score is not None:
        improvement = schedule.original_score - schedule.score
        percent = (improvement / schedule.original_score * 100) if schedule.original_score else 0
        lines.append(f"Original score: {schedule.original_score}")
        lines.append(f"Improvement: {improvement} ({percent:.1f}%)")
    lines.append(f"Violations: {len(schedule.violations)}")

    by_rule: Dict[str, List] = defaultdict(list)
    for violation in schedule.violations:
        by_rule[violation.rule_name].append(violation)

    for rule_name, rule_violations in sorted(by_rule.items(), key=lambda item: -item[1][0].priority):
        lines.append("")
        lines.append(f"{rule_name} (priority {rule_violations[0].priority}): {len(rule_violations)}")
        for violation in rule_violations:
            lines.append(f"  [{violation.level}] {violation.description}")

    lines.append("=" * 60)
    return "\n".join(lines)
