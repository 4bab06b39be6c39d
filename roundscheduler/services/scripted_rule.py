"""
User-authored rules.

A scripted rule is a small restricted Python program supplied with the rule
configuration. It is checked when the rule is created, then executed on every
evaluation against a read-only view of the schedule with an execution budget.

Two script shapes are accepted::

    def evaluate(schedule, helpers):
        return [{"description": "...", "matches": [...]}]

or a bare body that appends to the pre-bound ``violations`` list.
"""

import ast
import sys
import time
import types
from collections.abc import Mapping
from dataclasses import dataclass
from typing import List, Optional, Tuple

from roundscheduler.models import ActivityType, Division, Match, Schedule, Team, Violation
from roundscheduler.services.helpers import ScheduleHelpers
from roundscheduler.services.rules import ScheduleRule
from roundscheduler.core.config import SCRIPT_MAX_STEPS, SCRIPT_TIMEOUT_SECONDS
from roundscheduler.core.exceptions import ScriptCompilationError, ScriptedRuleError


FORBIDDEN_NAMES = {
    "exec", "eval", "open", "compile", "globals", "locals", "vars", "getattr", "setattr",
    "delattr", "input", "breakpoint", "memoryview", "type", "object", "super",
}

# str.format can walk attributes ("{0.__class__}"), so it is not reachable from scripts.
# The padding methods take an output size and would build it in one C call.
FORBIDDEN_ATTRIBUTES = {
    "format", "format_map", "mro", "gi_frame", "f_globals", "f_locals",
    "ljust", "rjust", "center", "zfill", "expandtabs",
}

# Integer results larger than this are refused by the arithmetic guards
MAX_INT_BITS = 4096

# Operators that can build a huge value in a single step; rewritten into guarded calls
GUARDED_OPERATORS = {ast.Mult: "_checked_mul", ast.Pow: "_checked_pow", ast.LShift: "_checked_lshift"}

HELPER_NAMES = tuple(name for name in vars(ScheduleHelpers) if not name.startswith("_"))

SAFE_BUILTINS = {
    "abs": abs,
    "all": all,
    "any": any,
    "bool": bool,
    "dict": dict,
    "enumerate": enumerate,
    "filter": filter,
    "float": float,
    "int": int,
    "isinstance": isinstance,
    "len": len,
    "list": list,
    "map": map,
    "max": max,
    "min": min,
    "reversed": reversed,
    "round": round,
    "set": set,
    "sorted": sorted,
    "str": str,
    "sum": sum,
    "tuple": tuple,
    "zip": zip,
    "Exception": Exception,
    "ValueError": ValueError,
    "KeyError": KeyError,
}


class _BudgetExceeded(BaseException):
    """Aborts a script that ran out of steps or time. Not catchable by ``except Exception``."""


@dataclass(frozen=True)
class MatchView:
    """Read-only match handed to scripts. ``index`` is the position in the schedule."""

    index: int
    team1: Team
    team2: Team
    time_slot: int
    field: str
    division: Division
    referee_team: Optional[Team]
    activity_type: ActivityType
    locked: bool

    @classmethod
    def from_match(cls, index: int, match: Match) -> "MatchView":
        return cls(
            index=index,
            team1=match.team1,
            team2=match.team2,
            time_slot=match.time_slot,
            field=match.field,
            division=match.division,
            referee_team=match.referee_team,
            activity_type=match.activity_type,
            locked=match.locked,
        )

    def is_special_activity(self) -> bool:
        return self.activity_type != ActivityType.REGULAR

    def involves_team(self, team_name: str) -> bool:
        return self.team1.name == team_name or self.team2.name == team_name

    def get_all_involved_teams(self) -> List[Team]:
        teams = [self.team1, self.team2]
        if self.referee_team is not None:
            teams.append(self.referee_team)
        unique = []
        for team in teams:
            if all(team.name != other.name for other in unique):
                unique.append(team)
        return unique


@dataclass(frozen=True)
class ScheduleView:
    """Read-only schedule handed to scripts."""

    matches: Tuple[MatchView, ...]

    @classmethod
    def from_schedule(cls, schedule: Schedule) -> "ScheduleView":
        return cls(matches=tuple(MatchView.from_match(i, m) for i, m in enumerate(schedule.matches)))

    def get_team_matches(self, team_name: str) -> List[MatchView]:
        return [match for match in self.matches if match.involves_team(team_name)]

    def get_matches_by_time_slot(self, time_slot: int) -> List[MatchView]:
        return [match for match in self.matches if match.time_slot == time_slot]

    def get_matches_by_field(self, field_name: str) -> List[MatchView]:
        return [match for match in self.matches if match.field == field_name]

    def get_matches_by_division(self, division) -> List[MatchView]:
        value = division.value if isinstance(division, Division) else division
        return [match for match in self.matches if match.division.value == value]

    def time_slots(self) -> List[int]:
        return sorted({match.time_slot for match in self.matches})

    def fields(self) -> List[str]:
        seen = []
        for match in self.matches:
            if match.field not in seen:
                seen.append(match.field)
        return seen


class _ScriptChecker(ast.NodeVisitor):
    """Rejects constructs scripts are not allowed to use."""

    def __init__(self, rule_name: str):
        self.rule_name = rule_name

    def fail(self, node, message):
        line = getattr(node, "lineno", "?")
        raise ScriptCompilationError(f"Scripted rule '{self.rule_name}', line {line}: {message}")

    def visit_Import(self, node):
        self.fail(node, "imports are not allowed")

    def visit_ImportFrom(self, node):
        self.fail(node, "imports are not allowed")

    def visit_Global(self, node):
        self.fail(node, "'global' is not allowed")

    def visit_Nonlocal(self, node):
        self.fail(node, "'nonlocal' is not allowed")

    def visit_ExceptHandler(self, node):
        if node.type is None:
            self.fail(node, "bare 'except:' is not allowed")
        self.generic_visit(node)

    def visit_Name(self, node):
        if node.id.startswith("_"):
            self.fail(node, f"name '{node.id}' is not allowed")
        if node.id in FORBIDDEN_NAMES:
            self.fail(node, f"'{node.id}' is not allowed")
        self.generic_visit(node)

    def visit_Attribute(self, node):
        if node.attr.startswith("_") or node.attr in FORBIDDEN_ATTRIBUTES:
            self.fail(node, f"attribute '{node.attr}' is not allowed")
        if isinstance(node.ctx, (ast.Store, ast.Del)):
            self.fail(node, f"assigning or deleting attribute '{node.attr}' is not allowed")
        self.generic_visit(node)

    def visit_AugAssign(self, node):
        if type(node.op) in GUARDED_OPERATORS and not isinstance(node.target, ast.Name):
            self.fail(node, "in-place '*', '**' and '<<' only work on plain names")
        self.generic_visit(node)

    def visit_FunctionDef(self, node):
        if node.name.startswith("_"):
            self.fail(node, f"function name '{node.name}' is not allowed")
        self.generic_visit(node)

    def visit_arg(self, node):
        if node.arg.startswith("_"):
            self.fail(node, f"argument '{node.arg}' is not allowed")
        self.generic_visit(node)


class _OperatorGuard(ast.NodeTransformer):
    """Rewrites ``a * b``, ``a ** b`` and ``a << b`` into calls to the size-checked helpers."""

    def _call(self, op, left, right, node):
        guard = ast.Name(id=GUARDED_OPERATORS[type(op)], ctx=ast.Load())
        return ast.copy_location(ast.Call(func=guard, args=[left, right], keywords=[]), node)

    def visit_BinOp(self, node):
        self.generic_visit(node)
        if type(node.op) not in GUARDED_OPERATORS:
            return node
        return self._call(node.op, node.left, node.right, node)

    def visit_AugAssign(self, node):
        self.generic_visit(node)
        if type(node.op) not in GUARDED_OPERATORS:
            return node
        current = ast.Name(id=node.target.id, ctx=ast.Load())
        value = self._call(node.op, current, node.value, node)
        return ast.copy_location(ast.Assign(targets=[node.target], value=value), node)


def _too_large(message):
    return _BudgetExceeded(f"{message} exceeds the size limit for scripted rules")


def _make_guards(max_length: int):
    """Arithmetic and range helpers bound to one run's size limit."""

    def checked_mul(left, right):
        if isinstance(left, int) and isinstance(right, int):
            if left.bit_length() + right.bit_length() > MAX_INT_BITS:
                raise _too_large("integer product")
        else:
            for sequence, count in ((left, right), (right, left)):
                if isinstance(sequence, (str, bytes, list, tuple)) and isinstance(count, int):
                    if len(sequence) * count > max_length:
                        raise _too_large("repeated sequence")
        return left * right

    def checked_pow(base, exponent):
        if isinstance(base, int) and isinstance(exponent, int) and exponent > 0:
            if abs(base).bit_length() * exponent > MAX_INT_BITS:
                raise _too_large("integer power")
        return base ** exponent

    def checked_lshift(value, shift):
        if isinstance(value, int) and isinstance(shift, int) and value.bit_length() + shift > MAX_INT_BITS:
            raise _too_large("shifted integer")
        return value << shift

    def bounded_range(*args):
        result = range(*args)
        if len(result) > max_length:
            raise _too_large(f"range of {len(result)} items")
        return result

    return {
        "_checked_mul": checked_mul,
        "_checked_pow": checked_pow,
        "_checked_lshift": checked_lshift,
        "range": bounded_range,
    }


def compile_script(code: str, rule_name: str):
    """
    Parse and check a rule script.

    Args:
        code: Script source
        rule_name: Used in error messages

    Returns:
        Compiled code object

    Raises:
        ScriptCompilationError: If the script is empty, invalid or uses a forbidden construct
    """
    if not code or not code.strip():
        raise ScriptCompilationError(f"Scripted rule '{rule_name}' has no code")
    try:
        tree = ast.parse(code, filename=f"<rule {rule_name}>", mode="exec")
    except SyntaxError as e:
        raise ScriptCompilationError(f"Scripted rule '{rule_name}', line {e.lineno}: {e.msg}") from e

    for node in ast.walk(tree):
        if isinstance(node, (ast.AsyncFunctionDef, ast.Await, ast.Yield, ast.YieldFrom)):
            raise ScriptCompilationError(
                f"Scripted rule '{rule_name}', line {node.lineno}: generators and coroutines are not allowed"
            )
    _ScriptChecker(rule_name).visit(tree)
    tree = ast.fix_missing_locations(_OperatorGuard().visit(tree))
    return compile(tree, f"<rule {rule_name}>", "exec")


class ScriptedRule(ScheduleRule):
    """
    Rule whose evaluation body is supplied at configuration time.

    Failures while running the script (exceptions, exhausted budget, malformed
    results) are raised as ScriptedRuleError; the scorer reports them as warnings.
    """

    default_priority = 5

    def __init__(self, name: str, code: str, priority: Optional[int] = None, enabled: bool = True,
                 rule_id: Optional[str] = None, max_steps: int = SCRIPT_MAX_STEPS,
                 timeout_seconds: float = SCRIPT_TIMEOUT_SECONDS):
        self.name = name
        super().__init__(priority, enabled)
        self.rule_id = rule_id
        self.code = code
        self.max_steps = max_steps
        self.timeout_seconds = timeout_seconds
        self._compiled = compile_script(code, name)

    def evaluate(self, schedule: Schedule) -> List[Violation]:
        view = ScheduleView.from_schedule(schedule)
        try:
            raw = self._run(view)
        except ScriptedRuleError:
            raise
        except _BudgetExceeded as e:
            raise ScriptedRuleError(self.name, str(e)) from None
        except Exception as e:
            raise ScriptedRuleError(self.name, f"{type(e).__name__}: {e}") from e
        return self._convert(raw, schedule)

    def _run(self, view: ScheduleView):
        guards = _make_guards(self.max_steps)
        helpers = types.SimpleNamespace(**{name: getattr(ScheduleHelpers, name) for name in HELPER_NAMES})
        namespace = {
            "__builtins__": dict(SAFE_BUILTINS, range=guards.pop("range")),
            "schedule": view,
            "helpers": helpers,
            "violations": [],
            **guards,
        }

        steps = 0
        deadline = time.monotonic() + self.timeout_seconds
        max_steps = self.max_steps

        def tracer(frame, event, arg):
            nonlocal steps
            steps += 1
            if steps > max_steps:
                raise _BudgetExceeded(f"execution budget of {max_steps} steps exceeded")
            if time.monotonic() > deadline:
                raise _BudgetExceeded(f"execution time limit of {self.timeout_seconds}s exceeded")
            return tracer

        previous = sys.gettrace()
        sys.settrace(tracer)
        try:
            exec(self._compiled, namespace)
            evaluate = namespace.get("evaluate")
            if callable(evaluate):
                return evaluate(view, helpers)
            return namespace["violations"]
        finally:
            sys.settrace(previous)

    def _convert(self, raw, schedule: Schedule) -> List[Violation]:
        if raw is None:
            return []
        if not isinstance(raw, (list, tuple)):
            raise ScriptedRuleError(self.name, f"expected a list of violations, got {type(raw).__name__}")

        violations = []
        for item in raw:
            if isinstance(item, Violation):
                description = item.description
                matches = item.matches
                level = None
            elif isinstance(item, Mapping):
                if "description" not in item:
                    raise ScriptedRuleError(self.name, "violation is missing a description")
                description = str(item["description"])
                matches = item.get("matches") or []
                level = item.get("level")
            else:
                raise ScriptedRuleError(self.name, f"unsupported violation type {type(item).__name__}")
            violations.append(self.create_violation(
                description, [self._resolve_match(m, schedule) for m in matches], level
            ))
        return violations

    def _resolve_match(self, match, schedule: Schedule) -> Match:
        if isinstance(match, MatchView) and 0 <= match.index < len(schedule.matches):
            return schedule.matches[match.index]
        if isinstance(match, Match) and any(m is match for m in schedule.matches):
            return match
        raise ScriptedRuleError(self.name, f"violation references an unknown match: {match!r}")
