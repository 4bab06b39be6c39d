"""
Tests for the background optimization task body.
"""

import pytest

from roundscheduler.tasks.optimizer_tasks import run_optimization
from roundscheduler.core.exceptions import ScheduleImportError


def payload(**overrides):
    data = {
        "teams": {"mixed": ["A", "B", "C"]},
        "matches": [
            [1, "mixed", "Court 1", "A", "B"],
            [2, "mixed", "Court 1", "A", "C"],
        ],
        "rules": [{"id": "back_to_back", "priority": 5}],
        "iterations": 500,
        "time_slots": [1, 2, 3],
        "seed": 7,
    }
    data.update(overrides)
    return data


def test_run_optimization_returns_serialized_schedule():
    reports = []
    result = run_optimization(payload(), on_progress=lambda p: reports.append(p.to_dict()))

    assert result["success"]
    assert result["iterations"] == 500
    assert result["schedule"]["original_score"] == 5
    assert result["schedule"]["score"] == 0
    assert reports[0]["iteration"] == 0
    assert reports[-1]["progress"] == 1.0
    assert reports[-1]["violation_count"] == 0


def test_run_optimization_defaults_to_builtin_rules():
    result = run_optimization(payload(rules=None, iterations=0))
    assert result["iterations"] == 0
    assert result["strategy"] == "simulated-annealing"


def test_run_optimization_with_empty_rule_list_uses_no_rules():
    result = run_optimization(payload(rules=[], iterations=0))
    assert result["schedule"]["original_score"] == 0
    assert result["schedule"]["score"] == 0
    assert result["schedule"]["violations"] == []


def test_run_optimization_propagates_import_errors():
    with pytest.raises(ScheduleImportError):
        run_optimization(payload(matches=[[1, "mixed", "Court 1", "A", "Nobody"]]))
