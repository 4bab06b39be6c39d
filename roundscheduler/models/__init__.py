"""
Data models for the scheduling system.
"""

from .models import (
    Division,
    ActivityType,
    Player,
    Team,
    Match,
    Violation,
    Schedule,
    EvaluationResult,
    OptimizationProgress,
    TeamsMap,
    level_for_priority
)

__all__ = [
    "Division",
    "ActivityType",
    "Player",
    "Team",
    "Match",
    "Violation",
    "Schedule",
    "EvaluationResult",
    "OptimizationProgress",
    "TeamsMap",
    "level_for_priority"
]
