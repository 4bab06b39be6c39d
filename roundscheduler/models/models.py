"""
Data models for the Round Scheduler optimization service.
Defines the entities (players, teams, matches), schedules and rule violations.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple
from enum import Enum

from roundscheduler.core.config import ACTIVITY_PLACEHOLDER, CRITICAL_PRIORITY
from roundscheduler.core.exceptions import ScheduleIntegrityError


class Division(Enum):
    MIXED = "mixed"
    GENDERED = "gendered"
    CLOTH = "cloth"


class ActivityType(Enum):
    REGULAR = "REGULAR"
    SETUP = "SETUP"
    PACKING_DOWN = "PACKING_DOWN"


@dataclass(frozen=True)
class Player:
    name: str
    mixed_team: Optional[str] = None
    gendered_team: Optional[str] = None
    cloth_team: Optional[str] = None

    @classmethod
    def from_row(cls, row: List[Optional[str]]) -> "Player":
        """Build a player from a [name, mixed team, gendered team, cloth team] row."""
        cells = [(cell or "").strip() or None for cell in list(row) + [None] * (4 - len(row))]
        return cls(
            name=cells[0] or "",
            mixed_team=cells[1],
            gendered_team=cells[2],
            cloth_team=cells[3],
        )

    def team_for(self, division: Division) -> Optional[str]:
        if division == Division.MIXED:
            return self.mixed_team
        if division == Division.GENDERED:
            return self.gendered_team
        return self.cloth_team

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "name": self.name,
            "mixed_team": self.mixed_team,
            "gendered_team": self.gendered_team,
            "cloth_team": self.cloth_team,
        }


@dataclass(frozen=True)
class Team:
    name: str
    division: Division
    players: Tuple[Player, ...] = ()

    def __hash__(self):
        return hash((self.name, self.division))

    def __eq__(self, other):
        if isinstance(other, Team):
            return self.name == other.name and self.division == other.division
        return False

    def has_player(self, player_name: str) -> bool:
        return any(player.name == player_name for player in self.players)


@dataclass(eq=False)
class Match:
    team1: Team
    team2: Team
    time_slot: int
    field: str
    division: Division
    referee_team: Optional[Team] = None
    activity_type: ActivityType = ActivityType.REGULAR
    locked: bool = False

    def __str__(self):
        if self.is_special_activity():
            return f"{self.activity_type.value} ({self.team1.name}) in slot {self.time_slot} on {self.field}"
        return f"{self.team1.name} vs {self.team2.name} in slot {self.time_slot} on {self.field}"

    def is_special_activity(self) -> bool:
        return self.activity_type != ActivityType.REGULAR

    def involves_team(self, team_name: str) -> bool:
        return self.team1.name == team_name or self.team2.name == team_name

    def get_all_involved_teams(self) -> List[Team]:
        """Playing teams and the referee, deduplicated by name."""
        teams = [self.team1, self.team2]
        if self.referee_team is not None:
            teams.append(self.referee_team)
        unique = []
        seen = set()
        for team in teams:
            if team.name not in seen:
                seen.add(team.name)
                unique.append(team)
        return unique

    def to_dict(self) -> Dict[str, Any]:
        return {
            "team1": self.team1.name,
            "team2": self.team2.name,
            "time_slot": self.time_slot,
            "field": self.field,
            "division": self.division.value,
            "referee_team": self.referee_team.name if self.referee_team else None,
            "activity_type": self.activity_type.value,
            "locked": self.locked,
        }


def level_for_priority(priority: int) -> str:
    if priority >= CRITICAL_PRIORITY:
        return "critical"
    if priority >= 4:
        return "warning"
    if priority >= 2:
        return "alert"
    return "note"


@dataclass
class Violation:
    rule_name: str
    description: str
    matches: List[Match] = field(default_factory=list)
    priority: int = 1
    level: Optional[str] = None

    def __post_init__(self):
        if self.level is None:
            self.level = level_for_priority(self.priority)

    def remap(self, match_map: Dict[int, Match]) -> "Violation":
        """Copy of this violation pointing at the matches of another schedule."""
        return replace(self, matches=[match_map.get(id(m), m) for m in self.matches])

    def to_dict(self, match_index: Optional[Dict[int, int]] = None) -> Dict[str, Any]:
        data = {
            "rule": self.rule_name,
            "description": self.description,
            "priority": self.priority,
            "level": self.level,
            "matches": [match.to_dict() for match in self.matches],
        }
        if match_index is not None:
            data["match_indexes"] = [match_index[id(m)] for m in self.matches if id(m) in match_index]
        return data


@dataclass
class Schedule:
    matches: List[Match] = field(default_factory=list)
    violations: List[Violation] = field(default_factory=list)
    score: float = 0
    original_score: Optional[float] = None

    def add_match(self, match: Match):
        self.matches.append(match)

    def get_team_matches(self, team_name: str) -> List[Match]:
        return [match for match in self.matches if match.involves_team(team_name)]

    def get_matches_by_time_slot(self, time_slot: int) -> List[Match]:
        return [match for match in self.matches if match.time_slot == time_slot]

    def get_matches_by_field(self, field_name: str) -> List[Match]:
        return [match for match in self.matches if match.field == field_name]

    def get_matches_by_division(self, division: Division) -> List[Match]:
        return [match for match in self.matches if match.division == division]

    def time_slots(self) -> List[int]:
        return sorted({match.time_slot for match in self.matches})

    def fields(self) -> List[str]:
        seen = []
        for match in self.matches:
            if match.field not in seen:
                seen.append(match.field)
        return seen

    def teams(self) -> List[Team]:
        """Every team that plays or referees, in first-appearance order."""
        seen = {}
        for match in self.matches:
            for team in (match.team1, match.team2, match.referee_team):
                if team is not None and team.name != ACTIVITY_PLACEHOLDER:
                    seen.setdefault((team.name, team.division), team)
        return list(seen.values())

    def validate_structure(self):
        """
        Check that every match references real teams.

        Raises:
            ScheduleIntegrityError: naming the first offending match
        """
        for index, match in enumerate(self.matches):
            if match.team1 is None or match.team2 is None:
                raise ScheduleIntegrityError(
                    f"Match #{index} (slot {match.time_slot}, field {match.field}) has a missing team reference"
                )
            if match.activity_type == ActivityType.REGULAR and match.team1.name == match.team2.name:
                raise ScheduleIntegrityError(
                    f"Match #{index} (slot {match.time_slot}, field {match.field}) has {match.team1.name} playing itself"
                )
            referee = match.referee_team
            if referee is not None and referee.name != ACTIVITY_PLACEHOLDER and match.involves_team(referee.name):
                raise ScheduleIntegrityError(
                    f"Match #{index} (slot {match.time_slot}, field {match.field}) is refereed by playing team {referee.name}"
                )

    def deep_copy(self) -> "Schedule":
        """
        Independent copy of the schedule.

        Matches are duplicated so the copy can be mutated freely; teams and players
        are immutable and shared. Violations are remapped onto the copied matches.
        """
        copied_matches = [replace(match) for match in self.matches]
        match_map = {id(original): copy for original, copy in zip(self.matches, copied_matches)}
        return Schedule(
            matches=copied_matches,
            violations=[violation.remap(match_map) for violation in self.violations],
            score=self.score,
            original_score=self.original_score,
        )

    def to_dict(self) -> Dict[str, Any]:
        match_index = {id(match): i for i, match in enumerate(self.matches)}
        return {
            "score": self.score,
            "original_score": self.original_score,
            "matches": [match.to_dict() for match in self.matches],
            "violations": [violation.to_dict(match_index) for violation in self.violations],
        }


@dataclass
class EvaluationResult:
    score: float
    violations: List[Violation] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def get_summary(self) -> str:
        summary = f"Score: {self.score}\n"
        summary += f"Violations: {len(self.violations)}\n"
        summary += f"Warnings: {len(self.warnings)}\n"
        return summary


@dataclass
class OptimizationProgress:
    iteration: int
    progress: float
    current_score: float
    best_score: float
    temperature: float
    best_schedule: Schedule

    @property
    def violations(self) -> List[Violation]:
        return self.best_schedule.violations

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iteration": self.iteration,
            "progress": self.progress,
            "current_score": self.current_score,
            "best_score": self.best_score,
            "temperature": self.temperature,
            "violation_count": len(self.best_schedule.violations),
        }


TeamsMap = Dict[Division, Dict[str, Team]]
