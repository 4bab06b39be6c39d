"""
Helper functions for schedule rule evaluation.

These functions are shared by the built-in rules and exposed to scripted rules
as ``helpers``. They only read the matches they are given and work with both
Match objects and the read-only match views handed to scripts.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from roundscheduler.models import Player, Violation


class ScheduleHelpers:
    """Namespace of grouping, lookup and statistics helpers."""

    @staticmethod
    def group_matches_by_team(matches: Iterable) -> Dict[str, List]:
        """Group matches by playing team name."""
        team_matches = defaultdict(list)
        for match in matches:
            for team_name in (match.team1.name, match.team2.name):
                team_matches[team_name].append(match)
        return dict(team_matches)

    @staticmethod
    def group_matches_by_field(matches: Iterable) -> Dict[str, List]:
        field_matches = defaultdict(list)
        for match in matches:
            field_matches[match.field].append(match)
        return dict(field_matches)

    @staticmethod
    def group_matches_by_player(matches: Iterable) -> Dict[str, List]:
        """Group matches by the name of every player on either playing team."""
        player_matches = defaultdict(list)
        for match in matches:
            for player in ScheduleHelpers.get_players_in_match(match):
                player_matches[player.name].append(match)
        return dict(player_matches)

    @staticmethod
    def group_matches_by_division(matches: Iterable) -> Dict[str, List]:
        division_matches = defaultdict(list)
        for match in matches:
            division_matches[match.division.value].append(match)
        return dict(division_matches)

    @staticmethod
    def group_matches_by_time_slot(matches: Iterable) -> Dict[int, List]:
        slot_matches = defaultdict(list)
        for match in matches:
            slot_matches[match.time_slot].append(match)
        return dict(slot_matches)

    @staticmethod
    def get_players_in_match(match) -> List[Player]:
        return list(match.team1.players) + list(match.team2.players)

    @staticmethod
    def get_team_matches(schedule, team_name: str) -> List:
        return [match for match in schedule.matches if match.involves_team(team_name)]

    @staticmethod
    def get_player_matches(schedule, player_name: str) -> List:
        return [
            match for match in schedule.matches
            if any(player.name == player_name for player in ScheduleHelpers.get_players_in_match(match))
        ]

    @staticmethod
    def are_consecutive(match1, match2) -> bool:
        return abs(match1.time_slot - match2.time_slot) == 1

    @staticmethod
    def find_consecutive_streaks(matches: Iterable, min_length: int = 2) -> List[List]:
        """
        Split matches into runs of consecutive time slots.

        Args:
            matches: Matches of a single team or player
            min_length: Shortest run to report

        Returns:
            Runs (each sorted by time slot) of at least min_length matches
        """
        ordered = sorted(matches, key=lambda m: m.time_slot)
        streaks = []
        current = []
        for match in ordered:
            if current and match.time_slot != current[-1].time_slot + 1:
                if len(current) >= min_length:
                    streaks.append(current)
                current = []
            current.append(match)
        if len(current) >= min_length:
            streaks.append(current)
        return streaks

    @staticmethod
    def create_violation(rule_name: str, description: str, matches: Optional[List] = None,
                         priority: int = 1, level: Optional[str] = None) -> Violation:
        return Violation(
            rule_name=rule_name,
            description=description,
            matches=list(matches or []),
            priority=priority,
            level=level,
        )

    @staticmethod
    def get_schedule_stats(schedule) -> Dict:
        """
        Summary statistics for a schedule.

        Returns:
            Dictionary with match totals and per slot / field / division counts
        """
        stats = {
            "total_matches": len(schedule.matches),
            "total_players": 0,
            "matches_per_time_slot": defaultdict(int),
            "matches_per_field": defaultdict(int),
            "matches_per_division": defaultdict(int),
            "players_per_team": {},
        }
        unique_players = set()

        for match in schedule.matches:
            stats["matches_per_time_slot"][match.time_slot] += 1
            stats["matches_per_field"][match.field] += 1
            stats["matches_per_division"][match.division.value] += 1
            for team in (match.team1, match.team2):
                stats["players_per_team"][team.name] = len(team.players)
                unique_players.update(player.name for player in team.players)

        stats["total_players"] = len(unique_players)
        for key in ("matches_per_time_slot", "matches_per_field", "matches_per_division"):
            stats[key] = dict(stats[key])
        return stats
