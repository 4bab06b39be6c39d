"""
Built-in schedule rules.

Every rule inspects a schedule and returns the violations it finds. Rules never
modify the schedule they are given, so they can be evaluated in any order.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, List, Optional

from roundscheduler.models import ActivityType, Match, Schedule, Violation
from roundscheduler.services.helpers import ScheduleHelpers
from roundscheduler.core.config import ACTIVITY_PLACEHOLDER, MIN_PRIORITY, MAX_PRIORITY
from roundscheduler.core.exceptions import RuleConfigurationError


def _regular_matches(schedule: Schedule) -> List[Match]:
    return [match for match in schedule.matches if not match.is_special_activity()]


def _team_names(match: Match, include_referee: bool = True) -> List[str]:
    names = [match.team1.name, match.team2.name]
    if include_referee and match.referee_team is not None:
        names.append(match.referee_team.name)
    return [name for name in names if name != ACTIVITY_PLACEHOLDER]


class ScheduleRule(ABC):
    """
    Base class for schedule rules.

    Attributes:
        name: Human readable rule name, used on every violation
        priority: 1-10, higher means more important
        enabled: Disabled rules are skipped by the scorer
    """

    name = "Schedule rule"
    default_priority = 1

    def __init__(self, priority: Optional[int] = None, enabled: bool = True):
        if priority is None:
            priority = self.default_priority
        if isinstance(priority, bool) or not isinstance(priority, int):
            raise RuleConfigurationError(f"{self.name}: priority must be an integer, got {priority!r}")
        if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
            raise RuleConfigurationError(
                f"{self.name}: priority {priority} outside {MIN_PRIORITY}-{MAX_PRIORITY}"
            )
        self.priority = priority
        self.enabled = enabled

    def __repr__(self):
        return f"{type(self).__name__}(priority={self.priority}, enabled={self.enabled})"

    @abstractmethod
    def evaluate(self, schedule: Schedule) -> List[Violation]:
        """
        Evaluate the schedule against this rule.

        Args:
            schedule: Schedule to inspect (never modified)

        Returns:
            List of violations, empty when the rule is satisfied
        """

    def create_violation(self, description: str, matches: Optional[List[Match]] = None,
                         level: Optional[str] = None) -> Violation:
        return ScheduleHelpers.create_violation(self.name, description, matches, self.priority, level)


# ===== CRITICAL RULES =====

class PreventTeamDoubleBooking(ScheduleRule):
    """A team cannot play or referee twice in the same time slot."""

    name = "Prevent team double-booking"
    default_priority = 10

    def evaluate(self, schedule: Schedule) -> List[Violation]:
        violations = []
        for time_slot, slot_matches in sorted(ScheduleHelpers.group_matches_by_time_slot(schedule.matches).items()):
            if len(slot_matches) < 2:
                continue

            assignments = defaultdict(list)
            for match in slot_matches:
                for team_name in set(_team_names(match)):
                    assignments[team_name].append(match)

            for team_name, assigned in assignments.items():
                if len(assigned) > 1:
                    violations.append(self.create_violation(
                        f"Team {team_name} has {len(assigned)} assignments in slot {time_slot}",
                        assigned,
                        level="critical",
                    ))
        return violations


class AvoidPlayingAfterSetup(ScheduleRule):
    """Teams doing setup must not play in the slot right after it."""

    name = "Avoid playing immediately after setup"
    default_priority = 10

    def evaluate(self, schedule: Schedule) -> List[Violation]:
        violations = []
        by_slot = ScheduleHelpers.group_matches_by_time_slot(_regular_matches(schedule))

        for activity in schedule.matches:
            if activity.activity_type != ActivityType.SETUP:
                continue
            next_slot = activity.time_slot + 1
            for team in activity.get_all_involved_teams():
                if team.name == ACTIVITY_PLACEHOLDER:
                    continue
                for match in by_slot.get(next_slot, []):
                    if match.involves_team(team.name):
                        violations.append(self.create_violation(
                            f"Team {team.name} does setup in slot {activity.time_slot} "
                            f"and plays immediately after in slot {next_slot}",
                            [activity, match],
                            level="critical",
                        ))
        return violations


# ===== COMBINED RULES (teams and players) =====

class AvoidBackToBackGames(ScheduleRule):
    """
    Flags teams and players with games in consecutive time slots.

    Player streaks that are fully covered by a team streak are not reported
    again, so a whole team playing back-to-back counts once.
    """

    name = "Avoid back-to-back games"
    default_priority = 5

    def evaluate(self, schedule: Schedule) -> List[Violation]:
        matches = _regular_matches(schedule)

        team_violations = []
        for team_name, team_matches in ScheduleHelpers.group_matches_by_team(matches).items():
            for streak in ScheduleHelpers.find_consecutive_streaks(team_matches):
                team_violations.append(self._streak_violation(f"Team {team_name}", streak))

        covered = [{id(m) for m in violation.matches} for violation in team_violations]
        violations = list(team_violations)
        for player_name, player_matches in ScheduleHelpers.group_matches_by_player(matches).items():
            for streak in ScheduleHelpers.find_consecutive_streaks(player_matches):
                streak_ids = {id(m) for m in streak}
                if any(streak_ids <= team_ids for team_ids in covered):
                    continue
                violations.append(self._streak_violation(f"Player {player_name}", streak))
        return violations

    def _streak_violation(self, entity: str, streak: List[Match]) -> Violation:
        first_slot = streak[0].time_slot
        last_slot = streak[-1].time_slot
        if len(streak) >= 3:
            description = f"{entity}: {len(streak)} consecutive games in slots {first_slot} to {last_slot}"
        else:
            description = f"{entity}: 2 back-to-back games in slots {first_slot} and {last_slot}"
        return self.create_violation(description, streak)


class AvoidFirstAndLastGame(ScheduleRule):
    """
    Flags teams and players present in both the first period (setup plus the first
    slot) and the last period (the last slot plus packing down) of the day.
    """

    name = "Avoid having first and last game"
    default_priority = 4

    def evaluate(self, schedule: Schedule) -> List[Violation]:
        regular = sorted(_regular_matches(schedule), key=lambda m: m.time_slot)
        if not regular:
            return []

        setup = [m for m in schedule.matches if m.activity_type == ActivityType.SETUP]
        packdown = [m for m in schedule.matches if m.activity_type == ActivityType.PACKING_DOWN]
        first_slot_matches = [m for m in regular if m.time_slot == regular[0].time_slot]
        last_slot_matches = [m for m in regular if m.time_slot == regular[-1].time_slot]
        first_period = setup + first_slot_matches
        last_period = last_slot_matches + packdown
        relevant = setup + first_slot_matches + last_slot_matches + packdown

        violations = []
        first_teams = {name for m in first_period for name in _team_names(m)}
        last_teams = {name for m in last_period for name in _team_names(m)}
        violating_teams = [name for name in sorted(first_teams) if name in last_teams]
        for team_name in violating_teams:
            matches = self._unique([m for m in relevant if team_name in _team_names(m)])
            violations.append(self.create_violation(
                f"Team {team_name} participates in both first period (setup + first game) "
                f"and last period (last game + packdown) of the day",
                matches,
            ))

        first_players = {p.name for m in first_period for p in ScheduleHelpers.get_players_in_match(m)}
        last_players = {p.name for m in last_period for p in ScheduleHelpers.get_players_in_match(m)}
        for player_name in sorted(first_players & last_players):
            matches = self._unique([
                m for m in relevant
                if any(p.name == player_name for p in ScheduleHelpers.get_players_in_match(m))
            ])
            if any(m.involves_team(team_name) for m in matches for team_name in violating_teams):
                continue
            violations.append(self.create_violation(
                f"Player {player_name} participates in both first period (setup + first game) "
                f"and last period (last game + packdown) of the day",
                matches,
            ))
        return violations

    @staticmethod
    def _unique(matches: List[Match]) -> List[Match]:
        seen = set()
        unique = []
        for match in matches:
            if id(match) not in seen:
                seen.add(id(match))
                unique.append(match)
        return unique


class LimitVenueTime(ScheduleRule):
    """
    Limits how long a team or player has to stay at the venue, measured from the
    start of their first slot to the end of their last one.
    """

    name = "Limit venue time"
    default_priority = 2

    def __init__(self, priority: Optional[int] = None, max_hours: float = 5, minutes_per_slot: float = 40,
                 enabled: bool = True):
        super().__init__(priority, enabled)
        self.max_hours = max_hours
        self.minutes_per_slot = minutes_per_slot

    def _hours(self, matches: List[Match]) -> float:
        slots = [m.time_slot for m in matches]
        return (max(slots) - min(slots) + 1) * self.minutes_per_slot / 60

    def evaluate(self, schedule: Schedule) -> List[Violation]:
        violations = []
        team_hours: Dict[str, float] = {}

        team_matches = defaultdict(list)
        for match in schedule.matches:
            for team_name in set(_team_names(match)):
                team_matches[team_name].append(match)

        for team_name, matches in team_matches.items():
            if len(matches) < 2:
                continue
            hours = self._hours(matches)
            if hours > self.max_hours:
                team_hours[team_name] = hours
                violations.append(self.create_violation(
                    f"Team {team_name} needs to be at venue for {hours:.1f} hours (max: {self.max_hours}h)",
                    sorted(matches, key=lambda m: m.time_slot),
                ))

        for player_name, matches in ScheduleHelpers.group_matches_by_player(_regular_matches(schedule)).items():
            if len(matches) < 2:
                continue
            hours = self._hours(matches)
            if hours <= self.max_hours:
                continue
            # Skip players whose team already reports a comparable stay
            covered = any(
                m.involves_team(team_name) and hours <= team_total + 0.5
                for m in matches
                for team_name, team_total in team_hours.items()
            )
            if covered:
                continue
            violations.append(self.create_violation(
                f"Player {player_name} needs to be at venue for {hours:.1f} hours (max: {self.max_hours}h)",
                sorted(matches, key=lambda m: m.time_slot),
            ))
        return violations


class DetectMixedDivisionsInTimeSlot(ScheduleRule):
    name = "Detect mixed divisions in time slot"
    default_priority = 2

    def evaluate(self, schedule: Schedule) -> List[Violation]:
        violations = []
        for time_slot, matches in sorted(ScheduleHelpers.group_matches_by_time_slot(_regular_matches(schedule)).items()):
            divisions = []
            for match in matches:
                if match.division.value not in divisions:
                    divisions.append(match.division.value)
            if len(divisions) > 1:
                violations.append(self.create_violation(
                    f"Time slot {time_slot} has multiple divisions: {', '.join(divisions)}",
                    matches,
                ))
        return violations


# ===== TEAM RULES =====

class AvoidReffingBeforePlaying(ScheduleRule):
    """A team should not referee in the slot right before it plays."""

    name = "Avoid refereeing before playing"
    default_priority = 4

    def evaluate(self, schedule: Schedule) -> List[Violation]:
        violations = []
        by_slot = ScheduleHelpers.group_matches_by_time_slot(_regular_matches(schedule))
        slots = sorted(by_slot)
        next_slot = dict(zip(slots, slots[1:]))

        for time_slot in slots:
            following = next_slot.get(time_slot)
            if following is None:
                continue
            for match in by_slot[time_slot]:
                if match.referee_team is None:
                    continue
                referee = match.referee_team.name
                for next_match in by_slot[following]:
                    if next_match.involves_team(referee):
                        violations.append(self.create_violation(
                            f"Team {referee} referees in slot {time_slot} and plays in slot {following}",
                            [match, next_match],
                        ))
        return violations


class BalanceRefereeAssignments(ScheduleRule):
    name = "Balance referee assignments"
    default_priority = 3

    def __init__(self, priority: Optional[int] = None, max_referee_difference: int = 1, enabled: bool = True):
        super().__init__(priority, enabled)
        self.max_referee_difference = max_referee_difference

    def evaluate(self, schedule: Schedule) -> List[Violation]:
        referee_matches = defaultdict(list)
        for match in schedule.matches:
            if match.referee_team is not None and match.referee_team.name != ACTIVITY_PLACEHOLDER:
                referee_matches[match.referee_team.name].append(match)

        if not referee_matches:
            return []

        counts = {team_name: len(matches) for team_name, matches in referee_matches.items()}
        fewest = min(counts.values())
        most = max(counts.values())
        if most - fewest <= self.max_referee_difference:
            return []

        busiest = [name for name, count in counts.items() if count == most]
        return [self.create_violation(
            f"Referee assignment imbalance: {fewest}-{most} assignments "
            f"(max difference: {self.max_referee_difference}, busiest: {', '.join(sorted(busiest))})",
            [m for name in busiest for m in referee_matches[name]],
        )]


class EnsureFairFieldDistribution(ScheduleRule):
    """Flags teams (with 3+ games) that play too large a share of their games on one field."""

    name = "Ensure fair field distribution"
    default_priority = 2

    def __init__(self, priority: Optional[int] = None, field_distribution_threshold: float = 0.6,
                 enabled: bool = True):
        super().__init__(priority, enabled)
        self.field_distribution_threshold = field_distribution_threshold

    def evaluate(self, schedule: Schedule) -> List[Violation]:
        violations = []
        for team_name, matches in ScheduleHelpers.group_matches_by_team(_regular_matches(schedule)).items():
            total = len(matches)
            if total < 3:
                continue
            by_field = ScheduleHelpers.group_matches_by_field(matches)
            dominant_field, dominant_matches = max(by_field.items(), key=lambda item: len(item[1]))
            if len(dominant_matches) / total > self.field_distribution_threshold:
                violations.append(self.create_violation(
                    f"Team {team_name} plays {len(dominant_matches)}/{total} games on {dominant_field}",
                    dominant_matches,
                ))
        return violations


class PreventClubRefereeConflict(ScheduleRule):
    """
    A team should not referee while another team of its club plays in the same slot.
    The club is taken to be the first word of the team name.
    """

    name = "Prevent club referee conflict"
    default_priority = 3

    @staticmethod
    def extract_club_name(team_name: str) -> Optional[str]:
        if not team_name or not team_name.strip():
            return None
        return team_name.strip().split()[0]

    def evaluate(self, schedule: Schedule) -> List[Violation]:
        violations = []
        for time_slot, matches in sorted(ScheduleHelpers.group_matches_by_time_slot(_regular_matches(schedule)).items()):
            if len(matches) < 2:
                continue
            for match in matches:
                if match.referee_team is None:
                    continue
                referee = match.referee_team.name
                club = self.extract_club_name(referee)
                if club is None:
                    continue
                for other in matches:
                    if other is match:
                        continue
                    for team in (other.team1, other.team2):
                        if self.extract_club_name(team.name) == club:
                            violations.append(self.create_violation(
                                f"Team {referee} is refereeing in slot {time_slot} while club team "
                                f"({team.name}) is playing in the same slot",
                                [match, other],
                            ))
                            break
        return violations


# ===== PLAYER RULES =====

class ManageRestTimeAndGaps(ScheduleRule):
    """Players need enough rest between games without waiting too long for the next one."""

    name = "Manage rest time and gaps"
    default_priority = 1

    def __init__(self, priority: Optional[int] = None, min_rest_slots: int = 2, max_gap_slots: int = 6,
                 enabled: bool = True):
        super().__init__(priority, enabled)
        self.min_rest_slots = min_rest_slots
        self.max_gap_slots = max_gap_slots

    def evaluate(self, schedule: Schedule) -> List[Violation]:
        violations = []
        for player_name, matches in ScheduleHelpers.group_matches_by_player(_regular_matches(schedule)).items():
            ordered = sorted(matches, key=lambda m: m.time_slot)
            for previous, current in zip(ordered, ordered[1:]):
                gap = current.time_slot - previous.time_slot - 1
                if gap < self.min_rest_slots:
                    violations.append(self.create_violation(
                        f"Player {player_name} has insufficient rest ({gap} slots) between games "
                        f"in slots {previous.time_slot} and {current.time_slot}",
                        [previous, current],
                    ))
                elif gap > self.max_gap_slots:
                    violations.append(self.create_violation(
                        f"Player {player_name} has {gap}-slot gap between games "
                        f"(slots {previous.time_slot} and {current.time_slot})",
                        [previous, current],
                    ))
        return violations


class ManagePlayerGameBalance(ScheduleRule):
    """Caps games per player and keeps game counts even across players of a division."""

    name = "Manage player game balance"
    default_priority = 1

    def __init__(self, priority: Optional[int] = None, max_games: int = 4, max_game_difference: int = 1,
                 enabled: bool = True):
        super().__init__(priority, enabled)
        self.max_games = max_games
        self.max_game_difference = max_game_difference

    def evaluate(self, schedule: Schedule) -> List[Violation]:
        violations = []
        player_matches = ScheduleHelpers.group_matches_by_player(_regular_matches(schedule))

        for player_name, matches in player_matches.items():
            if len(matches) > self.max_games:
                violations.append(self.create_violation(
                    f"Player {player_name} is scheduled for {len(matches)} games (max: {self.max_games})",
                    matches,
                ))

        division_counts = defaultdict(lambda: defaultdict(int))
        for player_name, matches in player_matches.items():
            for match in matches:
                division_counts[match.division.value][player_name] += 1

        for division, counts in division_counts.items():
            fewest = min(counts.values())
            most = max(counts.values())
            if most - fewest > self.max_game_difference:
                violations.append(self.create_violation(
                    f"Game distribution imbalance in {division}: {fewest}-{most} games "
                    f"(max difference: {self.max_game_difference})",
                ))
        return violations


class EnsurePlayerWarmupTime(ScheduleRule):
    name = "Ensure player warm-up time"
    default_priority = 1

    def __init__(self, priority: Optional[int] = None, min_warmup_slots: int = 1, enabled: bool = True):
        super().__init__(priority, enabled)
        self.min_warmup_slots = min_warmup_slots

    def evaluate(self, schedule: Schedule) -> List[Violation]:
        violations = []
        for player_name, matches in ScheduleHelpers.group_matches_by_player(_regular_matches(schedule)).items():
            first = min(matches, key=lambda m: m.time_slot)
            if first.time_slot < self.min_warmup_slots + 1:
                violations.append(self.create_violation(
                    f"Player {player_name} has first game in slot {first.time_slot} "
                    f"(needs {self.min_warmup_slots} warm-up slots)",
                    [first],
                ))
        return violations
