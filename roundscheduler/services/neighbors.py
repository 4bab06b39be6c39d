"""
Neighbor generation for the schedule optimizer.

A neighbor is a copy of a schedule with one bounded mutation applied. Locked
matches and setup / packing-down activities are never moved, but they still
occupy their (slot, field) cell and their teams still count as busy.
"""

import random
from typing import Dict, List, Optional, Sequence, Tuple

from roundscheduler.models import Match, Schedule, Team
from roundscheduler.core.config import ACTIVITY_PLACEHOLDER, MOVE_WEIGHTS, NEIGHBOR_MAX_ATTEMPTS


def is_movable(match: Match) -> bool:
    return not match.locked and not match.is_special_activity()


def _names(match: Match) -> List[str]:
    names = {match.team1.name, match.team2.name}
    if match.referee_team is not None:
        names.add(match.referee_team.name)
    names.discard(ACTIVITY_PLACEHOLDER)
    return list(names)


class NeighborGenerator:
    """
    Produces mutated copies of a schedule.

    Args:
        time_slots: Slots matches may be moved to (defaults to every slot between the
            schedule's first and last)
        fields: Fields matches may be moved to (defaults to the fields in use)
        rng: random.Random instance, for reproducible runs
        max_attempts: Proposals tried before giving up and returning an unchanged copy
        move_weights: Relative probability of each move family
    """

    MOVES = ("swap_positions", "swap_fields", "reassign_referee", "move_match")

    def __init__(self, time_slots: Optional[Sequence[int]] = None, fields: Optional[Sequence[str]] = None,
                 rng: Optional[random.Random] = None, max_attempts: int = NEIGHBOR_MAX_ATTEMPTS,
                 move_weights: Optional[Dict[str, float]] = None):
        self.time_slots = list(time_slots) if time_slots is not None else None
        self.fields = list(fields) if fields is not None else None
        self.rng = rng or random.Random()
        self.max_attempts = max_attempts
        self.move_weights = dict(move_weights or MOVE_WEIGHTS)
        self.last_move = None

    def slot_pool(self, schedule: Schedule) -> List[int]:
        if self.time_slots is not None:
            return self.time_slots
        slots = schedule.time_slots()
        if not slots:
            return []
        return list(range(slots[0], slots[-1] + 1))

    def field_pool(self, schedule: Schedule) -> List[str]:
        if self.fields is not None:
            return self.fields
        return schedule.fields()

    def generate(self, schedule: Schedule, move_weights: Optional[Dict[str, float]] = None,
                 targets: Optional[Sequence[int]] = None) -> Schedule:
        """
        Create a neighbor of a schedule.

        Args:
            schedule: Current schedule (not modified)
            move_weights: Overrides the generator's move family weights
            targets: Indexes of matches to prefer as the first match of a move

        Returns:
            A new Schedule; unchanged copy if no valid move was found
        """
        candidate = schedule.deep_copy()
        self.last_move = None

        movable = [i for i, match in enumerate(candidate.matches) if is_movable(match)]
        if not movable:
            return candidate
        movable_set = set(movable)
        preferred = [i for i in (targets or []) if i in movable_set]

        weights = move_weights or self.move_weights
        families = [name for name in self.MOVES if weights.get(name, 0) > 0]
        if not families:
            return candidate

        for _ in range(self.max_attempts):
            family = self.rng.choices(families, weights=[weights[name] for name in families])[0]
            first = self.rng.choice(preferred or movable)
            if getattr(self, f"_{family}")(candidate, candidate.matches[first], movable):
                self.last_move = family
                break
        return candidate

    def perturb(self, schedule: Schedule, moves: int) -> Schedule:
        """Apply several random moves in a row."""
        result = schedule
        for _ in range(moves):
            result = self.generate(result)
        return result

    # ===== VALIDITY =====

    def _busy(self, schedule: Schedule, team_name: str, time_slot: int, exclude: Tuple[Match, ...]) -> bool:
        for match in schedule.matches:
            if match.time_slot != time_slot or any(match is other for other in exclude):
                continue
            if team_name in _names(match):
                return True
        return False

    def _can_place(self, schedule: Schedule, match: Match, time_slot: int, exclude: Tuple[Match, ...]) -> bool:
        if time_slot == match.time_slot:
            return True
        return not any(self._busy(schedule, name, time_slot, exclude) for name in _names(match))

    # ===== MOVES =====

    def _exchange(self, schedule: Schedule, a: Match, b: Match) -> bool:
        if a is b:
            return False
        if (a.time_slot, a.field) == (b.time_slot, b.field):
            return False
        exclude = (a, b)
        if not self._can_place(schedule, a, b.time_slot, exclude):
            return False
        if not self._can_place(schedule, b, a.time_slot, exclude):
            return False
        a.time_slot, b.time_slot = b.time_slot, a.time_slot
        a.field, b.field = b.field, a.field
        return True

    def _swap_positions(self, schedule: Schedule, match: Match, movable: List[int]) -> bool:
        other = schedule.matches[self.rng.choice(movable)]
        return self._exchange(schedule, match, other)

    def _swap_fields(self, schedule: Schedule, match: Match, movable: List[int]) -> bool:
        partners = [
            schedule.matches[i] for i in movable
            if schedule.matches[i] is not match
            and schedule.matches[i].time_slot == match.time_slot
            and schedule.matches[i].field != match.field
        ]
        if not partners:
            return False
        other = self.rng.choice(partners)
        match.field, other.field = other.field, match.field
        return True

    def _reassign_referee(self, schedule: Schedule, match: Match, movable: List[int]) -> bool:
        if match.referee_team is None or match.referee_team.name == ACTIVITY_PLACEHOLDER:
            return False
        candidates: List[Team] = [
            team for team in schedule.teams()
            if team.name != match.referee_team.name
            and not match.involves_team(team.name)
            and not self._busy(schedule, team.name, match.time_slot, (match,))
        ]
        if not candidates:
            return False
        match.referee_team = self.rng.choice(candidates)
        return True

    def _move_match(self, schedule: Schedule, match: Match, movable: List[int]) -> bool:
        slots = self.slot_pool(schedule)
        fields = self.field_pool(schedule)
        if not slots or not fields:
            return False
        target = (self.rng.choice(slots), self.rng.choice(fields))
        if target == (match.time_slot, match.field):
            return False

        occupant = None
        for other in schedule.matches:
            if (other.time_slot, other.field) == target:
                occupant = other
                break

        if occupant is not None:
            if not is_movable(occupant):
                return False
            return self._exchange(schedule, match, occupant)

        if not self._can_place(schedule, match, target[0], (match,)):
            return False
        match.time_slot, match.field = target
        return True
