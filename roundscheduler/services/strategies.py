"""
Search strategies for the schedule optimizer.

A strategy decides the temperature at each iteration, how a candidate is
proposed and whether it is accepted. The optimizer loop owns best-so-far
tracking, progress reporting and yielding, so every strategy shares the same
external contract.
"""

import math
import random
from dataclasses import dataclass
from typing import Dict, List, Optional

from roundscheduler.models import Schedule
from roundscheduler.services.neighbors import NeighborGenerator
from roundscheduler.core.config import (
    DEFAULT_STRATEGY, INITIAL_TEMPERATURE, MIN_TEMPERATURE,
    RESTART_PATIENCE, RESTART_PERTURBATION_MOVES
)
from roundscheduler.core.exceptions import InvalidSearchParameterError
from roundscheduler.core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class SearchState:
    """What a strategy can see of the running search after each iteration."""
    iteration: int
    budget: int
    current: Schedule
    best: Schedule
    accepted: bool
    stale_iterations: int


def metropolis_accept(current_score: float, candidate_score: float, temperature: float,
                      rng: random.Random) -> bool:
    if candidate_score <= current_score:
        return True
    if temperature <= 0:
        return False
    return rng.random() < math.exp(-(candidate_score - current_score) / temperature)


def geometric_temperature(iteration: int, budget: int, initial: float, floor: float) -> float:
    """Cools from ``initial`` at the first iteration to ``floor`` at the last."""
    if budget <= 1:
        return floor
    fraction = iteration / (budget - 1)
    return initial * (floor / initial) ** fraction


class OptimizationStrategy:
    """Base strategy: greedy proposals from the neighbor generator, no restarts."""

    id = ""
    name = ""
    description = ""
    move_weights: Optional[Dict[str, float]] = None

    def reset(self):
        """Called before each run."""
        pass

    def temperature(self, iteration: int, budget: int) -> float:
        return 0.0

    def propose(self, current: Schedule, generator: NeighborGenerator, rng: random.Random) -> Schedule:
        return generator.generate(current, move_weights=self.move_weights)

    def accept(self, current: Schedule, candidate: Schedule, temperature: float, rng: random.Random) -> bool:
        return candidate.score <= current.score

    def after_iteration(self, state: SearchState, generator: NeighborGenerator) -> Optional[Schedule]:
        """Return a schedule to restart from, or None to continue from the current one."""
        return None

    @classmethod
    def describe(cls) -> Dict[str, str]:
        return {"id": cls.id, "name": cls.name, "description": cls.description}


class SimulatedAnnealing(OptimizationStrategy):
    id = "simulated-annealing"
    name = "Simulated Annealing"
    description = ("Random mutations with temperature-based acceptance of worse schedules. "
                   "Good general-purpose approach.")

    def __init__(self, initial_temperature: float = INITIAL_TEMPERATURE, min_temperature: float = MIN_TEMPERATURE):
        if initial_temperature <= 0 or min_temperature <= 0 or min_temperature > initial_temperature:
            raise InvalidSearchParameterError(
                f"Invalid temperatures: initial {initial_temperature}, minimum {min_temperature}"
            )
        self.initial_temperature = initial_temperature
        self.min_temperature = min_temperature

    def temperature(self, iteration: int, budget: int) -> float:
        return geometric_temperature(iteration, budget, self.initial_temperature, self.min_temperature)

    def accept(self, current: Schedule, candidate: Schedule, temperature: float, rng: random.Random) -> bool:
        return metropolis_accept(current.score, candidate.score, temperature, rng)


class HillClimbing(OptimizationStrategy):
    id = "hill-climbing"
    name = "Hill Climbing"
    description = "Accepts only candidates that are at least as good as the current schedule. Fast, but gets stuck."


class RandomRestart(HillClimbing):
    """
    Hill climbing that restarts from a perturbed copy of the best schedule after
    ``patience`` iterations without improvement.
    """

    id = "random-restart"
    name = "Random Restart Hill Climbing"
    description = "Hill climbing that jumps away from the best schedule found when it stops improving."

    def __init__(self, patience: int = RESTART_PATIENCE, perturbation_moves: int = RESTART_PERTURBATION_MOVES):
        if patience < 1 or perturbation_moves < 1:
            raise InvalidSearchParameterError(
                f"Invalid restart settings: patience {patience}, perturbation moves {perturbation_moves}"
            )
        self.patience = patience
        self.perturbation_moves = perturbation_moves
        self.restarts = 0

    def reset(self):
        self.restarts = 0

    def after_iteration(self, state: SearchState, generator: NeighborGenerator) -> Optional[Schedule]:
        if state.stale_iterations < self.patience:
            return None
        self.restarts += 1
        logger.debug(f"Restart {self.restarts} at iteration {state.iteration} (best {state.best.score})")
        return generator.perturb(state.best, self.perturbation_moves)


class StrategicSwapping(SimulatedAnnealing):
    """
    Annealing that aims most proposals at the matches named by the current
    highest-priority violations, and reheats when too many candidates in a row are
    rejected.
    """

    id = "strategic-swapping"
    name = "Strategic Swapping"
    description = "Targets specific rule violations with strategic match swapping. More focused on problem areas."

    target_probability = 0.8
    max_consecutive_rejections = 50
    reheat_factor = 1.5
    reheat_decay = 0.997

    def __init__(self, initial_temperature: float = 100, min_temperature: float = MIN_TEMPERATURE):
        super().__init__(initial_temperature, min_temperature)
        self.reheat = 1.0
        self.consecutive_rejections = 0

    def reset(self):
        self.reheat = 1.0
        self.consecutive_rejections = 0

    def temperature(self, iteration: int, budget: int) -> float:
        base = super().temperature(iteration, budget)
        return min(base * self.reheat, self.initial_temperature * 2)

    def propose(self, current: Schedule, generator: NeighborGenerator, rng: random.Random) -> Schedule:
        targets = self._target_indexes(current)
        if targets and rng.random() < self.target_probability:
            return generator.generate(current, move_weights=self.move_weights, targets=targets)
        return generator.generate(current, move_weights=self.move_weights)

    def accept(self, current: Schedule, candidate: Schedule, temperature: float, rng: random.Random) -> bool:
        # Never trade into more critical violations
        if self._critical_count(candidate) > self._critical_count(current):
            return False
        return super().accept(current, candidate, temperature, rng)

    def after_iteration(self, state: SearchState, generator: NeighborGenerator) -> Optional[Schedule]:
        if state.accepted:
            self.consecutive_rejections = 0
        else:
            self.consecutive_rejections += 1
        if self.consecutive_rejections > self.max_consecutive_rejections:
            self.reheat *= self.reheat_factor
            self.consecutive_rejections = 0
        self.reheat = max(1.0, self.reheat * self.reheat_decay)
        return None

    @staticmethod
    def _critical_count(schedule: Schedule) -> int:
        return sum(1 for violation in schedule.violations if violation.level == "critical")

    @staticmethod
    def _target_indexes(schedule: Schedule) -> List[int]:
        if not schedule.violations:
            return []
        top = max(violation.priority for violation in schedule.violations)
        index = {id(match): i for i, match in enumerate(schedule.matches)}
        targets = []
        for violation in schedule.violations:
            if violation.priority != top:
                continue
            for match in violation.matches:
                position = index.get(id(match))
                if position is not None and position not in targets:
                    targets.append(position)
        return targets


STRATEGIES = {
    SimulatedAnnealing.id: SimulatedAnnealing,
    HillClimbing.id: HillClimbing,
    RandomRestart.id: RandomRestart,
    StrategicSwapping.id: StrategicSwapping,
}


def get_strategy(strategy_id: Optional[str] = None) -> OptimizationStrategy:
    """
    Create a fresh strategy instance.

    Raises:
        InvalidSearchParameterError: If the id is not registered
    """
    strategy_id = strategy_id or DEFAULT_STRATEGY
    if strategy_id not in STRATEGIES:
        raise InvalidSearchParameterError(
            f"Unknown strategy '{strategy_id}' (available: {', '.join(STRATEGIES)})"
        )
    return STRATEGIES[strategy_id]()


def resolve_strategy(strategy_id: Optional[str] = None) -> OptimizationStrategy:
    """Like get_strategy, but falls back to the default strategy for unknown ids."""
    if strategy_id and strategy_id not in STRATEGIES:
        logger.warning(f"Unknown strategy '{strategy_id}', using {DEFAULT_STRATEGY}")
        strategy_id = DEFAULT_STRATEGY
    return get_strategy(strategy_id)


def list_strategies() -> List[Dict[str, str]]:
    return [strategy.describe() for strategy in STRATEGIES.values()]
