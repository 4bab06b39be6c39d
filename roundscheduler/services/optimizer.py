"""
Schedule optimizer.

Runs an iterate / mutate / score / accept loop over a private copy of the
schedule, keeps the best schedule seen and reports progress. The loop is a
coroutine that yields to the event loop at a bounded cadence so a host service
stays responsive; ``run_sync`` wraps it for the CLI and Celery workers.
"""

import asyncio
import inspect
import random
import time
from enum import Enum
from typing import Callable, Optional, Sequence, Union

from roundscheduler.models import OptimizationProgress, Schedule
from roundscheduler.services.neighbors import NeighborGenerator
from roundscheduler.services.rules import ScheduleRule
from roundscheduler.services.scorer import ScheduleScorer
from roundscheduler.services.strategies import OptimizationStrategy, SearchState, get_strategy
from roundscheduler.core.config import (
    DEFAULT_ITERATIONS, PROGRESS_INTERVAL, YIELD_EVERY, YIELD_INTERVAL_SECONDS
)
from roundscheduler.core.exceptions import InvalidSearchParameterError
from roundscheduler.core.logging_config import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[OptimizationProgress], object]


class OptimizerState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"


class ScheduleOptimizer:
    """
    Searches for a lower-scoring schedule.

    The schedule passed to run() is never modified; every mutation happens on
    copies, and progress snapshots are deep copies the caller may keep.
    """

    def __init__(self, scorer: Optional[ScheduleScorer] = None, generator: Optional[NeighborGenerator] = None,
                 progress_interval: int = PROGRESS_INTERVAL, yield_interval_seconds: float = YIELD_INTERVAL_SECONDS,
                 yield_every: int = YIELD_EVERY, rng: Optional[random.Random] = None, seed: Optional[int] = None):
        if progress_interval < 1 or yield_every < 1:
            raise InvalidSearchParameterError("progress_interval and yield_every must be at least 1")
        self.rng = rng or random.Random(seed)
        self.scorer = scorer or ScheduleScorer()
        self.generator = generator or NeighborGenerator(rng=self.rng)
        self.progress_interval = progress_interval
        self.yield_interval_seconds = yield_interval_seconds
        self.yield_every = yield_every
        self.state = OptimizerState.IDLE
        self.iterations_run = 0
        self.cancelled = False

    @staticmethod
    def _check_iterations(iterations) -> int:
        if isinstance(iterations, bool) or not isinstance(iterations, int):
            raise InvalidSearchParameterError(f"Iteration budget must be an integer, got {iterations!r}")
        if iterations < 0:
            raise InvalidSearchParameterError(f"Iteration budget must not be negative, got {iterations}")
        return iterations

    @staticmethod
    def _resolve(strategy) -> OptimizationStrategy:
        if isinstance(strategy, OptimizationStrategy):
            return strategy
        return get_strategy(strategy)

    async def _report(self, on_progress: Optional[ProgressCallback], iteration: int, progress: float,
                      current: Schedule, best: Schedule, temperature: float):
        if on_progress is None:
            return
        snapshot = OptimizationProgress(
            iteration=iteration,
            progress=progress,
            current_score=current.score,
            best_score=best.score,
            temperature=temperature,
            best_schedule=best.deep_copy(),
        )
        result = on_progress(snapshot)
        if inspect.isawaitable(result):
            await result

    async def run(self, schedule: Schedule, rules: Sequence[ScheduleRule], iterations: int = DEFAULT_ITERATIONS,
                  strategy: Union[str, OptimizationStrategy, None] = None,
                  on_progress: Optional[ProgressCallback] = None, cancel_event=None) -> Schedule:
        """
        Optimize a schedule.

        Args:
            schedule: Starting schedule (not modified)
            rules: Rules to score against
            iterations: Iteration budget; 0 returns the evaluated starting schedule
            strategy: Strategy id or instance (defaults to simulated annealing)
            on_progress: Function or coroutine function receiving OptimizationProgress
            cancel_event: Object with is_set() (asyncio.Event, threading.Event); checked
                at every yield point, ends the run early with the best schedule so far

        Returns:
            Best schedule found, with original_score set to the starting score

        Raises:
            InvalidSearchParameterError: For a bad budget or unknown strategy id
            ScheduleIntegrityError: If the schedule references missing teams
        """
        iterations = self._check_iterations(iterations)
        strategy = self._resolve(strategy)
        if self.state == OptimizerState.RUNNING:
            raise RuntimeError("Optimizer is already running")

        self.state = OptimizerState.RUNNING
        self.iterations_run = 0
        self.cancelled = False
        try:
            current = schedule.deep_copy()
            self.scorer.evaluate(current, rules)
            original_score = current.score
            best = current
            strategy.reset()

            logger.info(f"Starting {strategy.id} for {iterations} iterations (initial score {original_score})")

            temperature = strategy.temperature(0, iterations)
            if iterations > 0:
                await self._report(on_progress, 0, 0.0, current, best, temperature)

            stale = 0
            last_yield = time.monotonic()
            for i in range(iterations):
                temperature = strategy.temperature(i, iterations)
                candidate = strategy.propose(current, self.generator, self.rng)
                self.scorer.evaluate(candidate, rules)

                accepted = strategy.accept(current, candidate, temperature, self.rng)
                if accepted:
                    current = candidate
                if candidate.score < best.score:
                    best = candidate
                    stale = 0
                else:
                    stale += 1

                restart = strategy.after_iteration(
                    SearchState(i, iterations, current, best, accepted, stale), self.generator
                )
                if restart is not None:
                    self.scorer.evaluate(restart, rules)
                    current = restart
                    stale = 0
                    if restart.score < best.score:
                        best = restart

                self.iterations_run = i + 1
                if self.iterations_run % self.progress_interval == 0 and self.iterations_run < iterations:
                    await self._report(
                        on_progress, self.iterations_run, self.iterations_run / iterations, current, best, temperature
                    )

                now = time.monotonic()
                if self.iterations_run % self.yield_every == 0 or now - last_yield >= self.yield_interval_seconds:
                    await asyncio.sleep(0)
                    last_yield = time.monotonic()
                    if cancel_event is not None and cancel_event.is_set():
                        self.cancelled = True
                        logger.info(f"Optimization cancelled after {self.iterations_run} iterations")
                        break

            result = best.deep_copy()
            result.original_score = original_score
            await self._report(on_progress, self.iterations_run, 1.0, current, result, temperature)

            logger.info(
                f"Finished {strategy.id}: score {original_score} -> {result.score} "
                f"after {self.iterations_run} iterations"
            )
            self.state = OptimizerState.COMPLETED
            return result
        except BaseException:
            self.state = OptimizerState.IDLE
            raise

    def run_sync(self, schedule: Schedule, rules: Sequence[ScheduleRule], iterations: int = DEFAULT_ITERATIONS,
                 strategy: Union[str, OptimizationStrategy, None] = None,
                 on_progress: Optional[ProgressCallback] = None, cancel_event=None) -> Schedule:
        """Run the optimizer to completion from synchronous code."""
        return asyncio.run(self.run(schedule, rules, iterations, strategy, on_progress, cancel_event))


async def optimize(schedule: Schedule, rules: Sequence[ScheduleRule], iterations: int = DEFAULT_ITERATIONS,
                   strategy: Union[str, OptimizationStrategy, None] = None,
                   on_progress: Optional[ProgressCallback] = None, cancel_event=None,
                   time_slots: Optional[Sequence[int]] = None, fields: Optional[Sequence[str]] = None,
                   seed: Optional[int] = None) -> Schedule:
    """
    Optimize a schedule with a one-off optimizer.

    Args:
        time_slots: Slot pool for moves (defaults to the schedule's slot range)
        fields: Field pool for moves (defaults to the fields in use)
        seed: Random seed for reproducible runs
    """
    rng = random.Random(seed)
    generator = NeighborGenerator(time_slots=time_slots, fields=fields, rng=rng)
    optimizer = ScheduleOptimizer(generator=generator, rng=rng)
    return await optimizer.run(schedule, rules, iterations, strategy, on_progress, cancel_event)


def deep_copy(schedule: Schedule) -> Schedule:
    return schedule.deep_copy()
