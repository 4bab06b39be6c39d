"""
Celery tasks for schedule optimization.
"""

import traceback
from datetime import datetime

from roundscheduler.core.celery_app import celery_app
from roundscheduler.core.config import DEFAULT_ITERATIONS
from roundscheduler.core.logging_config import get_logger
from roundscheduler.services.loader import load_schedule_payload
from roundscheduler.services.neighbors import NeighborGenerator
from roundscheduler.services.optimizer import ScheduleOptimizer
from roundscheduler.services.registry import create_rules_from_configurations, get_default_rules
from roundscheduler.services.strategies import resolve_strategy

logger = get_logger(__name__)


def run_optimization(payload: dict, on_progress=None) -> dict:
    """
    Load, optimize and serialize a schedule payload.

    Args:
        payload: Schedule payload plus optional "rules", "iterations", "strategy",
            "time_slots", "fields" and "seed"
        on_progress: Progress callback passed to the optimizer

    Returns:
        Result dictionary with the optimized schedule
    """
    start_time = datetime.now()

    _, schedule = load_schedule_payload(payload)
    rule_configs = payload.get("rules")
    rules = create_rules_from_configurations(rule_configs) if rule_configs is not None else get_default_rules()
    strategy = resolve_strategy(payload.get("strategy"))

    optimizer = ScheduleOptimizer(seed=payload.get("seed"))
    optimizer.generator = NeighborGenerator(
        time_slots=payload.get("time_slots"),
        fields=payload.get("fields"),
        rng=optimizer.rng,
    )
    result = optimizer.run_sync(
        schedule, rules, payload.get("iterations", DEFAULT_ITERATIONS), strategy, on_progress
    )

    return {
        "success": True,
        "message": f"Optimization finished: score {result.original_score} -> {result.score}",
        "strategy": strategy.id,
        "iterations": optimizer.iterations_run,
        "schedule": result.to_dict(),
        "generation_time": (datetime.now() - start_time).total_seconds(),
    }


@celery_app.task(bind=True, name="optimize_schedule")
def optimize_schedule_task(self, payload: dict):
    """
    Async task to optimize a schedule.

    Returns:
        dict: Optimized schedule and run statistics
    """
    try:
        self.update_state(
            state="PROGRESS",
            meta={"status": "Loading schedule..."}
        )

        def report(progress):
            self.update_state(
                state="PROGRESS",
                meta={"status": "Optimizing...", **progress.to_dict()}
            )

        return run_optimization(payload, on_progress=report)

    except Exception as e:
        error_trace = traceback.format_exc()
        logger.error(f"Error in optimize_schedule_task: {error_trace}")

        return {
            "success": False,
            "message": f"Schedule optimization failed: {str(e)}",
            "error": str(e),
            "traceback": error_trace
        }
