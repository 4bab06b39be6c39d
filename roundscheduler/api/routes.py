"""
API routes for schedule evaluation and optimization.
"""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import List, Dict, Any, Optional, Union
from datetime import datetime
from celery.result import AsyncResult

from roundscheduler.services.helpers import ScheduleHelpers
from roundscheduler.services.loader import load_schedule_payload
from roundscheduler.services.neighbors import NeighborGenerator
from roundscheduler.services.optimizer import ScheduleOptimizer
from roundscheduler.services.registry import (
    RULES_REGISTRY, RuleConfiguration,
    create_rules_from_configurations, get_default_rules, get_default_rule_configurations
)
from roundscheduler.services.scorer import ScheduleScorer, get_weight_function
from roundscheduler.services.strategies import list_strategies, resolve_strategy
from roundscheduler.core.config import DEFAULT_ITERATIONS, DEFAULT_STRATEGY
from roundscheduler.core.celery_app import celery_app
from roundscheduler.core.logging_config import get_logger
from roundscheduler.tasks.optimizer_tasks import optimize_schedule_task

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["schedule"])


class ScheduleRequest(BaseModel):
    """Request model carrying a schedule and the rules to apply."""
    players: List[Union[List[Optional[str]], Dict[str, Optional[str]]]] = []
    teams: Dict[str, List[str]] = {}
    matches: List[Union[List[Any], Dict[str, Any]]] = []
    rules: Optional[List[RuleConfiguration]] = None
    weighting: Optional[str] = None


class OptimizeRequest(ScheduleRequest):
    """Request model for an optimization run."""
    iterations: int = DEFAULT_ITERATIONS
    strategy: Optional[str] = None
    time_slots: Optional[List[int]] = None
    fields: Optional[List[str]] = None
    seed: Optional[int] = None


class EvaluationResponse(BaseModel):
    """Response model for a schedule evaluation."""
    score: float
    violation_count: int
    schedule: Dict[str, Any]
    warnings: List[str]
    stats: Dict[str, Any]


class OptimizationResponse(BaseModel):
    """Response model for an optimization run."""
    success: bool
    message: str
    strategy: str
    iterations: int
    original_score: float
    score: float
    schedule: Dict[str, Any]
    warnings: List[str]
    generation_time: float


def _build(request: ScheduleRequest):
    _, schedule = load_schedule_payload(request.model_dump())
    rules = create_rules_from_configurations(request.rules) if request.rules is not None else get_default_rules()
    weight_function = get_weight_function(request.weighting) if request.weighting else None
    return schedule, rules, ScheduleScorer(weight_function)


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


@router.get("/rules")
async def get_rules():
    """Built-in rule definitions and the default rule configuration."""
    return {
        "rules": [definition.to_dict() for definition in RULES_REGISTRY],
        "defaults": [config.model_dump() for config in get_default_rule_configurations()],
    }


@router.get("/strategies")
async def get_strategies():
    """Available optimization strategies."""
    return {"default": DEFAULT_STRATEGY, "strategies": list_strategies()}


@router.post("/evaluate", response_model=EvaluationResponse)
async def evaluate_schedule(request: ScheduleRequest):
    """
    Score a schedule against a rule configuration.

    Scripted rule failures are returned as warnings rather than errors.
    """
    schedule, rules, scorer = _build(request)
    result = scorer.evaluate(schedule, rules)

    return EvaluationResponse(
        score=result.score,
        violation_count=len(result.violations),
        schedule=schedule.to_dict(),
        warnings=result.warnings,
        stats=ScheduleHelpers.get_schedule_stats(schedule),
    )


@router.post("/optimize", response_model=OptimizationResponse)
async def optimize_schedule(request: OptimizeRequest):
    """
    Optimize a schedule and wait for the result.

    The optimizer yields to the event loop while it runs, so other requests are
    still served. Use /optimize/async for long runs.
    """
    start_time = datetime.now()
    schedule, rules, scorer = _build(request)
    strategy = resolve_strategy(request.strategy)
    optimizer = ScheduleOptimizer(scorer=scorer, seed=request.seed)
    optimizer.generator = NeighborGenerator(
        time_slots=request.time_slots, fields=request.fields, rng=optimizer.rng
    )
    result = await optimizer.run(schedule, rules, request.iterations, strategy)
    warnings = scorer.evaluate(result.deep_copy(), rules).warnings

    return OptimizationResponse(
        success=True,
        message=f"Optimization finished: score {result.original_score} -> {result.score}",
        strategy=strategy.id,
        iterations=optimizer.iterations_run,
        original_score=result.original_score,
        score=result.score,
        schedule=result.to_dict(),
        warnings=warnings,
        generation_time=(datetime.now() - start_time).total_seconds(),
    )


@router.post("/optimize/async")
async def optimize_schedule_async(request: OptimizeRequest):
    """
    Start a background optimization task.

    Returns:
        dict: Task ID for polling status
    """
    try:
        task = optimize_schedule_task.delay(request.model_dump(mode="json"))

        return {
            "task_id": task.id,
            "status": "PENDING",
            "message": "Schedule optimization started"
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to start task: {str(e)}")


@router.get("/optimize/status/{task_id}")
async def get_optimization_status(task_id: str):
    """
    Get status of a background optimization task.

    Args:
        task_id: Celery task ID

    Returns:
        dict: Task status, progress and result (if complete)
    """
    try:
        task_result = AsyncResult(task_id, app=celery_app)

        if task_result.state == "PENDING":
            response = {
                "task_id": task_id,
                "status": "PENDING",
                "message": "Task is waiting to start..."
            }
        elif task_result.state == "PROGRESS":
            info = task_result.info or {}
            response = {
                "task_id": task_id,
                "status": "PROGRESS",
                "message": info.get("status", "Processing..."),
                "progress": {key: value for key, value in info.items() if key != "status"}
            }
        elif task_result.state == "SUCCESS":
            response = {
                "task_id": task_id,
                "status": "SUCCESS",
                "result": task_result.result
            }
        elif task_result.state == "FAILURE":
            response = {
                "task_id": task_id,
                "status": "FAILURE",
                "message": str(task_result.info)
            }
        else:
            response = {
                "task_id": task_id,
                "status": task_result.state,
                "message": f"Task state: {task_result.state}"
            }

        return response
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get task status: {str(e)}")
