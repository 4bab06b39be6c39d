"""
Configuration constants for the Round Scheduler optimization service.
All configurable settings are defined here.
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Logging
LOG_LEVEL = os.getenv("ROUNDSCHEDULER_LOG_LEVEL", "INFO")

# Celery / Redis
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
OPTIMIZATION_QUEUE = os.getenv("ROUNDSCHEDULER_QUEUE", "optimization")
TASK_TIME_LIMIT_SECONDS = int(os.getenv("ROUNDSCHEDULER_TASK_TIME_LIMIT", "1800"))
RESULT_EXPIRES_SECONDS = int(os.getenv("ROUNDSCHEDULER_RESULT_EXPIRES", "86400"))
WORKER_CONCURRENCY = int(os.getenv("ROUNDSCHEDULER_WORKER_CONCURRENCY", "2"))

# API
API_HOST = os.getenv("ROUNDSCHEDULER_API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("ROUNDSCHEDULER_API_PORT", "8000"))
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ROUNDSCHEDULER_CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

# Divisions, in the order used to resolve a team name that exists in several divisions
DIVISIONS = ["mixed", "gendered", "cloth"]
DIVISION_LOOKUP_ORDER = [
    division.strip()
    for division in os.getenv("ROUNDSCHEDULER_DIVISION_LOOKUP_ORDER", ",".join(DIVISIONS)).split(",")
    if division.strip()
]

# Placeholder team name used for setup / packing-down rows
ACTIVITY_PLACEHOLDER = "ACTIVITY_PLACEHOLDER"

# Rule priorities
MIN_PRIORITY = 1
MAX_PRIORITY = 10
CRITICAL_PRIORITY = 10

# Scoring: "linear", "squared" or "exponential"
SCORE_WEIGHTING = os.getenv("ROUNDSCHEDULER_SCORE_WEIGHTING", "linear")

# Optimization Settings
DEFAULT_ITERATIONS = int(os.getenv("ROUNDSCHEDULER_ITERATIONS", "10000"))
DEFAULT_STRATEGY = os.getenv("ROUNDSCHEDULER_STRATEGY", "simulated-annealing")
INITIAL_TEMPERATURE = float(os.getenv("ROUNDSCHEDULER_INITIAL_TEMPERATURE", "150"))
MIN_TEMPERATURE = float(os.getenv("ROUNDSCHEDULER_MIN_TEMPERATURE", "0.05"))
PROGRESS_INTERVAL = int(os.getenv("ROUNDSCHEDULER_PROGRESS_INTERVAL", "100"))  # iterations
YIELD_EVERY = int(os.getenv("ROUNDSCHEDULER_YIELD_EVERY", "50"))  # iterations
YIELD_INTERVAL_SECONDS = float(os.getenv("ROUNDSCHEDULER_YIELD_INTERVAL_SECONDS", "0.01"))
NEIGHBOR_MAX_ATTEMPTS = 20
RESTART_PATIENCE = 500
RESTART_PERTURBATION_MOVES = 5

# Relative probability of each neighbor move family
MOVE_WEIGHTS = {
    "swap_positions": 0.35,
    "swap_fields": 0.15,
    "reassign_referee": 0.2,
    "move_match": 0.3,
}

# Scripted rule execution budget (per invocation)
SCRIPT_MAX_STEPS = int(os.getenv("ROUNDSCHEDULER_SCRIPT_MAX_STEPS", "200000"))
SCRIPT_TIMEOUT_SECONDS = float(os.getenv("ROUNDSCHEDULER_SCRIPT_TIMEOUT_SECONDS", "2.0"))
