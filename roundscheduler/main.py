"""
FastAPI application for the Round Scheduler service.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from roundscheduler.api import routes
from roundscheduler.core.config import CORS_ORIGINS
from roundscheduler.core.exceptions import CUSTOM_ERRORS
from roundscheduler.core.logging_config import get_logger, setup_logging

API_VERSION = "1.0.0"

setup_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="Round Scheduler API",
    description="Scores tournament schedules against configurable rules and searches for better ones",
    version=API_VERSION
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(routes.router)


async def handle_domain_error(request: Request, exc: Exception):
    """Map rule, schedule and search errors that escape a route to their status code."""
    status_code = CUSTOM_ERRORS.get(type(exc), 500)
    logger.warning(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


for error_class in CUSTOM_ERRORS:
    app.add_exception_handler(error_class, handle_domain_error)


@app.get("/")
async def root():
    return {
        "message": "Round Scheduler API",
        "version": API_VERSION,
        "endpoints": {
            "health": "/api/health",
            "rules": "/api/rules",
            "strategies": "/api/strategies",
            "evaluate": "/api/evaluate",
            "optimize": "/api/optimize",
            "optimize_async": "/api/optimize/async",
            "status": "/api/optimize/status/{task_id}"
        }
    }
