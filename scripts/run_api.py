"""
Run the Round Scheduler API with uvicorn.
"""

import argparse

import uvicorn

from roundscheduler.core.config import API_HOST, API_PORT

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the Round Scheduler API")
    parser.add_argument("--host", default=API_HOST)
    parser.add_argument("--port", type=int, default=API_PORT)
    parser.add_argument("--reload", action="store_true", help="Restart on code changes")
    args = parser.parse_args()

    print("=" * 60)
    print("Round Scheduler API")
    print("=" * 60)
    print(f"Listening on http://{args.host}:{args.port}")
    print(f"Interactive docs: http://{args.host}:{args.port}/docs")
    print("=" * 60)

    uvicorn.run(
        "roundscheduler.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info"
    )
