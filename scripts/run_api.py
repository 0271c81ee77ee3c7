#!/usr/bin/env python3
"""Run the balance tracker API server.

Starts uvicorn with the FastAPI app; the app lifespan starts the tick scheduler.

Usage:
    python scripts/run_api.py [--host HOST] [--port PORT] [--log-level LEVEL]

Environment:
    ENTITY       - Tracked entity (default: wintermute)
    DATABASE_URL - Optional. PostgreSQL connection string; in-memory store when unset.
    LOG_LEVEL    - Default for --log-level.

Examples:
    python scripts/run_api.py
    python scripts/run_api.py --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

import uvicorn

# Ensure imports work when invoked as a script
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

logger = logging.getLogger("balance_watch")


def main() -> int:
    """Run the API server."""
    parser = argparse.ArgumentParser(description="Run the balance tracker API and tick scheduler.")
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("PORT", "3000")),
        help="Port to bind to (default: $PORT or 3000)",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO").upper(),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: $LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if not os.environ.get("DATABASE_URL"):
        logger.warning("DATABASE_URL not set; snapshot history will not survive a restart")

    logger.info(f"Starting API server on {args.host}:{args.port}")
    logger.info(f"  - GET http://{args.host}:{args.port}/api/latest")
    logger.info(f"  - GET http://{args.host}:{args.port}/api/health")
    logger.info(f"  - WS  ws://{args.host}:{args.port}/ws/updates")

    uvicorn.run(
        "api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level.lower(),
    )

    return 0


if __name__ == "__main__":
    sys.exit(main())
