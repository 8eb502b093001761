#!/usr/bin/env python3
"""Run the geofence attendance API with Uvicorn, optionally seeding branch geofences first."""

import argparse
import os
import sys

import uvicorn

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.append(PROJECT_ROOT)


def parse_args():
    parser = argparse.ArgumentParser(description="Run the geofence attendance API")
    parser.add_argument("--host", default=os.getenv("APP_HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("APP_PORT", "8000")))
    parser.add_argument("--log-level", default=os.getenv("APP_LOG_LEVEL", "info"))
    parser.add_argument(
        "--no-reload",
        action="store_true",
        default=os.getenv("APP_RELOAD", "True").lower() not in ("true", "1", "t"),
        help="Disable auto-reload (trackers live in memory and restart with the process)",
    )
    parser.add_argument("--seed", action="store_true", help="Insert sample branch geofences first")
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()

    if args.seed:
        from db.seed import seed_branch_geofences

        seed_branch_geofences()

    print(f"Starting geofence API on {args.host}:{args.port} (reload={not args.no_reload})")

    uvicorn.run(
        "main:app",
        host=args.host,
        port=args.port,
        reload=not args.no_reload,
        log_level=args.log_level,
        app_dir=PROJECT_ROOT,
        reload_dirs=[PROJECT_ROOT] if not args.no_reload else None,
    )
