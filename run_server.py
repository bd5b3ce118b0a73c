#!/usr/bin/env python
"""
Server Entry Point

Starts the admin API, or applies migrations and exits.
Usage:
    Development:  python run_server.py --dev
    Production:   python run_server.py
    Migrate only: python run_server.py --migrate
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))


def run_dev_server(port: int):
    """Run development server with auto-reload."""
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host="127.0.0.1",
        port=port,
        reload=True,
        reload_dirs=["src"],
        log_level="debug",
    )


def run_prod_server(port: int):
    """
    Run production server with Uvicorn directly.

    One worker: the store is a single SQLite file.
    """
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=port,
        workers=1,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        proxy_headers=True,
        server_header=False,
    )


def run_migrations() -> int:
    """Apply pending migrations against the configured store."""
    from src.config.logging import configure_logging
    from src.database.connection import build_engine
    from src.migrations import MigrationError, apply_migrations

    configure_logging()

    async def _apply():
        engine = build_engine()
        try:
            return await apply_migrations(engine)
        finally:
            await engine.dispose()

    try:
        applied = asyncio.run(_apply())
    except MigrationError as e:
        print(f"Migration failed: {e}", file=sys.stderr)
        return 1

    print(f"Applied {len(applied)} migration(s)")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Travel Data Store API Server")
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Run in development mode with auto-reload",
    )
    parser.add_argument(
        "--migrate",
        action="store_true",
        help="Apply pending migrations and exit",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("API_PORT", 8000)),
        help="Port to run on (default: 8000)",
    )

    args = parser.parse_args()

    if args.migrate:
        sys.exit(run_migrations())
    elif args.dev:
        print("Starting development server...")
        run_dev_server(args.port)
    else:
        print("Starting production server...")
        run_prod_server(args.port)
