#!/usr/bin/env python3
"""
Voter Registration — launch the API server.

Usage:
    python main.py                              # http://localhost:8000
    python main.py --port 9000                  # http://localhost:9000
    python main.py --host 127.0.0.1             # bind to localhost only
    python main.py --storage /data/voters.sqlite
    python main.py --reload                     # auto-reload on code changes

The remote record store is configured with APP_STORE_URL and APP_STORE_KEY.
"""

from __future__ import annotations

import argparse
import os
from pathlib import Path

import uvicorn


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Launch the voter registration API.",
    )
    parser.add_argument(
        "--host", default=os.getenv("APP_HOST", "127.0.0.1"),
        help="Bind address (default: 127.0.0.1 or APP_HOST env var)",
    )
    parser.add_argument(
        "--port", type=int, default=int(os.getenv("APP_PORT", "8000")),
        help="Port to listen on (default: 8000 or APP_PORT env var)",
    )
    parser.add_argument(
        "--storage", type=Path, default=None,
        help="Path to the local backup database "
             "(default: voter_registration.sqlite or APP_STORAGE_PATH env var)",
    )
    parser.add_argument(
        "--reload", action="store_true",
        help="Enable auto-reload on file changes (development mode)",
    )
    args = parser.parse_args()

    if args.storage is not None:
        os.environ["APP_STORAGE_PATH"] = str(args.storage)

    if not os.getenv("APP_STORE_URL"):
        print("Warning: APP_STORE_URL is not set; every submission will be")
        print("  kept in the local backup ledger until a record store is configured.")
        print()

    url = f"http://{'localhost' if args.host == '0.0.0.0' else args.host}:{args.port}"
    print(f"Starting Voter Registration API at {url}")
    print(f"Local storage: {os.getenv('APP_STORAGE_PATH', 'voter_registration.sqlite')}")
    print()

    uvicorn.run(
        "api.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
