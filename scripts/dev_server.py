"""Local development server for the news API.

Usage:
  python scripts/dev_server.py --port 8000 --reload
"""

from __future__ import annotations

import argparse
from typing import List

import uvicorn


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Serve api.main:app with uvicorn")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    args = parser.parse_args(argv)

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
