"""Run the news pipeline once and print the synthesized stories.

Usage:
  python scripts/fetch_news.py -n 5
  python scripts/fetch_news.py --json > news-fallback.json

Reads configuration from .env via pydantic settings (NEWS_SOURCES, timeouts).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import List

from ingestion.settings import get_settings
from ingestion.tasks.collect import collect_news
from ingestion.utils.logging import configure_logging


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Fetch and synthesize F1 news once")
    parser.add_argument("-n", "--top", type=int, default=10, help="Print top N items (default: 10)")
    parser.add_argument("--json", action="store_true", help="Print the full JSON array instead of a summary")
    args = parser.parse_args(argv)

    cfg = get_settings()
    configure_logging(cfg.structlog_level, json_enabled=cfg.log_json)
    print(
        "Config:",
        {
            "sources": [s.name for s in cfg.news_sources],
            "feed_timeout_s": float(cfg.feed_timeout_seconds),
            "pipeline_timeout_s": float(cfg.pipeline_timeout_seconds),
        },
        file=sys.stderr,
    )

    try:
        items = asyncio.run(asyncio.wait_for(collect_news(cfg), timeout=float(cfg.pipeline_timeout_seconds)))
    except asyncio.TimeoutError:
        print("Pipeline timed out", file=sys.stderr)
        return 3
    except Exception as exc:  # unexpected
        print(f"Unexpected error: {exc}", file=sys.stderr)
        return 4

    if args.json:
        print(json.dumps([it.to_wire() for it in items], ensure_ascii=False, indent=2))
        return 0

    print(f"Synthesized {len(items)} stories.")
    for idx, it in enumerate(items[: args.top], start=1):
        print(f"{idx}. [{it.published_at or '--'}] {it.title[:120]}\n   {it.source_name} | {it.url}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
