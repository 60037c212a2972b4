"""News collection pipeline: fetch all feeds, filter, cluster, synthesize."""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import Callable, List, Optional, Sequence

import httpx

from ingestion.connectors.base import BaseConnector
from ingestion.connectors.rss import RSSConnector
from ingestion.models.domain import NewsItem, RawNewsItem
from ingestion.services.relevance import filter_relevant
from ingestion.settings import Settings, get_settings
from ingestion.utils.logging import get_logger
from synthesis.clustering import group_similar
from synthesis.synthesizer import sort_by_recency, synthesize_news

logger = get_logger(__name__)

# Connector factory is kept pluggable for tests; it must return objects with async .fetch(client).
CONNECTOR_FACTORY: Callable[[Settings], Sequence[BaseConnector]] | None = None


def build_connectors(settings: Settings) -> List[BaseConnector]:
    if CONNECTOR_FACTORY is not None:
        return list(CONNECTOR_FACTORY(settings))
    return [
        RSSConnector(
            source,
            user_agent=settings.user_agent,
            timeout_seconds=float(settings.feed_timeout_seconds),
            max_attempts=int(settings.feed_max_attempts),
        )
        for source in settings.news_sources
    ]


async def fetch_all(connectors: Sequence[BaseConnector], client: httpx.AsyncClient) -> List[RawNewsItem]:
    """Fetch every source concurrently; a failing source contributes nothing."""
    results = await asyncio.gather(*(c.fetch(client) for c in connectors), return_exceptions=True)
    items: List[RawNewsItem] = []
    for connector, result in zip(connectors, results):
        if isinstance(result, BaseException):
            logger.warning(
                "feed.fetch.crashed",
                extra={"source": getattr(connector, "source_name", "?"), "reason": repr(result)},
            )
            continue
        items.extend(result)
    return items


def build_news(raw_items: Sequence[RawNewsItem], placeholder: str) -> List[NewsItem]:
    relevant = filter_relevant(raw_items)
    if not relevant:
        return []
    clusters = group_similar(relevant)
    return sort_by_recency(synthesize_news(clusters, placeholder))


async def collect_news(
    settings: Optional[Settings] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> List[NewsItem]:
    """Run the whole aggregation pipeline once. Total upstream failure yields []."""
    config = settings or get_settings()
    trace_id = str(uuid.uuid4())
    started = time.monotonic()
    connectors = build_connectors(config)
    logger.info("collect.start", extra={"trace_id": trace_id, "sources": len(connectors)})

    if client is None:
        async with httpx.AsyncClient(follow_redirects=True) as own_client:
            raw_items = await fetch_all(connectors, own_client)
    else:
        raw_items = await fetch_all(connectors, client)

    news = build_news(raw_items, config.placeholder_image)
    logger.info(
        "collect.done",
        extra={
            "trace_id": trace_id,
            "fetched": len(raw_items),
            "synthesized": len(news),
            "elapsed_ms": int((time.monotonic() - started) * 1000),
        },
    )
    return news
