from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, List

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from ingestion.models.domain import NewsItem
from ingestion.settings import Settings

from . import errors
from .errors import NewsAPIError, PipelineTimeoutError
from .gatekeeper import client_ip, cors_headers, has_unexpected_params
from .models import ErrorBody, HealthStatus
from .rate_limit import RateLimiter

NewsPipeline = Callable[[Settings], Awaitable[List[NewsItem]]]

router = APIRouter(prefix="/api")
logger = logging.getLogger(__name__)

PROCESS_STARTED = time.monotonic()

_NEWS_METHODS = ["GET", "OPTIONS", "HEAD", "POST", "PUT", "PATCH", "DELETE", "TRACE"]


async def run_with_timeout(pipeline: NewsPipeline, settings: Settings) -> List[NewsItem]:
    try:
        return await asyncio.wait_for(pipeline(settings), timeout=float(settings.pipeline_timeout_seconds))
    except asyncio.TimeoutError as exc:
        raise PipelineTimeoutError(f"pipeline exceeded {settings.pipeline_timeout_seconds}s") from exc


@router.api_route(
    "/news",
    methods=_NEWS_METHODS,
    response_model=None,
    responses={status: {"model": ErrorBody} for status in (400, 405, 429, 500, 504)},
)
async def news_route(request: Request) -> Response:
    settings: Settings = request.app.state.settings
    limiter: RateLimiter = request.app.state.rate_limiter
    pipeline: NewsPipeline = request.app.state.news_pipeline

    headers = cors_headers(request, settings.allowed_origins)

    if request.method == "OPTIONS":
        return Response(status_code=200, headers=headers)
    if request.method != "GET":
        raise NewsAPIError(405, errors.METHOD_NOT_ALLOWED, headers=headers)
    if has_unexpected_params(request):
        raise NewsAPIError(400, errors.INVALID_PARAMS, headers=headers)

    ip = client_ip(request)
    if not limiter.check(ip):
        logger.info("news.rate_limited", extra={"client_ip": ip})
        raise NewsAPIError(
            429,
            errors.TOO_MANY_REQUESTS,
            headers={**headers, "Retry-After": str(limiter.retry_after_seconds)},
        )

    try:
        items = await run_with_timeout(pipeline, settings)
    except PipelineTimeoutError:
        logger.error("news.pipeline.timeout", extra={"client_ip": ip}, exc_info=True)
        raise NewsAPIError(504, errors.REQUEST_TIMEOUT, headers=headers)
    except Exception:
        logger.exception("news.pipeline.failed", extra={"client_ip": ip})
        raise NewsAPIError(500, errors.FETCH_FAILED, headers=headers)

    headers["Cache-Control"] = settings.cache_control
    return JSONResponse(content=[item.to_wire() for item in items], headers=headers)


@router.api_route("/health", methods=["GET", "POST", "PUT", "PATCH", "DELETE"], response_model=HealthStatus)
async def health_route(request: Request) -> HealthStatus:
    if request.method != "GET":
        raise NewsAPIError(405, errors.METHOD_NOT_ALLOWED)
    settings: Settings = request.app.state.settings
    return HealthStatus(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime=round(time.monotonic() - PROCESS_STARTED, 3),
        environment=settings.app_env,
        version=settings.app_version[:7] if settings.app_version != "unknown" else "unknown",
    )
