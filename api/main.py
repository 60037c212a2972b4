from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Explicitly load the .env file at the project root
project_root = Path(__file__).parent.parent
env_path = project_root / ".env"

if env_path.exists():
    load_dotenv(env_path)

from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException

from ingestion.settings import Settings, get_settings
from ingestion.tasks.collect import collect_news
from ingestion.utils.logging import configure_logging

from .errors import NewsAPIError, news_api_error_handler, routing_error_handler
from .rate_limit import RateLimiter, build_rate_limiter
from .routes import NewsPipeline, router


def create_app(
    settings: Optional[Settings] = None,
    *,
    pipeline: Optional[NewsPipeline] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    config = settings or get_settings()
    configure_logging(config.structlog_level, json_enabled=config.log_json)
    logging.getLogger(__name__).info("api.env_file", extra={"path": str(env_path), "loaded": env_path.exists()})

    application = FastAPI(title="Anthology News API", version="0.1.0")
    application.state.settings = config
    application.state.rate_limiter = rate_limiter or build_rate_limiter(config)
    application.state.news_pipeline = pipeline or collect_news

    application.add_exception_handler(NewsAPIError, news_api_error_handler)  # type: ignore[arg-type]
    application.add_exception_handler(StarletteHTTPException, routing_error_handler)  # type: ignore[arg-type]
    application.include_router(router)

    @application.get("/healthz", tags=["system"])
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
