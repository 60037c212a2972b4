"""HTTP error types and the handlers that render them as ``{"error": ...}``."""

from __future__ import annotations

from typing import Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from .gatekeeper import cors_headers
from .models import ErrorBody

INVALID_PARAMS = "Invalid request parameters"
METHOD_NOT_ALLOWED = "Method not allowed"
TOO_MANY_REQUESTS = "Too many requests"
REQUEST_TIMEOUT = "Request timeout"
FETCH_FAILED = "Failed to fetch news"


class NewsAPIError(HTTPException):
    """HTTP error with a stable public message; details stay in the logs."""

    def __init__(self, status_code: int, message: str, headers: Optional[Dict[str, str]] = None):
        super().__init__(status_code=status_code, detail=message, headers=headers)


class PipelineTimeoutError(Exception):
    """The aggregation pipeline exceeded its wall-clock budget."""


async def news_api_error_handler(_request: Request, exc: NewsAPIError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorBody(error=exc.detail).model_dump(),
        headers=exc.headers,
    )


async def routing_error_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """Render router-level 405s (verbs no route registers) in the API error shape."""
    if exc.status_code != 405:
        return await http_exception_handler(request, exc)
    headers = cors_headers(request, request.app.state.settings.allowed_origins)
    headers.update(exc.headers or {})
    return JSONResponse(status_code=405, content=ErrorBody(error=METHOD_NOT_ALLOWED).model_dump(), headers=headers)
