"""Admission checks run before the news pipeline: CORS, shape, client identity."""

from __future__ import annotations

from typing import Dict, Mapping, Optional, Sequence

from starlette.requests import Request

from .rate_limit import UNKNOWN_CLIENT

CORS_BASE_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Max-Age": "86400",
}

_LOOPBACK_MARKERS = ("localhost", "127.0.0.1")


def allowed_origin(headers: Mapping[str, str], allowed_prefixes: Sequence[str]) -> Optional[str]:
    """Origin to echo back, or None when the caller is not allowed to read.

    Falls back to Referer when Origin is absent. Loopback callers are always
    allowed; anything else must start with a configured production prefix.
    """
    origin = headers.get("origin") or headers.get("referer")
    if not origin:
        return None
    if any(marker in origin for marker in _LOOPBACK_MARKERS):
        return origin
    if any(origin.startswith(prefix) for prefix in allowed_prefixes):
        return origin
    return None


def cors_headers(request: Request, allowed_prefixes: Sequence[str]) -> Dict[str, str]:
    headers = dict(CORS_BASE_HEADERS)
    origin = allowed_origin(request.headers, allowed_prefixes)
    if origin:
        headers["Access-Control-Allow-Origin"] = origin
    return headers


def has_unexpected_params(request: Request) -> bool:
    return len(request.query_params) > 0


def client_ip(request: Request) -> str:
    """Resolve the caller: X-Forwarded-For, X-Real-IP, CF-Connecting-IP, socket."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip() or UNKNOWN_CLIENT

    for header in ("x-real-ip", "cf-connecting-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip() or UNKNOWN_CLIENT

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT
