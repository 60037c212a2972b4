from __future__ import annotations

from typing import Dict, Optional, Tuple

from starlette.requests import Request

from api.gatekeeper import allowed_origin, client_ip, cors_headers, has_unexpected_params

PREFIXES = ["https://project-anthology.vercel.app"]


def _request(
    headers: Optional[Dict[str, str]] = None,
    client: Optional[Tuple[str, int]] = ("10.1.1.1", 4242),
    query: str = "",
) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/api/news",
        "query_string": query.encode(),
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


def test_forwarded_for_wins_and_takes_first_hop():
    request = _request({"X-Forwarded-For": " 203.0.113.5 , 10.0.0.1", "X-Real-IP": "198.51.100.1"})
    assert client_ip(request) == "203.0.113.5"


def test_real_ip_then_cloudflare_header():
    assert client_ip(_request({"X-Real-IP": "198.51.100.1", "CF-Connecting-IP": "192.0.2.8"})) == "198.51.100.1"
    assert client_ip(_request({"CF-Connecting-IP": "192.0.2.8"})) == "192.0.2.8"


def test_socket_address_then_unknown():
    assert client_ip(_request()) == "10.1.1.1"
    assert client_ip(_request(client=None)) == "unknown"


def test_loopback_origins_always_allowed():
    assert allowed_origin({"origin": "http://localhost:5173"}, PREFIXES) == "http://localhost:5173"
    assert allowed_origin({"origin": "http://127.0.0.1:8000"}, []) == "http://127.0.0.1:8000"


def test_production_prefix_and_referer_fallback():
    assert allowed_origin({"origin": "https://project-anthology.vercel.app"}, PREFIXES) == "https://project-anthology.vercel.app"
    assert allowed_origin({"referer": "https://project-anthology.vercel.app/news"}, PREFIXES) == (
        "https://project-anthology.vercel.app/news"
    )


def test_foreign_or_missing_origin_is_not_allowed():
    assert allowed_origin({"origin": "https://example.org"}, PREFIXES) is None
    assert allowed_origin({}, PREFIXES) is None


def test_cors_headers_always_carry_base_set():
    headers = cors_headers(_request({"Origin": "https://example.org"}), PREFIXES)

    assert headers == {
        "Access-Control-Allow-Methods": "GET, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
        "Access-Control-Max-Age": "86400",
    }


def test_any_query_parameter_is_unexpected():
    assert has_unexpected_params(_request(query="page=2"))
    assert not has_unexpected_params(_request())
