"""RSS connector: fetch a feed over HTTP and normalize its items."""

from __future__ import annotations

import re
import time
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from ingestion.models.domain import RawNewsItem
from ingestion.services.sanitizer import safe_date, sanitize_text
from ingestion.settings import FeedSource

from .base import BaseConnector, PermanentError, TransientError

ACCEPT_HEADER = "application/rss+xml, application/xml, text/xml, */*"

_CDATA_RE = re.compile(r"^<!\[CDATA\[|\]\]>$")
_IMG_SRC_ATTRS = ("src", "data-src", "data-lazy-src")


def _strip_cdata(value: str) -> str:
    return _CDATA_RE.sub("", value.strip()).strip()


def is_absolute_http_url(value: str) -> bool:
    parsed = urlparse(value or "")
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def absolutize(url: str, base_url: str) -> str:
    """Resolve ``url`` against the source site; '' if it cannot be made absolute."""
    url = (url or "").strip()
    if not url:
        return ""
    if url.startswith(("http://", "https://")):
        return url
    if url.startswith("//"):
        return f"https:{url}"
    resolved = urljoin(base_url.rstrip("/") + "/", url)
    return resolved if is_absolute_http_url(resolved) else ""


def extract_image_from_html(description: str, base_url: str) -> str:
    """First ``<img>`` in an HTML snippet, query string dropped, made absolute."""
    if not description or "<" not in description:
        return ""
    soup = BeautifulSoup(description, "html.parser")
    for img in soup.find_all("img"):
        src = next((img.get(attr) for attr in _IMG_SRC_ATTRS if img.get(attr)), None)
        if not src:
            continue
        return absolutize(str(src).split("?")[0], base_url)
    return ""


def _attr_url(element: Optional[ET.Element]) -> str:
    if element is None:
        return ""
    return (element.get("url") or "").strip()


class RSSConnector(BaseConnector):
    """Connector for one RSS 2.0 feed."""

    def __init__(
        self,
        source: FeedSource,
        *,
        user_agent: str,
        timeout_seconds: float = 5.0,
        max_attempts: int = 1,
    ) -> None:
        super().__init__(max_attempts=max_attempts)
        self.source = source
        self.source_name = source.name
        self.user_agent = user_agent
        self.timeout_seconds = timeout_seconds

    async def _fetch_raw(self, client: httpx.AsyncClient) -> List[Dict[str, Any]]:
        headers = {"User-Agent": self.user_agent, "Accept": ACCEPT_HEADER}
        try:
            resp = await client.get(self.source.rss_url, headers=headers, timeout=self.timeout_seconds)
        except httpx.TimeoutException as exc:
            raise TransientError(f"{self.source_name} timed out") from exc
        except httpx.HTTPError as exc:
            raise TransientError(f"{self.source_name} request error: {exc}") from exc

        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientError(f"{self.source_name} upstream status {resp.status_code}")
        if not resp.is_success:
            raise PermanentError(f"{self.source_name} upstream status {resp.status_code}")

        return self.parse(resp.text)

    def parse(self, xml_text: str) -> List[Dict[str, Any]]:
        head = xml_text.lstrip()[:16].lower()
        if head.startswith("<!doctype") or head.startswith("<html"):
            raise PermanentError(f"{self.source_name} returned HTML instead of XML")
        try:
            root = ET.fromstring(xml_text.strip())
        except ET.ParseError as exc:
            raise PermanentError(f"{self.source_name} RSS parse error: {exc}") from exc

        entries: List[Dict[str, Any]] = []
        for node in root.iter("item"):
            link = _strip_cdata(node.findtext("link") or "")
            if not link:
                link = _strip_cdata(node.findtext("guid") or "")
            entries.append(
                {
                    "title": node.findtext("title") or "",
                    "link": link,
                    "description": node.findtext("description") or "",
                    "pub_date": node.findtext("pubDate") or "",
                    "image": self._resolve_image(node),
                }
            )
        return entries

    def _resolve_image(self, node: ET.Element) -> str:
        base = self.source.base_url
        for candidate in (_attr_url(node.find("enclosure")), _attr_url(node.find(".//{*}content"))):
            if candidate:
                image = absolutize(candidate, base)
                if image:
                    return image
        return extract_image_from_html(node.findtext("description") or "", base)

    def _normalize_item(self, index: int, entry: Dict[str, Any]) -> Optional[RawNewsItem]:
        link = entry.get("link") or ""
        if not is_absolute_http_url(link):
            return None
        return RawNewsItem(
            id=f"{self.source_name}-{index}-{int(time.time() * 1000)}",
            title=sanitize_text(entry.get("title")) or "Untitled",
            summary=sanitize_text(entry.get("description")),
            url=link,
            source_name=self.source_name,
            image=entry.get("image") or "",
            published_at=safe_date(entry.get("pub_date")),
        )
