"""Merge each cluster into one client-facing story."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Sequence

from ingestion.models.domain import NewsItem, RawNewsItem
from ingestion.services.sanitizer import parse_display_date

from .similarity import similarity

DEFAULT_PLACEHOLDER_IMAGE = "/favicon.svg"
SENTENCE_DUPLICATE_THRESHOLD = 0.7
MAX_SUMMARY_SENTENCES = 3

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_IMAGE_EXT_RE = re.compile(r"\.(jpg|jpeg|png|gif|webp)$", re.IGNORECASE)
_IMAGE_HOST_RE = re.compile(r"(cdn|img|image|photo|media|cloudinary|imgur)", re.IGNORECASE)


@dataclass(frozen=True)
class ImageChoice:
    image: str
    source_url: str
    source_name: str


def synthesize_title(items: Sequence[RawNewsItem]) -> str:
    if not items:
        return ""
    if len(items) == 1:
        return items[0].title

    # number of titles each word appears in
    title_counts: Dict[str, int] = {}
    for item in items:
        for word in {w for w in item.title.lower().split() if len(w) > 2}:
            title_counts[word] = title_counts.get(word, 0) + 1
    common_words = {word for word, count in title_counts.items() if count >= 2}

    base_title = min(items, key=lambda item: len(item.title)).title

    if len(common_words) >= 3:
        kept = [w for w in base_title.split() if w.lower() in common_words or len(w) > 4]
        if len(kept) >= 3:
            return " ".join(kept)

    return base_title


def synthesize_summary(items: Sequence[RawNewsItem]) -> str:
    if not items:
        return ""
    if len(items) == 1:
        return items[0].summary

    sentences: List[str] = []
    for item in items:
        sentences.extend(s.strip() for s in _SENTENCE_SPLIT_RE.split(item.summary) if len(s.strip()) > 20)

    unique: List[str] = []
    for sentence in sentences:
        if not any(similarity(sentence, existing) > SENTENCE_DUPLICATE_THRESHOLD for existing in unique):
            unique.append(sentence)

    selected = [s for s in unique if 30 < len(s) < 200][:MAX_SUMMARY_SENTENCES]
    if not selected:
        return max(items, key=lambda item: len(item.summary)).summary

    return ". ".join(selected) + "."


def _has_usable_image(item: RawNewsItem, placeholder: str) -> bool:
    image = item.image.strip()
    return bool(image) and image != placeholder and image.startswith("http")


def select_image(items: Sequence[RawNewsItem], placeholder: str = DEFAULT_PLACEHOLDER_IMAGE) -> ImageChoice:
    """Pick the first member with a usable image, preferring image-like URLs.

    Selection is first-match in cluster order, not best-match; it decides
    which source gets the link and the attribution highlight.
    """
    usable = [item for item in items if _has_usable_image(item, placeholder)]
    if not usable:
        first = items[0] if items else None
        return ImageChoice(
            image=placeholder,
            source_url=first.url if first else "",
            source_name=first.source_name if first else "",
        )

    image_like = [
        item for item in usable if _IMAGE_EXT_RE.search(item.image) or _IMAGE_HOST_RE.search(item.image)
    ]
    chosen = image_like[0] if image_like else usable[0]
    return ImageChoice(image=chosen.image, source_url=chosen.url, source_name=chosen.source_name)


def sources_label(items: Iterable[RawNewsItem], primary: str) -> str:
    """Unique source names, comma-joined, with ``primary`` first."""
    names: List[str] = []
    for item in items:
        if item.source_name not in names:
            names.append(item.source_name)
    if primary in names:
        names.remove(primary)
        names.insert(0, primary)
    return ", ".join(names)


def synthesize_news(
    clusters: Sequence[Sequence[RawNewsItem]],
    placeholder: str = DEFAULT_PLACEHOLDER_IMAGE,
) -> List[NewsItem]:
    stamp = int(time.time() * 1000)
    news: List[NewsItem] = []
    for index, cluster in enumerate(clusters):
        if not cluster:
            continue
        choice = select_image(cluster, placeholder)
        news.append(
            NewsItem(
                id=f"synthesized-{index}-{stamp}",
                title=synthesize_title(cluster),
                summary=synthesize_summary(cluster),
                url=choice.source_url,
                source_name=sources_label(cluster, choice.source_name),
                image=choice.image,
                # first member, not the most recent one
                published_at=cluster[0].published_at,
                source_url=choice.source_url,
            )
        )
    return news


def _recency_key(item: NewsItem) -> datetime:
    return parse_display_date(item.published_at) or datetime(1970, 1, 1)


def sort_by_recency(items: Iterable[NewsItem]) -> List[NewsItem]:
    """Newest first; missing or unparseable dates sort last. Stable for ties."""
    return sorted(items, key=_recency_key, reverse=True)
