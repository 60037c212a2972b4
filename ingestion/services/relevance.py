"""Topical relevance filter: keep Formula 1 stories, drop other series."""

from __future__ import annotations

from typing import Iterable, List, Tuple

from ingestion.models.domain import RawNewsItem

F1_KEYWORDS: Tuple[str, ...] = (
    "f1", "formula 1", "formula one", "formula1", "formula-1",
    "grand prix", "gp", "fia",
    # teams
    "ferrari", "mercedes", "red bull", "mclaren", "alpine", "aston martin",
    "williams", "haas", "alphatauri", "rb", "sauber", "kick sauber",
    "stake f1", "racing bulls", "visa cash app",
    # drivers
    "hamilton", "verstappen", "leclerc", "sainz", "norris", "piastri",
    "russell", "alonso", "stroll", "ocon", "gasly", "albon",
    "bottas", "zhou", "tsunoda", "ricciardo", "hulkenberg", "magnussen",
    "sargeant", "bearman", "lawson", "doohan",
    # circuits
    "monaco", "monza", "silverstone", "spa", "suzuka", "interlagos",
    "bahrain", "jeddah", "melbourne", "imola", "barcelona", "montreal",
    "red bull ring", "hungaroring", "zandvoort", "marina bay", "yas marina",
    # sporting terms
    "qualifying", "pole position", "podium", "championship", "constructors",
    "drivers championship", "drs", "safety car", "virtual safety car",
    "race director", "stewards", "penalty", "grid penalty",
)

NON_F1_KEYWORDS: Tuple[str, ...] = (
    "motogp", "moto gp", "moto2", "moto3", "moto e",
    "wrc", "world rally", "rally championship",
    "wec", "world endurance", "le mans", "24 hours",
    "indycar", "indy car", "indianapolis", "indy 500",
    "nascar", "nascar cup", "nascar xfinity",
    "formula e", "formula-e", "fe championship", "formula electric",
    "super gt", "dtm", "gt3", "gt4",
    "superbike", "worldsbk", "wsbk",
    "motocross", "mxgp", "supercross",
    "dakar", "rally raid",
    "v8 supercars", "supercars championship",
    "btcc", "british touring car",
    "wtcr", "world touring car",
)

F1_URL_SEGMENTS: Tuple[str, ...] = ("/f1/", "/formula-1/", "/formula1/")


def is_relevant(item: RawNewsItem) -> bool:
    """Return True when the item is about Formula 1.

    Matching is plain substring containment on the lower-cased title and
    summary, so short keywords such as "gp" also hit inside longer words.
    A deny keyword wins over any allow keyword; items that match neither
    list nor an F1 URL segment are dropped.
    """
    combined = f"{item.title or ''} {item.summary or ''}".lower()

    if any(keyword in combined for keyword in NON_F1_KEYWORDS):
        return False
    if any(keyword in combined for keyword in F1_KEYWORDS):
        return True

    url = (item.url or "").lower()
    return any(segment in url for segment in F1_URL_SEGMENTS)


def filter_relevant(items: Iterable[RawNewsItem]) -> List[RawNewsItem]:
    return [item for item in items if is_relevant(item)]
