"""Story clustering and synthesis."""

from .clustering import CLUSTER_THRESHOLD, group_similar  # noqa: F401
from .similarity import similarity  # noqa: F401
from .synthesizer import select_image, sort_by_recency, synthesize_news, synthesize_summary, synthesize_title  # noqa: F401

__all__ = [
    "CLUSTER_THRESHOLD",
    "group_similar",
    "select_image",
    "similarity",
    "sort_by_recency",
    "synthesize_news",
    "synthesize_summary",
    "synthesize_title",
]
