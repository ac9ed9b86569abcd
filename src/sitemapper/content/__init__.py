"""Content side: the items sitemaps are generated from."""

from sitemapper.content.models import (
    ContentChange,
    ContentImage,
    ContentItem,
    ContentStatus,
)
from sitemapper.content.repository import ContentRepository, JsonContentRepository

__all__ = [
    "ContentChange",
    "ContentImage",
    "ContentItem",
    "ContentRepository",
    "ContentStatus",
    "JsonContentRepository",
]
