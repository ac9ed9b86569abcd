"""Builds one partition's document from scratch."""

from __future__ import annotations

import logging
from datetime import date

from sitemapper.sitemap.formatter import SitemapXmlFormatter
from sitemapper.sitemap.models import GeneratedDocument
from sitemapper.sitemap.registry import ProviderRegistry

logger = logging.getLogger(__name__)


class PartitionGenerator:
    """Collects a day's entries from the registry and renders them.

    Generation never reads the previous document, so regenerating an
    unchanged partition produces identical content.
    """

    def __init__(self, registry: ProviderRegistry, formatter: SitemapXmlFormatter | None = None) -> None:
        self._registry = registry
        self._formatter = formatter or SitemapXmlFormatter()

    def generate(self, partition: date) -> GeneratedDocument:
        entries = self._registry.entries_for_partition(partition)
        if not entries:
            logger.debug("No entries for %s", partition)
            return GeneratedDocument(partition=partition)
        return GeneratedDocument(
            partition=partition,
            content=self._formatter.format(entries),
            entry_count=len(entries),
        )
