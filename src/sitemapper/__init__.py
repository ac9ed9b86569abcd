"""Incremental, date-partitioned sitemap generation."""

__version__ = "0.1.0"
