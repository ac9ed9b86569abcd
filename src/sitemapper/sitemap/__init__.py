"""Sitemap documents: models, rendering, generation, and storage."""
