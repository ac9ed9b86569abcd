"""Allow ``python -m sitemapper``."""

from sitemapper.cli import app

app()
