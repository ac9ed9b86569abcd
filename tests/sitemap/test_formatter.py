"""Tests for XML rendering, counting and validation."""

import xml.etree.ElementTree as ET
from datetime import UTC, date, datetime

import pytest

from sitemapper.errors import DocumentParseError
from sitemapper.sitemap.formatter import (
    IMAGE_NS,
    SITEMAP_NS,
    SitemapXmlFormatter,
    format_lastmod,
    partition_url,
)
from sitemapper.sitemap.models import ChangeFrequency, ImageRef, IndexEntry, PartitionDocument

NS = {"sm": SITEMAP_NS, "image": IMAGE_NS}


def _entries() -> list[IndexEntry]:
    return [
        IndexEntry(
            url="https://example.com/a/",
            last_modified=datetime(2024, 1, 15, 9, 30, tzinfo=UTC),
            priority=0.7,
            change_frequency=ChangeFrequency.MONTHLY,
            images=[ImageRef(url="https://example.com/a.png", caption="A & B")],
        ),
        IndexEntry(url="https://example.com/b/?x=1&y=2"),
    ]


@pytest.fixture
def formatter() -> SitemapXmlFormatter:
    return SitemapXmlFormatter()


class TestFormat:
    def test_renders_urlset(self, formatter):
        content = formatter.format(_entries())
        assert content.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        root = ET.fromstring(content.encode("utf-8"))
        urls = root.findall("sm:url", NS)
        assert len(urls) == 2
        assert urls[0].findtext("sm:loc", namespaces=NS) == "https://example.com/a/"
        assert urls[0].findtext("sm:lastmod", namespaces=NS) == "2024-01-15T09:30:00+00:00"
        assert urls[0].findtext("sm:changefreq", namespaces=NS) == "monthly"
        assert urls[0].findtext("sm:priority", namespaces=NS) == "0.7"
        assert urls[0].findtext("image:image/image:caption", namespaces=NS) == "A & B"
        assert urls[1].findtext("sm:loc", namespaces=NS) == "https://example.com/b/?x=1&y=2"

    def test_escapes_markup(self, formatter):
        content = formatter.format(_entries())
        assert "A &amp; B" in content
        assert "x=1&amp;y=2" in content

    def test_deterministic(self, formatter):
        assert formatter.format(_entries()) == formatter.format(_entries())

    def test_image_namespace_only_when_needed(self, formatter):
        content = formatter.format([IndexEntry(url="https://example.com/b/")])
        assert IMAGE_NS not in content


class TestCountEntries:
    def test_counts_urls(self, formatter):
        assert formatter.count_entries(formatter.format(_entries())) == 2

    @pytest.mark.parametrize("content", ["", "<urlset", "<html><body/></html>"])
    def test_corrupt_content_raises(self, formatter, content):
        with pytest.raises(DocumentParseError):
            formatter.count_entries(content)


class TestValidate:
    def test_valid_document(self, formatter):
        report = formatter.validate(formatter.format(_entries()), date(2024, 1, 15))
        assert report.valid
        assert report.url_count == 2
        assert report.errors == []

    def test_empty_urlset_is_invalid(self, formatter):
        report = formatter.validate(f'<urlset xmlns="{SITEMAP_NS}"></urlset>')
        assert not report.valid
        assert "no URLs" in report.errors[0]

    def test_bad_loc_and_warnings(self, formatter):
        content = (
            f'<urlset xmlns="{SITEMAP_NS}">'
            "<url><loc>/relative</loc><priority>2</priority><changefreq>often</changefreq></url>"
            "</urlset>"
        )
        report = formatter.validate(content)
        assert not report.valid
        assert any("invalid <loc>" in e for e in report.errors)
        assert len(report.warnings) == 2

    def test_unparseable(self, formatter):
        report = formatter.validate("garbage")
        assert not report.valid


class TestIndex:
    def test_partition_url(self):
        url = partition_url("https://example.com/", date(2024, 1, 5))
        assert url == "https://example.com/sitemap.xml?yyyy=2024&mm=01&dd=05"

    def test_format_index(self, formatter):
        docs = [
            PartitionDocument(
                partition=date(2024, 1, d),
                content="",
                entry_count=1,
                updated_at=datetime(2024, 2, 1, tzinfo=UTC),
            )
            for d in (16, 15)
        ]
        root = ET.fromstring(formatter.format_index(docs, "https://example.com").encode("utf-8"))
        assert root.tag == f"{{{SITEMAP_NS}}}sitemapindex"
        locs = [el.text for el in root.iter(f"{{{SITEMAP_NS}}}loc")]
        assert locs[0].endswith("dd=15")
        assert locs[1].endswith("dd=16")

    def test_format_lastmod_converts_to_utc(self):
        value = datetime.fromisoformat("2024-01-15T10:00:00+02:00")
        assert format_lastmod(value) == "2024-01-15T08:00:00+00:00"
