"""XML rendering, counting and validation of sitemap documents.

Output is deterministic: the same entries always render to the same bytes.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import date, datetime
from urllib.parse import urlencode, urlparse

from sitemapper.content.models import ensure_utc
from sitemapper.errors import DocumentParseError
from sitemapper.sitemap.models import (
    MAX_URL_LENGTH,
    ChangeFrequency,
    IndexEntry,
    PartitionDocument,
    ValidationReport,
)

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"
IMAGE_NS = "http://www.google.com/schemas/sitemap-image/1.1"
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'
MAX_URLS_PER_SITEMAP = 50_000

_URL_TAG = f"{{{SITEMAP_NS}}}url"
_LOC_TAG = f"{{{SITEMAP_NS}}}loc"


def format_lastmod(value: datetime) -> str:
    """W3C datetime in UTC, second precision."""
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%S+00:00")


class SitemapXmlFormatter:
    """Renders entries as a sitemaps.org ``urlset``."""

    def format(self, entries: list[IndexEntry]) -> str:
        has_images = any(entry.images for entry in entries)
        attrs = {"xmlns": SITEMAP_NS}
        if has_images:
            attrs["xmlns:image"] = IMAGE_NS
        root = ET.Element("urlset", attrs)
        for entry in entries:
            url_el = ET.SubElement(root, "url")
            ET.SubElement(url_el, "loc").text = entry.url
            if entry.last_modified is not None:
                ET.SubElement(url_el, "lastmod").text = format_lastmod(entry.last_modified)
            if entry.change_frequency is not None:
                ET.SubElement(url_el, "changefreq").text = str(entry.change_frequency)
            if entry.priority is not None:
                ET.SubElement(url_el, "priority").text = f"{entry.priority:.1f}"
            for image in entry.images:
                image_el = ET.SubElement(url_el, "image:image")
                ET.SubElement(image_el, "image:loc").text = image.url
                if image.title:
                    ET.SubElement(image_el, "image:title").text = image.title
                if image.caption:
                    ET.SubElement(image_el, "image:caption").text = image.caption
        ET.indent(root, space="  ")
        return XML_DECLARATION + ET.tostring(root, encoding="unicode", method="xml")

    def count_entries(self, content: str) -> int:
        """Count ``<url>`` elements in stored content.

        Raises DocumentParseError if the content is not a urlset.
        """
        root = _parse_urlset(content)
        return len(root.findall(_URL_TAG))

    def format_index(self, documents: list[PartitionDocument], base_url: str) -> str:
        """Render a ``sitemapindex`` pointing at one sitemap per partition."""
        root = ET.Element("sitemapindex", {"xmlns": SITEMAP_NS})
        for document in sorted(documents, key=lambda d: d.partition):
            sitemap_el = ET.SubElement(root, "sitemap")
            ET.SubElement(sitemap_el, "loc").text = partition_url(base_url, document.partition)
            ET.SubElement(sitemap_el, "lastmod").text = format_lastmod(document.updated_at)
        ET.indent(root, space="  ")
        return XML_DECLARATION + ET.tostring(root, encoding="unicode", method="xml")

    def validate(self, content: str, partition: date | None = None) -> ValidationReport:
        """Check a stored document's structure and entry values."""
        try:
            root = _parse_urlset(content)
        except DocumentParseError as exc:
            return ValidationReport(partition=partition, valid=False, errors=[str(exc)])

        errors: list[str] = []
        warnings: list[str] = []
        urls = root.findall(_URL_TAG)
        if not urls:
            errors.append("Sitemap contains no URLs")
        if len(urls) > MAX_URLS_PER_SITEMAP:
            warnings.append(f"Sitemap has {len(urls)} URLs, more than {MAX_URLS_PER_SITEMAP}")

        allowed = {str(freq) for freq in ChangeFrequency}
        for index, url_el in enumerate(urls, start=1):
            loc = (url_el.findtext(_LOC_TAG) or "").strip()
            if not loc:
                errors.append(f"URL #{index} has no <loc>")
                continue
            parsed = urlparse(loc)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                errors.append(f"URL #{index} has an invalid <loc>: {loc}")
            if len(loc) > MAX_URL_LENGTH:
                errors.append(f"URL #{index} exceeds {MAX_URL_LENGTH} characters")
            changefreq = url_el.findtext(f"{{{SITEMAP_NS}}}changefreq")
            if changefreq is not None and changefreq not in allowed:
                warnings.append(f"URL #{index} has unknown changefreq {changefreq!r}")
            priority = url_el.findtext(f"{{{SITEMAP_NS}}}priority")
            if priority is not None:
                try:
                    if not 0.0 <= float(priority) <= 1.0:
                        warnings.append(f"URL #{index} priority {priority} outside 0.0-1.0")
                except ValueError:
                    warnings.append(f"URL #{index} priority {priority!r} is not a number")
            lastmod = url_el.findtext(f"{{{SITEMAP_NS}}}lastmod")
            if lastmod is not None and not _is_w3c_datetime(lastmod):
                warnings.append(f"URL #{index} lastmod {lastmod!r} is not W3C format")

        return ValidationReport(
            partition=partition,
            valid=not errors,
            url_count=len(urls),
            errors=errors,
            warnings=warnings,
        )


def partition_url(base_url: str, partition: date) -> str:
    """Public URL of a partition's sitemap."""
    query = urlencode(
        {"yyyy": f"{partition.year:04d}", "mm": f"{partition.month:02d}", "dd": f"{partition.day:02d}"}
    )
    return f"{base_url.rstrip('/')}/sitemap.xml?{query}"


def _parse_urlset(content: str) -> ET.Element:
    if not content.strip():
        raise DocumentParseError("Sitemap content is empty")
    try:
        root = ET.fromstring(content.encode("utf-8"))
    except ET.ParseError as exc:
        raise DocumentParseError(f"Sitemap is not well-formed XML: {exc}") from exc
    if root.tag != f"{{{SITEMAP_NS}}}urlset":
        raise DocumentParseError(f"Unexpected root element {root.tag!r}, expected urlset")
    return root


def _is_w3c_datetime(value: str) -> bool:
    try:
        if len(value) == 10:
            date.fromisoformat(value)
        else:
            datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True
