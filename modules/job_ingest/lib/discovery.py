"""
Discovery strategies: which documents to fetch, in what order, and when to stop.

  - discover_from_sitemap():       recent job-detail URLs from an XML sitemap
  - scrape_detail_pages():         fetch + extract each of those URLs
  - discover_from_listing_pages(): walk ?page=N listing pages

Everything here is strictly sequential with fixed politeness delays.
"""

from __future__ import annotations

import logging
import time
import xml.etree.ElementTree as ET
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from dateutil import parser as _date_parser

from .extractors import extract_detail_page, extract_listing_page
from .http_client import FetchError, HttpClient, IngestError
from .models import ScrapeResult, SitemapEntry
from .utils import utc_now

if TYPE_CHECKING:
    from .sources.base import SourceProfile

log = logging.getLogger(__name__)

DEFAULT_DETAIL_DELAY_SEC = 0.2
DEFAULT_PAGE_DELAY_SEC = 0.5


class SitemapParseError(IngestError):
    """Sitemap body could not be parsed as XML."""


# ---- Sitemap -----------------------------------------------------------------


def _local(tag: str) -> str:
    """Strip an ElementTree '{namespace}' prefix."""
    return tag.rsplit("}", 1)[-1]


def _child_text(el: ET.Element, name: str) -> str | None:
    for child in el:
        if _local(child.tag) == name:
            text = (child.text or "").strip()
            return text or None
    return None


def _parse_lastmod(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        dt = _date_parser.isoparse(raw)
    except (ValueError, OverflowError):
        log.debug("Ignoring unparseable sitemap lastmod %r", raw)
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def parse_sitemap(xml_text: str) -> list[SitemapEntry]:
    """
    All <url> entries of a urlset, in document order, namespace-agnostic.
    lastmod may be a child element or an attribute on <url>.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise SitemapParseError(f"Invalid sitemap XML: {e}") from e

    entries: list[SitemapEntry] = []
    for el in root.iter():
        if _local(el.tag) != "url":
            continue
        loc = _child_text(el, "loc")
        if not loc:
            continue
        raw = _child_text(el, "lastmod") or (el.get("lastmod") or "").strip() or None
        entries.append(SitemapEntry(url=loc, lastmod=_parse_lastmod(raw), lastmod_raw=raw))
    return entries


def filter_sitemap_entries(
    entries: Iterable[SitemapEntry],
    max_age_days: int,
    max_count: int,
    *,
    path_marker: str = "/job/",
    now: datetime | None = None,
) -> list[SitemapEntry]:
    """
    Keep detail URLs modified within max_age_days, order preserved, capped.
    Entries without a lastmod are kept; an unparseable lastmod excludes the entry.
    """
    cutoff = (now or utc_now()) - timedelta(days=max_age_days)
    kept: list[SitemapEntry] = []
    for entry in entries:
        if len(kept) >= max_count:
            break
        if path_marker not in entry.url:
            continue
        if entry.lastmod is not None:
            if entry.lastmod < cutoff:
                continue
        elif entry.lastmod_raw is not None:
            log.debug("Skipping sitemap entry with unparseable lastmod %r: %s", entry.lastmod_raw, entry.url)
            continue
        kept.append(entry)
    return kept


def discover_from_sitemap(
    client: HttpClient,
    sitemap_url: str,
    max_age_days: int,
    max_count: int,
    *,
    path_marker: str = "/job/",
    now: datetime | None = None,
) -> list[SitemapEntry]:
    """
    Fetch the sitemap and return candidate detail URLs.

    Raises FetchError if the sitemap can't be fetched, SitemapParseError if it
    isn't XML. Both are non-fatal for a run: callers fall through to listing pages.
    """
    xml_text = client.fetch(sitemap_url)
    entries = filter_sitemap_entries(
        parse_sitemap(xml_text),
        max_age_days,
        max_count,
        path_marker=path_marker,
        now=now,
    )
    log.info("Sitemap: Found %d recent job URLs.", len(entries))
    return entries


def scrape_detail_pages(
    client: HttpClient,
    entries: Iterable[SitemapEntry],
    profile: SourceProfile,
    *,
    delay_sec: float = DEFAULT_DETAIL_DELAY_SEC,
) -> ScrapeResult:
    """
    Fetch and extract each detail page in turn.

    A fetch failure counts one error and moves on; a page that fails extraction
    is simply skipped. The sitemap lastmod is carried as the posted phrase.
    """
    result = ScrapeResult(source=profile.name)
    for entry in entries:
        try:
            html = client.fetch(entry.url)
            record = extract_detail_page(html, entry.url, profile, date_posted=entry.lastmod_raw)
        except Exception as e:
            log.error("Sitemap: Error parsing detail page %s: %s", entry.url, e)
            result.errors.append(f"{entry.url}: {e}")
            continue
        if record is not None:
            result.items.append(record)
        if delay_sec > 0:
            time.sleep(delay_sec)
    return result


# ---- Listing pages -------------------------------------------------------------


def page_url(base_url: str, page: int) -> str:
    """base_url with ?page=N set, merging into any existing query string."""
    parts = urlsplit(base_url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "page"]
    query.append(("page", str(page)))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def discover_from_listing_pages(
    client: HttpClient,
    base_url: str,
    page_limit: int,
    desired_count: int,
    profile: SourceProfile,
    *,
    delay_sec: float = DEFAULT_PAGE_DELAY_SEC,
) -> ScrapeResult:
    """
    Walk listing pages 1..page_limit.

    Stops early when (after page 1) desired_count records have been gathered,
    when a page after the first yields nothing, or on the first fetch failure.
    Page 1 coming back empty does not stop the walk.
    """
    result = ScrapeResult(source=profile.name)
    for i in range(1, page_limit + 1):
        if i > 1 and len(result.items) >= desired_count:
            log.info("Desired job count reached, stopping early.")
            break

        url = page_url(base_url, i)
        try:
            html = client.fetch(url)
        except FetchError as e:
            log.error("Error scraping page %s: %s", url, e)
            result.errors.append(f"{url}: {e}")
            break

        records = extract_listing_page(html, profile)
        if not records and i > 1:
            log.info("No more jobs on page, stopping.")
            break
        result.items.extend(records)

        if i < page_limit and delay_sec > 0:
            time.sleep(delay_sec)
    return result
