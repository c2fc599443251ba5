# tests/test_discovery.py
from datetime import datetime, timezone

import pytest

from modules.job_ingest.lib.discovery import (
    SitemapParseError,
    discover_from_listing_pages,
    discover_from_sitemap,
    filter_sitemap_entries,
    page_url,
    parse_sitemap,
    scrape_detail_pages,
)
from modules.job_ingest.lib.http_client import FetchError
from modules.job_ingest.lib.models import SitemapEntry

SITEMAP = "https://builtin.com/job-board-sitemap.xml"
LISTING = "https://www.builtin.com/jobs/dev-engineering"
NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


# ----------------------------------------------------------------------
# Sitemap
# ----------------------------------------------------------------------
def test_sitemap_age_filter_and_undated_entries(docs, fake_client):
    xml = docs.sitemap([
        ("https://builtin.com/job/fresh/1", "2024-12-30T00:00:00Z"),
        ("https://builtin.com/job/eight-days/2", "2024-12-24T00:00:00Z"),
        ("https://builtin.com/job/undated/3", None),
        ("https://builtin.com/company/acme", "2024-12-31T00:00:00Z"),
    ])
    client = fake_client({SITEMAP: xml})

    entries = discover_from_sitemap(client, SITEMAP, max_age_days=7, max_count=50, now=NOW)

    assert [e.url for e in entries] == ["https://builtin.com/job/fresh/1", "https://builtin.com/job/undated/3"]
    assert entries[0].lastmod == datetime(2024, 12, 30, tzinfo=timezone.utc)
    assert entries[0].lastmod_raw == "2024-12-30T00:00:00Z"
    assert entries[1].lastmod is None


def test_sitemap_reads_lastmod_attribute(docs):
    xml = docs.sitemap([("https://builtin.com/job/a/1", "2024-12-31")], attribute_lastmod=True)
    (entry,) = parse_sitemap(xml)
    assert entry.lastmod == datetime(2024, 12, 31, tzinfo=timezone.utc)


def test_sitemap_unparseable_lastmod_is_excluded(docs, fake_client):
    xml = docs.sitemap([
        ("https://builtin.com/job/a/1", "not-a-date"),
        ("https://builtin.com/job/b/2", None),
    ])
    parsed_bad, _ = parse_sitemap(xml)
    assert parsed_bad.lastmod is None
    assert parsed_bad.lastmod_raw == "not-a-date"

    entries = discover_from_sitemap(fake_client({SITEMAP: xml}), SITEMAP, 7, 10, now=NOW)
    assert [e.url for e in entries] == ["https://builtin.com/job/b/2"]

    attr_xml = docs.sitemap([("https://builtin.com/job/c/3", "not-a-date")], attribute_lastmod=True)
    assert filter_sitemap_entries(parse_sitemap(attr_xml), 7, 10, now=NOW) == []


def test_sitemap_cap_preserves_order(docs, fake_client):
    xml = docs.sitemap([(f"https://builtin.com/job/x/{i}", None) for i in range(10)])
    entries = discover_from_sitemap(fake_client({SITEMAP: xml}), SITEMAP, 7, 3, now=NOW)
    assert [e.url.rsplit("/", 1)[-1] for e in entries] == ["0", "1", "2"]


def test_sitemap_malformed_xml_raises(fake_client):
    with pytest.raises(SitemapParseError):
        discover_from_sitemap(fake_client({SITEMAP: "<urlset><url>"}), SITEMAP, 7, 10, now=NOW)


def test_sitemap_fetch_failure_raises(fake_client):
    with pytest.raises(FetchError):
        discover_from_sitemap(fake_client({}), SITEMAP, 7, 10, now=NOW)


def test_detail_pages_count_fetch_failures_and_carry_lastmod(docs, fake_client):
    ok = "https://builtin.com/job/ok/1"
    broken = "https://builtin.com/job/broken/2"
    unparseable = "https://builtin.com/job/empty/3"
    client = fake_client({ok: docs.detail(), unparseable: "<html></html>"})
    entries = [
        SitemapEntry(ok, NOW, "2024-12-31T00:00:00Z"),
        SitemapEntry(broken),
        SitemapEntry(unparseable),
    ]

    result = scrape_detail_pages(client, entries, docs.profile, delay_sec=0)

    assert [r.external_id for r in result.items] == ["builtin-job-1"]
    assert result.items[0].date_posted == "2024-12-31T00:00:00Z"
    assert len(result.errors) == 1
    assert broken in result.errors[0]
    assert client.calls == [ok, broken, unparseable]


# ----------------------------------------------------------------------
# Listing pages
# ----------------------------------------------------------------------
def test_page_url_merges_existing_query():
    assert page_url(LISTING, 2) == f"{LISTING}?page=2"
    assert page_url(f"{LISTING}?city=Chicago&page=9", 3) == f"{LISTING}?city=Chicago&page=3"


def _page(docs, *ids):
    return docs.listing(top_cards=[docs.card(i) for i in ids])


def test_listing_stops_on_empty_page_after_first(docs, fake_client):
    client = fake_client({
        page_url(LISTING, 1): _page(docs, "a", "b"),
        page_url(LISTING, 2): _page(docs),
        page_url(LISTING, 3): _page(docs, "c"),
    })
    result = discover_from_listing_pages(client, LISTING, 3, 100, docs.profile, delay_sec=0)
    assert [r.external_id for r in result.items] == ["a", "b"]
    assert client.calls == [page_url(LISTING, 1), page_url(LISTING, 2)]


def test_listing_empty_first_page_keeps_going(docs, fake_client):
    client = fake_client({
        page_url(LISTING, 1): _page(docs),
        page_url(LISTING, 2): _page(docs, "a"),
    })
    result = discover_from_listing_pages(client, LISTING, 2, 100, docs.profile, delay_sec=0)
    assert [r.external_id for r in result.items] == ["a"]


def test_listing_stops_once_desired_count_reached(docs, fake_client):
    client = fake_client({
        page_url(LISTING, 1): _page(docs, "a", "b", "c"),
        page_url(LISTING, 2): _page(docs, "d", "e", "f"),
        page_url(LISTING, 3): _page(docs, "g"),
    })
    result = discover_from_listing_pages(client, LISTING, 3, 4, docs.profile, delay_sec=0)
    assert len(result.items) == 6
    assert client.calls == [page_url(LISTING, 1), page_url(LISTING, 2)]


def test_listing_always_fetches_first_page(docs, fake_client):
    client = fake_client({page_url(LISTING, 1): _page(docs, "a")})
    result = discover_from_listing_pages(client, LISTING, 1, 0, docs.profile, delay_sec=0)
    assert [r.external_id for r in result.items] == ["a"]


def test_listing_fetch_failure_aborts_loop(docs, fake_client):
    client = fake_client({
        page_url(LISTING, 1): _page(docs, "a"),
        page_url(LISTING, 3): _page(docs, "c"),
    })
    result = discover_from_listing_pages(client, LISTING, 3, 100, docs.profile, delay_sec=0)
    assert [r.external_id for r in result.items] == ["a"]
    assert len(result.errors) == 1
    assert client.calls == [page_url(LISTING, 1), page_url(LISTING, 2)]


def test_listing_sleeps_between_pages_only(docs, fake_client, monkeypatch):
    sleeps = []
    monkeypatch.setattr("modules.job_ingest.lib.discovery.time.sleep", sleeps.append)
    client = fake_client({page_url(LISTING, i): _page(docs, f"id{i}") for i in (1, 2)})
    discover_from_listing_pages(client, LISTING, 2, 100, docs.profile, delay_sec=0.5)
    assert sleeps == [0.5]
