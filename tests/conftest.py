# tests/conftest.py
import os
import tempfile

import pytest
from freezegun import freeze_time

from modules.job_ingest.lib import config as ji_config
from modules.job_ingest.lib.db import SqliteJobStore
from modules.job_ingest.lib.http_client import FetchError
from modules.job_ingest.lib.sources import BUILTIN


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls or external services).",
    )


def pytest_configure(config: pytest.Config) -> None:
    # Marker registration (so pytest --markers shows it)
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls or hit external services (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="ji-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    monkeypatch.delenv("TZ", raising=False)

    # Settings must come from kwargs in tests, never from the developer's shell
    for key in list(os.environ):
        if key.startswith(ji_config.ENV_PREFIX):
            monkeypatch.delenv(key, raising=False)

    yield


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z"):
        yield


@pytest.fixture
def sqlite_path(tmp_path):
    return str(tmp_path / "jobs.db")


@pytest.fixture
def store(sqlite_path):
    return SqliteJobStore(sqlite_path)


@pytest.fixture
def fresh_settings(sqlite_path):
    """
    Return a **brand-new** Settings instance for *each* test:
    per-test SQLite file, no politeness delays.
    """
    return ji_config.Settings.from_env_and_kwargs({
        "sqlite_path": sqlite_path,
        "page_delay_sec": 0,
        "detail_delay_sec": 0,
    })


# ---------------------------------------------------------------------
# Fake network + canned documents
# ---------------------------------------------------------------------
class FakeClient:
    """
    Stands in for HttpClient: serves canned bodies by exact URL.
    Unknown URLs raise FetchError(404); Exception values are raised as-is.
    """

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.calls = []
        self.closed = False

    def fetch(self, url, *, params=None, timeout=None):
        self.calls.append(url)
        body = self.pages.get(url)
        if body is None:
            raise FetchError(url, "404 Client Error: Not Found", 404)
        if isinstance(body, Exception):
            raise body
        return body

    def close(self):
        self.closed = True


@pytest.fixture
def fake_client():
    return FakeClient


def _detail_html(title="Senior Backend Engineer", company="Acme Corp", location="Chicago, IL", description=None):
    parts = ["<html><body>"]
    if title is not None:
        parts.append(f'<h1 data-id="job-title">{title}</h1>')
    if company is not None:
        parts.append(f'<a data-id="company-title" href="/company/acme">{company}</a>')
    parts.append('<img data-id="company-img" src="https://cdn.builtin.com/acme.png">')
    if location is not None:
        parts.append(f'<div class="loc"><span data-id="job-location">{location}</span></div>')
    parts.append(f'<div class="job-description-container"><p>{description or "Build and run services."}</p></div>')
    parts.append("</body></html>")
    return "".join(parts)


def _card_html(
    card_id,
    *,
    title="Backend Engineer",
    company="Acme",
    location="Chicago, IL",
    posted="Reposted 2 Hours Ago",
    modality_icons=("fa-house-building",),
    modality_texts=None,
    salary=None,
    tooltip=False,
    expanded=True,
):
    parts = [f'<div data-id="job-card" id="{card_id}">']
    parts.append('<img data-id="company-img" src="https://cdn.builtin.com/logo.png">')
    if company is not None:
        parts.append(f'<a data-id="company-title" href="/company/acme"><span>{company}</span></a>')
    if title is not None:
        parts.append(f'<a data-id="job-card-title" href="/job/backend-engineer/{card_id}">{title}</a>')
    if posted is not None:
        parts.append(f'<span class="fs-xs fw-bold bg-gray-01 font-Montserrat"><i class="fa-regular fa-clock"></i> {posted}</span>')
    if location is not None:
        attrs = ' data-bs-toggle="tooltip" title="Multiple locations"' if tooltip else ""
        parts.append(
            '<div class="d-flex"><div><i class="fa-regular fa-location-dot"></i></div>'
            f'<div><span class="font-barlow text-gray-04"{attrs}>{location}</span></div></div>'
        )
    texts = modality_texts or {"fa-house-building": "Hybrid", "fa-signal-stream": "Remote", "fa-building": "In-Office"}
    for icon in modality_icons:
        parts.append(
            f'<div class="d-flex"><div><i class="fa-regular {icon}"></i></div>'
            f'<span class="font-barlow text-gray-04">{texts[icon]}</span></div>'
        )
    if salary is not None:
        parts.append(
            '<div class="d-flex"><div><i class="fa-regular fa-sack-dollar"></i></div>'
            f'<span class="font-barlow text-gray-04">{salary}</span></div>'
        )
    if expanded:
        parts.append(f'<button data-bs-toggle="collapse" data-bs-target="#{card_id}-expanded"></button>')
    parts.append("</div>")
    return "".join(parts)


def _expanded_html(card_id, description="Own the ingestion pipeline.", skills=("Python", "AWS")):
    skill_spans = "".join(f'<span class="fs-xs text-gray-04 mx-sm">{s}</span>' for s in skills)
    return (
        f'<div id="{card_id}-expanded" class="collapse">'
        f'<div class="fs-sm fw-regular mb-md text-gray-04">{description}</div>'
        f'<div class="d-md-inline ps-md-sm">{skill_spans}</div>'
        "</div>"
    )


def _listing_html(top_cards=(), bottom_cards=(), extra=""):
    return (
        "<html><body>"
        f'<div id="search-results-top">{"".join(top_cards)}</div>'
        f'<div id="search-results-bottom">{"".join(bottom_cards)}</div>'
        f"{extra}"
        "</body></html>"
    )


def _sitemap_xml(entries, *, attribute_lastmod=False):
    """entries: iterable of (loc, lastmod-or-None)."""
    rows = []
    for loc, lastmod in entries:
        if lastmod is None:
            rows.append(f"<url><loc>{loc}</loc></url>")
        elif attribute_lastmod:
            rows.append(f'<url lastmod="{lastmod}"><loc>{loc}</loc></url>')
        else:
            rows.append(f"<url><loc>{loc}</loc><lastmod>{lastmod}</lastmod></url>")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">' + "".join(rows) + "</urlset>"
    )


class Docs:
    """Namespace of canned-document builders for the builtin.com profile."""

    profile = BUILTIN
    detail = staticmethod(_detail_html)
    card = staticmethod(_card_html)
    expanded = staticmethod(_expanded_html)
    listing = staticmethod(_listing_html)
    sitemap = staticmethod(_sitemap_xml)


@pytest.fixture
def docs():
    return Docs
