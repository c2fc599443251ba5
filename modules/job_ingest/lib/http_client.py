# modules/job_ingest/lib/http_client.py
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import requests
from requests.adapters import HTTPAdapter

LOG = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "CodeladderJobScraper/1.0 (Project Codeladder)"
DEFAULT_TIMEOUT = 15.0


class IngestError(Exception):
    """Base exception for ingestion failures."""


class FetchError(IngestError):
    """A GET failed: transport error, timeout or non-2xx status."""

    def __init__(self, url: str, cause: BaseException | str, http_status: int | None = None) -> None:
        self.url = url
        self.cause = cause
        self.http_status = http_status
        status = f" (Status: {http_status})" if http_status is not None else ""
        super().__init__(f"Failed to fetch {url}: {cause}{status}")


class HttpClient:
    """Shared HTTP client: fixed user agent, per-request timeout, no retries."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        })

        # Callers decide whether to skip or give up; we never retry here.
        adapter = HTTPAdapter(max_retries=0, pool_connections=4, pool_maxsize=4)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def fetch(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> str:
        """GET `url` and return the decoded body, or raise FetchError."""
        LOG.info("Fetching URL: %s", url)
        try:
            resp = self.session.get(url, params=params, timeout=timeout or self.timeout)
            resp.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            LOG.error("Error fetching URL: %s (status=%s)", url, status)
            raise FetchError(url, e, status) from e
        except requests.RequestException as e:
            LOG.error("Error fetching URL: %s (%r)", url, e)
            raise FetchError(url, e) from e

        if not resp.encoding and resp.apparent_encoding:
            resp.encoding = resp.apparent_encoding
        return resp.text

    def close(self) -> None:
        try:
            self.session.close()
        except Exception:
            LOG.debug("HttpClient.close() swallow", exc_info=True)

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
