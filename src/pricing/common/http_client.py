"""HTTP client with rate limiting, User-Agent rotation and raw HTML caching."""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import requests
from fake_useragent import UserAgent

from .config import Config
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class HTTPClient:
    """HTTP client wrapping requests for upstream price sources.

    Features:
    - Rate limiting (token bucket)
    - Random User-Agent rotation
    - Japanese Accept-Language by default (storefronts serve JP pages)
    - Raw HTML caching for audit when a cache dir is configured

    Requests are never retried within a run; a failed request raises
    ``requests.RequestException`` and the caller decides what to report.
    """

    DEFAULT_HEADERS = {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "ja-JP,ja;q=0.9,en;q=0.8",
    }

    def __init__(
        self,
        config: Config | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.config = config or Config()
        self._rate_limiter = rate_limiter or RateLimiter(self.config.rate_limit_rpm)
        self._session = requests.Session()
        self._ua = UserAgent(fallback="Mozilla/5.0")

        cache_dir = self.config.raw_html_cache_abs_dir
        if cache_dir is not None:
            cache_dir.mkdir(parents=True, exist_ok=True)

    def _headers(self, headers: dict[str, str] | None) -> dict[str, str]:
        merged = {"User-Agent": self._ua.random, **self.DEFAULT_HEADERS}
        if headers:
            merged.update(headers)
        return merged

    def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        cache_key: str | None = None,
    ) -> requests.Response:
        """Send a rate-limited GET request.

        Args:
            url: Target URL.
            params: Query parameters.
            headers: Extra headers (merged with defaults).
            cache_key: Optional key for raw HTML caching. Only used when
                       RAW_HTML_CACHE_DIR is configured.

        Returns:
            requests.Response object.

        Raises:
            requests.RequestException: On network error or non-2xx status.
        """
        self._rate_limiter.wait()
        resp = self._session.get(
            url,
            params=params,
            headers=self._headers(headers),
            timeout=self.config.request_timeout,
        )
        resp.raise_for_status()

        if cache_key:
            self._cache_response(cache_key, resp.text)

        return resp

    def post(
        self,
        url: str,
        data: dict[str, Any] | str | None = None,
        headers: dict[str, str] | None = None,
        auth: tuple[str, str] | None = None,
    ) -> requests.Response:
        """Send a rate-limited POST request (form-encoded body).

        Raises:
            requests.RequestException: On network error or non-2xx status.
        """
        self._rate_limiter.wait()
        resp = self._session.post(
            url,
            data=data,
            headers=self._headers(headers),
            auth=auth,
            timeout=self.config.request_timeout,
        )
        resp.raise_for_status()
        return resp

    def _cache_response(self, cache_key: str, html: str) -> Path | None:
        """Save raw HTML to cache directory for audit.

        File naming: {cache_key}_{date}_{hash}.html
        """
        cache_dir = self.config.raw_html_cache_abs_dir
        if cache_dir is None:
            return None
        date_str = datetime.now().strftime("%Y%m%d")
        content_hash = hashlib.md5(html.encode()).hexdigest()[:8]
        safe_key = "".join(c if c.isalnum() or c in "-_" else "_" for c in cache_key)
        path = cache_dir / f"{safe_key}_{date_str}_{content_hash}.html"
        path.write_text(html, encoding="utf-8")
        logger.debug("Cached HTML: %s", path)
        return path

    def close(self) -> None:
        """Close the underlying session."""
        self._session.close()

    def __enter__(self) -> HTTPClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
