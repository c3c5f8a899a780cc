"""Client for the paginated BrandReward affiliate API."""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode

import requests

logger = logging.getLogger(__name__)

ADVERTISER_LIST = "advertiser.advertiser_list"
CONTENT_FEED = "links.content_feed"
PAGED_ACTIONS = frozenset({ADVERTISER_LIST, CONTENT_FEED})

TEST_MODE_PAGE_DELAY = 1.0


class AffiliateAPIError(RuntimeError):
    """Raised when a page cannot be fetched or is not a JSON payload."""


class AffiliateClient:
    """Fetches advertisers and offers page by page.

    A failed page is logged and skipped; fetching stops after
    ``max_consecutive_errors`` failures in a row. In test mode only the first
    page is requested.
    """

    def __init__(
        self,
        base_url: str,
        user: str,
        key: str,
        *,
        page_size: int = 1000,
        timeout: float = 30.0,
        page_delay: float = 10.0,
        test_mode: bool = False,
        max_consecutive_errors: int = 3,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.user = user
        self.key = key
        self.page_size = page_size
        self.timeout = timeout
        self.page_delay = TEST_MODE_PAGE_DELAY if test_mode else page_delay
        self.test_mode = test_mode
        self.max_consecutive_errors = max_consecutive_errors
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings, **overrides: Any) -> "AffiliateClient":
        options = {
            "page_size": settings.affiliate_page_size,
            "timeout": settings.affiliate_request_timeout,
            "page_delay": settings.sync_page_delay,
            "test_mode": settings.sync_test_mode,
        }
        options.update(overrides)
        return cls(settings.affiliate_api_url, settings.api_user, settings.api_key, **options)

    def build_params(self, action: str, page: int = 1) -> Dict[str, str]:
        params = {
            "act": action,
            "user": self.user,
            "key": self.key,
            "outformat": "json",
            "page": str(page),
        }
        if action in PAGED_ACTIONS:
            params["pagesize"] = str(self.page_size)
        return params

    def build_url(self, action: str, page: int = 1) -> str:
        return f"{self.base_url}?{urlencode(self.build_params(action, page))}"

    def fetch_page(self, action: str, page: int) -> Dict[str, Any]:
        """Return one decoded page; raises :class:`AffiliateAPIError` on failure."""

        try:
            response = self.session.get(self.base_url, params=self.build_params(action, page), timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as exc:
            raise AffiliateAPIError(f"{action} page {page} failed: {exc}") from exc

        text = response.text.strip()
        if not text.startswith(("{", "[")):
            raise AffiliateAPIError(f"{action} page {page} returned non-JSON: {text[:100]!r}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise AffiliateAPIError(f"{action} page {page} returned invalid JSON: {exc}") from exc
        if not isinstance(payload, dict) or not payload.get("response") or "data" not in payload:
            raise AffiliateAPIError(f"{action} page {page} is missing response/data")
        return payload

    def fetch_all(self, action: str) -> List[Dict[str, Any]]:
        records: List[Dict[str, Any]] = []
        page = 1
        total_pages = 1
        errors = 0

        while page <= total_pages:
            try:
                payload = self.fetch_page(action, page)
            except AffiliateAPIError as exc:
                errors += 1
                logger.error("%s (%d/%d consecutive errors)", exc, errors, self.max_consecutive_errors)
                if errors >= self.max_consecutive_errors:
                    logger.error("Stopping %s after %d consecutive errors", action, errors)
                    break
            else:
                errors = 0
                try:
                    total_pages = int(payload["response"].get("PageTotal", total_pages))
                except (TypeError, ValueError):
                    logger.warning("Unreadable PageTotal for %s page %d", action, page)
                data = payload.get("data") or []
                records.extend(data)
                logger.info("Fetched %s page %d/%d (%d records)", action, page, total_pages, len(data))
                if self.test_mode:
                    break
            page += 1
            if page <= total_pages and self.page_delay:
                self._sleep(self.page_delay)

        logger.info("Fetched %d records for %s", len(records), action)
        return records

    def fetch_advertisers(self) -> List[Dict[str, Any]]:
        return self.fetch_all(ADVERTISER_LIST)

    def fetch_offers(self) -> List[Dict[str, Any]]:
        return self.fetch_all(CONTENT_FEED)


__all__ = [
    "ADVERTISER_LIST",
    "AffiliateAPIError",
    "AffiliateClient",
    "CONTENT_FEED",
]
