"""Playwright rendering of coupon pages into static HTML snapshots."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

logger = logging.getLogger(__name__)

DEFAULT_VIEWPORT = {"width": 1366, "height": 900}
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)


@dataclass
class BrowserConfig:
    """Configuration for page rendering."""

    headless: bool = True
    browser_type: str = "chromium"  # chromium, firefox, webkit
    viewport: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_VIEWPORT))
    user_agent: Optional[str] = DEFAULT_USER_AGENT
    locale: str = "en-US"
    timeout: int = 30000  # Default navigation timeout in milliseconds


@dataclass(frozen=True)
class RenderedPage:
    url: str
    title: str
    html: str


class SyncBrowserSession:
    """Synchronous Playwright session that owns one browser, context and page."""

    def __init__(self, config: BrowserConfig):
        self.config = config
        self._playwright = None
        self._browser = None
        self._context = None
        self.page = None

    def __enter__(self) -> "SyncBrowserSession":
        self._playwright = sync_playwright().start()

        if self.config.browser_type == "chromium":
            browser_launcher = self._playwright.chromium
        elif self.config.browser_type == "firefox":
            browser_launcher = self._playwright.firefox
        elif self.config.browser_type == "webkit":
            browser_launcher = self._playwright.webkit
        else:
            self._playwright.stop()
            raise ValueError(f"Unsupported browser type: {self.config.browser_type}")

        self._browser = browser_launcher.launch(headless=self.config.headless)

        context_options = {"viewport": self.config.viewport, "locale": self.config.locale}
        if self.config.user_agent:
            context_options["user_agent"] = self.config.user_agent
        self._context = self._browser.new_context(**context_options)
        self._context.set_default_timeout(self.config.timeout)

        self.page = self._context.new_page()
        logger.info("Created sync browser session with %s", self.config.browser_type)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        for resource in (self._context, self._browser):
            if resource is not None:
                try:
                    resource.close()
                except Exception as error:  # noqa: BLE001
                    logger.debug("Error closing browser resource: %s", error)
        if self._playwright is not None:
            self._playwright.stop()


def fetch_rendered_html(
    url: str,
    *,
    config: Optional[BrowserConfig] = None,
    wait_for_selector: Optional[str] = None,
    wait_timeout_ms: int = 10000,
    settle_ms: int = 2000,
) -> RenderedPage:
    """Load ``url`` in a real browser and return the rendered HTML.

    ``wait_for_selector`` (usually a site's coupon container) is awaited for up
    to ``wait_timeout_ms``; a timeout is logged and the snapshot is taken anyway,
    since the scraper's fallback strategies can still find items.
    """

    config = config or BrowserConfig()
    with SyncBrowserSession(config) as session:
        page = session.page
        page.goto(url, wait_until="domcontentloaded")
        if wait_for_selector:
            try:
                page.wait_for_selector(wait_for_selector, timeout=wait_timeout_ms)
            except PlaywrightTimeoutError:
                logger.warning("Timed out waiting for %s on %s", wait_for_selector, url)
        if settle_ms:
            page.wait_for_timeout(settle_ms)
        return RenderedPage(url=page.url, title=page.title(), html=page.content())


__all__ = ["BrowserConfig", "RenderedPage", "SyncBrowserSession", "fetch_rendered_html"]
