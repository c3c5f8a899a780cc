"""Multi-site coupon scraping: DOM adapter, locator, extractors and site rules."""

from .dom import DomNode, DomQueryError, HtmlDocument, HtmlNode, parse_html
from .locator import locate, locate_all
from .scraper import (
    CouponRecord,
    CouponScraper,
    MerchantInfo,
    ScrapeResult,
    UnsupportedSiteError,
    resolve_site,
    scrape_html,
    scrape_page,
)
from .selectors import CssList, CssOne, SelectorSpec, XPathWithFallback, as_selector_spec
from .site_configs import SITE_CONFIGS, SiteConfig, SiteRules, detect_site, get_site_config

__all__ = [
    "CouponRecord",
    "CouponScraper",
    "CssList",
    "CssOne",
    "DomNode",
    "DomQueryError",
    "HtmlDocument",
    "HtmlNode",
    "MerchantInfo",
    "SITE_CONFIGS",
    "ScrapeResult",
    "SelectorSpec",
    "SiteConfig",
    "SiteRules",
    "UnsupportedSiteError",
    "XPathWithFallback",
    "as_selector_spec",
    "detect_site",
    "get_site_config",
    "locate",
    "locate_all",
    "parse_html",
    "resolve_site",
    "scrape_html",
    "scrape_page",
]
