"""Discovery cascade and per-item extraction for supported coupon sites."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .cascade import first_success
from .dom import DomNode, first_attribute, node_text, parse_html
from .extractors import (
    extract_code,
    extract_subtitle,
    extract_text,
    extract_title,
    image_source,
    normalize_code,
    normalize_title,
    scan_logo_images,
)
from .locator import evaluate_xpath, locate, locate_all, query_all, query_first
from .site_configs import SiteConfig, detect_site, get_site_config, known_item_selectors
from .urls import ensure_https_url, extract_domain, generate_viglink_url

logger = logging.getLogger(__name__)

UNKNOWN_MERCHANT = "Unknown Merchant"

COUPON_VOCABULARY: Tuple[str, ...] = ("coupon", "code", "deal", "offer", "discount", "%", "save", "off")

CLASS_HEURISTIC_SELECTORS: Tuple[str, ...] = (
    '[class*="coupon"]',
    '[class*="deal"]',
    '[class*="offer"]',
    '[class*="promo"]',
    '[class*="discount"]',
    '[class*="code"]',
)
STRUCTURAL_CARD_SELECTORS: Tuple[str, ...] = ("article", ".card", ".item", ".box", "li")

_TEXT_SEARCH = ".//*[not(self::script or self::style or self::title)]"
TEXT_XPATHS: Tuple[str, ...] = (
    _TEXT_SEARCH + '[contains(text(), "coupon") or contains(text(), "Coupon") or contains(text(), "COUPON")]',
    _TEXT_SEARCH + '[contains(text(), "code") or contains(text(), "Code") or contains(text(), "CODE")]',
    _TEXT_SEARCH + '[contains(text(), "deal") or contains(text(), "Deal") or contains(text(), "DEAL")]',
    _TEXT_SEARCH + '[contains(text(), "offer") or contains(text(), "Offer") or contains(text(), "OFFER")]',
    _TEXT_SEARCH + '[contains(text(), "%") and (contains(text(), "off") or contains(text(), "Off") or contains(text(), "OFF"))]',
    _TEXT_SEARCH + '[contains(text(), "save") or contains(text(), "Save") or contains(text(), "SAVE")]',
)
TEXT_SEARCH_LIMIT = 20

STRUCTURAL_TAGS: Tuple[str, ...] = ("div", "article", "section", "li", "tr")
STRUCTURAL_MARKERS: Tuple[str, ...] = ("$", "%", "free", "save")
STRUCTURAL_LIMIT = 10

LOGO_EXCLUDED = ("placeholder", "loading")
CONTAINER_IMAGE_EXCLUDED = ("placeholder", "icon")

_CAMEL_FIELDS = {
    "promotion_title": "promotionTitle",
    "subtitle": "subtitle",
    "coupon_code": "couponCode",
    "description": "description",
    "expiry_date": "expiryDate",
    "url": "url",
    "merchant_name": "merchantName",
    "merchant_domain": "merchantDomain",
    "merchant_url": "merchantUrl",
    "merchant_logo": "merchantLogo",
    "merchant_description": "merchantDescription",
}


class UnsupportedSiteError(LookupError):
    """Raised when no registered site configuration matches a URL or key."""


@dataclass(frozen=True)
class MerchantInfo:
    name: str = UNKNOWN_MERCHANT
    domain: str = ""
    url: str = ""
    logo: str = ""
    description: str = ""


@dataclass(frozen=True)
class CouponRecord:
    """One scraped coupon together with the merchant it belongs to."""

    promotion_title: str
    subtitle: str = "other"
    coupon_code: str = ""
    description: str = ""
    expiry_date: str = ""
    url: str = ""
    merchant_name: str = ""
    merchant_domain: str = ""
    merchant_url: str = ""
    merchant_logo: str = ""
    merchant_description: str = ""

    def to_dict(self) -> Dict[str, str]:
        """JSON shape used by the browser extension (camelCase keys)."""

        return {_CAMEL_FIELDS[key]: value for key, value in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CouponRecord":
        values = {}
        for snake, camel in _CAMEL_FIELDS.items():
            value = data.get(camel, data.get(snake))
            if value is not None:
                values[snake] = str(value)
        if not values.get("promotion_title"):
            raise ValueError("Coupon record requires a promotionTitle")
        return cls(**values)

    def with_merchant(self, merchant: MerchantInfo) -> "CouponRecord":
        return CouponRecord(
            **{
                **asdict(self),
                "merchant_name": merchant.name,
                "merchant_domain": merchant.domain,
                "merchant_url": merchant.url,
                "merchant_logo": merchant.logo,
                "merchant_description": merchant.description,
            }
        )


@dataclass
class ScrapeResult:
    site_key: str
    url: str
    merchant: MerchantInfo
    records: List[CouponRecord] = field(default_factory=list)
    strategy: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "site": self.site_key,
            "url": self.url,
            "strategy": self.strategy,
            "merchant": asdict(self.merchant),
            "records": [record.to_dict() for record in self.records],
        }


def generate_coupon_description(merchant_name: str, code: str, subtitle: str) -> str:
    store = merchant_name or "this store"
    if code:
        return (
            "Is finding discounts from your go-to store a priority for you? You're in the perfect place. "
            f"Get {store} '{code}' coupon code to save big now. Get your discount by using this code at "
            "checkout. Valid only on the internet."
        )
    return (
        f"Looking for great deals from {store}? You've found the right place. Take advantage of this "
        f"{subtitle or 'special offer'} to maximize your savings. This exclusive offer is available online "
        "and can help you get more for less."
    )


def _has_coupon_vocabulary(node: DomNode) -> bool:
    text = node_text(node)
    if not 10 <= len(text) <= 1000:
        return False
    lowered = text.lower()
    return any(word in lowered for word in COUPON_VOCABULARY)


def _looks_like_deal_block(node: DomNode) -> bool:
    text = node_text(node)
    if not 20 <= len(text) <= 500:
        return False
    lowered = text.lower()
    return any(marker in lowered for marker in STRUCTURAL_MARKERS)


def _elements_only(nodes: Sequence[DomNode]) -> List[DomNode]:
    return [node for node in nodes if node.tag != "#text"]


def page_title(document: DomNode) -> str:
    return node_text(query_first(document, "title"))


def meta_content(document: DomNode, prop: str) -> str:
    element = query_first(document, f'meta[property="{prop}"]') or query_first(document, f'meta[name="{prop}"]')
    return first_attribute(element, ("content",))


class CouponScraper:
    """Runs the discovery cascade for one site configuration.

    Item discovery tries, in order: the configured container + item selectors,
    the configured item XPath, class-name heuristics, text-anchored XPath
    search, and finally a structural scan for anything that reads like a deal.
    The first strategy yielding at least one element wins.
    """

    def __init__(self, config: SiteConfig, *, viglink_api_key: str = "") -> None:
        self.config = config
        self.viglink_api_key = viglink_api_key

    # -- discovery -------------------------------------------------------
    def find_container(self, document: DomNode) -> DomNode:
        for selector in self.config.selectors.container_selectors():
            container = query_first(document, selector)
            if container is not None:
                logger.debug("Coupon container found with %s", selector)
                return container
        logger.debug("No coupon container for %s, scanning the whole page", self.config.key)
        body = query_first(document, "body")
        return body if body is not None else document

    def _configured_items(self, container: DomNode) -> List[DomNode]:
        return _elements_only(locate_all(self.config.selectors.coupon_items, container))

    def _configured_xpath(self, container: DomNode) -> List[DomNode]:
        xpath = self.config.selectors.coupon_item_xpath
        return _elements_only(evaluate_xpath(container, xpath)) if xpath else []

    @staticmethod
    def _class_heuristics(container: DomNode) -> List[DomNode]:
        selectors = CLASS_HEURISTIC_SELECTORS + known_item_selectors() + STRUCTURAL_CARD_SELECTORS
        for selector in selectors:
            candidates = [node for node in query_all(container, selector) if _has_coupon_vocabulary(node)]
            if candidates:
                logger.debug("Class heuristic %s matched %d items", selector, len(candidates))
                return candidates
        return []

    @staticmethod
    def _text_xpath(container: DomNode) -> List[DomNode]:
        for expression in TEXT_XPATHS:
            matches = _elements_only(evaluate_xpath(container, expression))[:TEXT_SEARCH_LIMIT]
            items = [node for node in matches if len(node_text(node)) > 5]
            if items:
                return items
        return []

    @staticmethod
    def _structural_scan(container: DomNode) -> List[DomNode]:
        for tag in STRUCTURAL_TAGS:
            blocks = [node for node in query_all(container, tag) if _looks_like_deal_block(node)]
            if blocks:
                return blocks[:STRUCTURAL_LIMIT]
        return []

    def discover_items(self, document: DomNode) -> Tuple[List[DomNode], Optional[str]]:
        """Return the coupon item elements and the name of the strategy that found them."""

        container = self.find_container(document)
        hit = first_success(
            [
                ("configured_items", lambda: self._configured_items(container)),
                ("configured_xpath", lambda: self._configured_xpath(container)),
                ("class_heuristics", lambda: self._class_heuristics(container)),
                ("text_xpath", lambda: self._text_xpath(container)),
                ("structural", lambda: self._structural_scan(container)),
            ],
            label=f"{self.config.key} item discovery",
        )
        if hit is None:
            return [], None
        return list(hit.value), hit.step

    # -- extraction ------------------------------------------------------
    def extract_item(self, item: DomNode, index: int, merchant_name: str) -> CouponRecord:
        selectors = self.config.selectors
        rules = self.config.rules

        raw_code = extract_code(
            item,
            selectors.coupon_code,
            item_attribute=selectors.coupon_code_attr,
            text_patterns=rules.code_from_text,
        )
        raw_code = rules.clean_code(raw_code.strip())
        code = normalize_code(raw_code)

        title = extract_title(item, selectors.promotion_title, selectors.promotion_title_attr)
        title = normalize_title(rules.clean_title(title, raw_code))
        if not title:
            merchant = merchant_name or "Merchant"
            title = f"{merchant} Discount Code: {code}" if code else f"{merchant} Special Offer #{index + 1}"

        subtitle = extract_subtitle(title)
        label = normalize_title(extract_text(selectors.discount_label, item))
        if label and len(label) < 20:
            subtitle = label.lower()

        return CouponRecord(
            promotion_title=title,
            subtitle=subtitle,
            coupon_code=code,
            description=normalize_title(extract_text(selectors.description, item)),
            expiry_date=normalize_title(extract_text(selectors.expiry_date, item)),
        )

    def scrape_coupons(self, document: DomNode, merchant_name: str = "") -> Tuple[List[CouponRecord], Optional[str]]:
        items, strategy = self.discover_items(document)
        records: List[CouponRecord] = []
        for index, item in enumerate(items):
            if self.config.rules.skip_item(index):
                continue
            try:
                record = self.extract_item(item, index, merchant_name)
            except Exception as exc:  # noqa: BLE001 - one broken card never aborts the page
                logger.warning("Failed to extract coupon %d on %s: %s", index, self.config.key, exc)
                continue
            records.append(record)
        logger.info(
            "Scraped %d coupons from %s", len(records), self.config.name,
            extra={"site": self.config.key, "strategy": strategy},
        )
        return records, strategy

    # -- merchant --------------------------------------------------------
    def _find_logo(self, document: DomNode, container: Optional[DomNode]) -> str:
        if self.config.rules.use_open_graph:
            og_image = meta_content(document, "og:image")
            if og_image:
                return og_image

        src = image_source(locate(self.config.selectors.merchant_logo, document))
        if src and not any(word in src for word in LOGO_EXCLUDED):
            return src

        if container is not None:
            for image in query_all(container, "img"):
                src = image_source(image)
                if src and not any(word in src for word in CONTAINER_IMAGE_EXCLUDED):
                    return src

        return scan_logo_images(document, LOGO_EXCLUDED)

    def _find_description(self, document: DomNode) -> str:
        rules = self.config.rules
        text = node_text(locate(self.config.selectors.merchant_description, document))
        if text:
            return rules.clean_description(normalize_title(text))

        for selector in rules.description_fallbacks:
            element = query_first(document, selector)
            if element is None:
                continue
            value = first_attribute(element, ("content",)) if element.tag == "meta" else node_text(element)
            value = normalize_title(value)
            if len(value) > 20:
                return value
        return rules.default_description

    def scrape_merchant_info(self, document: DomNode, url: str = "", title: Optional[str] = None) -> MerchantInfo:
        selectors = self.config.selectors
        rules = self.config.rules

        container = locate(selectors.merchant_container, document)
        link = locate(selectors.merchant_link, container if container is not None else document)

        name = domain = merchant_url = ""
        if link is not None:
            target = rules.extract_target_url(link.get_attribute("href"))
            if target:
                domain = extract_domain(target)
                merchant_url = ensure_https_url(target)
            if rules.name_from_link:
                name = rules.extract_merchant_name(node_text(link))

        if not name:
            name = rules.extract_merchant_name(title if title is not None else page_title(document))
        if not name:
            name = rules.merchant_name_from_url(url)
        if not name:
            name = UNKNOWN_MERCHANT

        if not merchant_url and rules.use_open_graph:
            target = meta_content(document, "og:url") or url
            if target:
                domain = extract_domain(target)
                merchant_url = ensure_https_url(target)
        if not merchant_url:
            site = rules.merchant_site_from_url(url)
            if site is None and name != UNKNOWN_MERCHANT:
                site = rules.merchant_site_from_name(name)
            if site is not None:
                domain, merchant_url = site

        return MerchantInfo(
            name=name,
            domain=domain,
            url=merchant_url,
            logo=self._find_logo(document, container),
            description=self._find_description(document),
        )

    # -- session ---------------------------------------------------------
    def enrich(self, record: CouponRecord, merchant: MerchantInfo) -> CouponRecord:
        """Attach merchant info, a generated description and the affiliate URL."""

        record = record.with_merchant(merchant)
        description = record.description or generate_coupon_description(
            merchant.name, record.coupon_code, record.subtitle
        )
        url = generate_viglink_url(merchant.url, self.viglink_api_key) if merchant.url else record.url
        return CouponRecord(**{**asdict(record), "description": description, "url": url})

    def scrape(self, document: DomNode, url: str = "", title: Optional[str] = None) -> ScrapeResult:
        merchant = self.scrape_merchant_info(document, url, title)
        records, strategy = self.scrape_coupons(document, merchant.name)
        return ScrapeResult(
            site_key=self.config.key,
            url=url,
            merchant=merchant,
            records=[self.enrich(record, merchant) for record in records],
            strategy=strategy,
        )


def resolve_site(url: str, site_key: Optional[str] = None) -> SiteConfig:
    """Pick the site configuration by explicit key, else by URL detection."""

    if site_key:
        config = get_site_config(site_key)
        if config is None:
            raise UnsupportedSiteError(f"Unknown site: {site_key}")
        return config
    config = detect_site(url)
    if config is None:
        raise UnsupportedSiteError(f"No site configuration matches {url}")
    return config


def scrape_page(
    document: DomNode,
    url: str,
    config: Optional[SiteConfig] = None,
    *,
    title: Optional[str] = None,
    viglink_api_key: str = "",
) -> ScrapeResult:
    config = config or resolve_site(url)
    return CouponScraper(config, viglink_api_key=viglink_api_key).scrape(document, url, title)


def scrape_html(
    html: str,
    url: str,
    *,
    site_key: Optional[str] = None,
    title: Optional[str] = None,
    viglink_api_key: str = "",
) -> ScrapeResult:
    """Parse an HTML snapshot and scrape it with the matching site configuration."""

    config = resolve_site(url, site_key)
    document = parse_html(html, url=url)
    return scrape_page(document, url, config, title=title, viglink_api_key=viglink_api_key)


__all__ = [
    "CouponRecord",
    "CouponScraper",
    "MerchantInfo",
    "ScrapeResult",
    "UNKNOWN_MERCHANT",
    "UnsupportedSiteError",
    "generate_coupon_description",
    "meta_content",
    "page_title",
    "resolve_site",
    "scrape_html",
    "scrape_page",
]
