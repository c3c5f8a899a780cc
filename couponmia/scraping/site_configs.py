"""Pre-configured coupon sites: detection rules, selectors and per-site behaviour."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Pattern, Tuple
from urllib.parse import urlsplit

from .selectors import CssList, CssOne, SelectorSpec, XPathWithFallback
from .urls import query_parameter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SiteSelectors:
    """Selector specs for one site; item-level specs are evaluated per coupon item."""

    coupon_container: str = "body"
    coupon_items: Optional[SelectorSpec] = None
    coupon_item_xpath: Optional[str] = None
    coupon_code_attr: Optional[str] = None
    merchant_container: Optional[SelectorSpec] = None
    merchant_link: Optional[SelectorSpec] = None
    merchant_logo: Optional[SelectorSpec] = None
    merchant_description: Optional[SelectorSpec] = None
    promotion_title: Optional[SelectorSpec] = None
    promotion_title_attr: Optional[str] = None
    description: Optional[SelectorSpec] = None
    coupon_code: Optional[SelectorSpec] = None
    expiry_date: Optional[SelectorSpec] = None
    discount_label: Optional[SelectorSpec] = None

    def container_selectors(self) -> List[str]:
        return [part.strip() for part in self.coupon_container.split(",") if part.strip()]


_TRAILING_NOISE = re.compile(
    r"(?:\s*(?:[&:|,\-–]|\band\b)\s*"
    r"|\s+(?:promo|discount|coupon|voucher)\s+codes?"
    r"|\s+(?:coupons?|codes?|deals?|offers?|discounts?|promos?|vouchers?))$",
    re.I,
)
_LEADING_NOISE = re.compile(r"^(?:save\s+with\s+|\d+%?\s*off\s+)", re.I)
_SPACES = re.compile(r"\s+")


class SiteRules:
    """Site-specific behaviour hooks; subclasses override what differs."""

    name_patterns: Tuple[Pattern[str], ...] = (
        re.compile(r"^(.+?)\s+(?:Promo Codes?|Discount Codes?|Coupon Codes?|Coupons?|Discounts?|Deals?)", re.I),
    )
    name_from_link = True
    code_from_text = True
    use_open_graph = False
    header_rows = 0
    description_fallbacks: Tuple[str, ...] = ()
    default_description = ""

    def extract_target_url(self, url: Optional[str]) -> str:
        return (url or "").strip()

    def extract_merchant_name(self, text: Optional[str]) -> str:
        """First matching title pattern wins; otherwise the cleaned text itself."""

        if not text:
            return ""
        text = _SPACES.sub(" ", text).strip()
        for pattern in self.name_patterns:
            match = pattern.search(text)
            if match and match.group(1).strip():
                return self.clean_merchant_name(match.group(1))
        return self.clean_merchant_name(text)

    def clean_merchant_name(self, name: Optional[str]) -> str:
        if not name:
            return ""
        cleaned = _SPACES.sub(" ", name).strip()
        previous = None
        while cleaned != previous:
            previous = cleaned
            cleaned = _LEADING_NOISE.sub("", cleaned).strip()
            cleaned = _TRAILING_NOISE.sub("", cleaned).strip()
        return cleaned

    def merchant_name_from_url(self, url: str) -> str:
        return ""

    def merchant_site_from_url(self, url: str) -> Optional[Tuple[str, str]]:
        return None

    def merchant_site_from_name(self, name: str) -> Optional[Tuple[str, str]]:
        return None

    def clean_description(self, description: str) -> str:
        return description

    def clean_code(self, code: str) -> str:
        return code

    def clean_title(self, title: str, code: str) -> str:
        return title

    def skip_item(self, index: int) -> bool:
        return index < self.header_rows


class WorthepennyRules(SiteRules):
    name_patterns = (
        re.compile(
            r"^\d+%?\s*Off\s+(.+?)\s+(?:Promo Codes?|Discount Codes?|Coupons?|Discounts?)"
            r"(?:\s*&\s*(?:Discounts?|Coupons?))?",
            re.I,
        ),
        re.compile(
            r"^(.+?)\s+(?:Promo Codes?|Discount Codes?|Coupons?|Discounts?)(?:\s*&\s*(?:Discounts?|Coupons?))?",
            re.I,
        ),
    )
    code_from_text = False

    def extract_target_url(self, url: Optional[str]) -> str:
        return query_parameter(url, "target") or super().extract_target_url(url)


class GrabonRules(SiteRules):
    name_patterns = (
        re.compile(r"^(.+?)\s+(?:Promo Codes?|Discount Codes?|Coupon Codes?)(?:\s*[:：].*)?", re.I),
        re.compile(r"^(.+?)\s+(?:Coupons?|Offers?|Deals?|Discounts?)", re.I),
        re.compile(r"^Save\s+with\s+(.+)", re.I),
    )
    name_from_link = False

    _slug = re.compile(r"/([^/]+)-coupons?/")
    _sentences = re.compile(r"[.!?]+")

    def merchant_name_from_url(self, url: str) -> str:
        match = self._slug.search(urlsplit(url).path)
        if not match:
            return ""
        return " ".join(word.capitalize() for word in match.group(1).split("-") if word)

    def merchant_site_from_name(self, name: str) -> Optional[Tuple[str, str]]:
        slug = re.sub(r"\s+", "", name.lower())
        if not slug:
            return None
        domain = f"{slug}.com"
        return domain, f"https://{domain}"

    def clean_description(self, description: str) -> str:
        """Drop a trailing sentence that advertises GrabOn itself."""

        sentences = [sentence.strip() for sentence in self._sentences.split(description) if sentence.strip()]
        if len(sentences) > 1 and "GrabOn" in sentences[-1]:
            sentences.pop()
            return ". ".join(sentences) + "."
        return description

    def clean_code(self, code: str) -> str:
        return "" if code.strip().upper() == "ACTIVATE OFFER" else code


class TenereteamRules(SiteRules):
    description_fallbacks = (
        'meta[name="description"]',
        'meta[property="og:description"]',
        ".intro-text",
        ".about-text",
        "p",
    )
    default_description = "Find the best coupons and deals for your favorite merchants on TenereTeam platform."
    known_sites: Mapping[str, str] = MappingProxyType({"suno-ai": "suno.ai"})

    _subdomain = re.compile(r"^([^.]+)\.tenereteam\.com$", re.I)

    def _subdomain_slug(self, url: str) -> str:
        host = urlsplit(url).hostname or ""
        match = self._subdomain.match(host)
        if not match or match.group(1).lower() == "www":
            return ""
        return match.group(1).lower()

    def merchant_name_from_url(self, url: str) -> str:
        slug = self._subdomain_slug(url)
        return " ".join(word.capitalize() for word in slug.split("-") if word)

    def merchant_site_from_url(self, url: str) -> Optional[Tuple[str, str]]:
        slug = self._subdomain_slug(url)
        if not slug:
            return None
        domain = self.known_sites.get(slug) or slug.replace("-", "") + ".com"
        return domain, f"https://{domain}"


class ColormangoRules(SiteRules):
    name_patterns = (
        re.compile(r"^(.+?)\s+(?:Coupon Codes?|Promo Codes?|Discount Codes?|Coupons?|Discounts?|Deals?)", re.I),
        re.compile(r"^(.+?)\s+[-|]", re.I),
    )
    name_from_link = False
    code_from_text = False
    use_open_graph = True
    header_rows = 1

    def extract_target_url(self, url: Optional[str]) -> str:
        return query_parameter(url, "url") or super().extract_target_url(url)

    def clean_title(self, title: str, code: str) -> str:
        if code and code in title:
            return _SPACES.sub(" ", title.replace(code, "", 1)).strip()
        return title


@dataclass(frozen=True)
class SiteConfig:
    key: str
    name: str
    domains: Tuple[str, ...]
    url_patterns: Tuple[str, ...]
    selectors: SiteSelectors
    rules: SiteRules = field(default_factory=SiteRules)

    def matches(self, url: str) -> bool:
        """True when the URL host contains a known domain and its path a known pattern."""

        if not url:
            return False
        parts = urlsplit(url if "://" in url else f"https://{url}")
        host = (parts.hostname or "").lower()
        path = parts.path or "/"
        return any(domain in host for domain in self.domains) and any(
            pattern in path for pattern in self.url_patterns
        )

    def item_selectors(self) -> Tuple[str, ...]:
        spec = self.selectors.coupon_items
        if isinstance(spec, CssOne):
            return (spec.selector,)
        if isinstance(spec, CssList):
            return spec.selectors
        if isinstance(spec, XPathWithFallback):
            return spec.fallbacks
        return ()


WORTHEPENNY = SiteConfig(
    key="worthepenny",
    name="Worthepenny",
    domains=("worthepenny.com",),
    url_patterns=("/coupon/", "/store/"),
    selectors=SiteSelectors(
        coupon_container="#coupon_list",
        coupon_items=CssOne("div[data-code]"),
        coupon_code_attr="data-code",
        merchant_container=CssOne("#brand_router"),
        merchant_link=CssOne("div a"),
        merchant_logo=CssList([
            "#brand_router img",
            ".merchant-logo img",
            ".brand-logo img",
            ".store-logo img",
            ".logo img",
        ]),
        merchant_description=XPathWithFallback(
            '//*[@id="left_unique"]/div[1]/p[1]',
            [
                "#left_unique > div:first-child > p:first-child",
                "#left_unique p:first-of-type",
                ".store-description",
                ".merchant-description",
                ".brand-description",
            ],
        ),
        promotion_title=CssList([
            "._hidden_4.worthepennycom[data-bf-ctt]",
            "._hidden_4[data-bf-ctt]",
            ".worthepennycom[data-bf-ctt]",
            "[data-bf-ctt]",
            ".coupon-title",
            ".offer-title",
            ".deal-title",
            "h3",
            "h4",
        ]),
        promotion_title_attr="data-bf-ctt",
    ),
    rules=WorthepennyRules(),
)

GRABON = SiteConfig(
    key="grabon",
    name="GrabOn",
    domains=("grabon.in",),
    url_patterns=("-coupons/", "/coupons/", "/offers/"),
    selectors=SiteSelectors(
        coupon_container="body",
        coupon_items=XPathWithFallback('.//*[@class="gcbr go-cpn-show go-cpy"]', [".gc-box", ".gcbr"]),
        merchant_container=CssList([".bank", ".merchant-info"]),
        merchant_link=CssList(['a[href*="visit"]', ".merchant-link"]),
        merchant_logo=XPathWithFallback(
            '//*[@id="gBody"]/main/section[1]/div/div[1]/img/@src',
            [".bank img", ".merchant-logo img", ".gcbl img", ".logo img", 'img[alt*="logo"]'],
        ),
        merchant_description=XPathWithFallback(
            '//*[@id="gmfDesp"]',
            [".store-description", ".merchant-description", ".brand-description", ".description", "p.desc"],
        ),
        promotion_title=XPathWithFallback("./p[1]", [".gcbr > p", ".coupon-title", ".offer-title"]),
        description=XPathWithFallback("./div[1]/span", [".description", ".offer-desc"]),
        coupon_code=XPathWithFallback(
            './div[@class="gcbr-r"]/span/span[@class="visible-lg"]',
            [".coupon-code", ".code", "[data-code]"],
        ),
    ),
    rules=GrabonRules(),
)

TENERETEAM = SiteConfig(
    key="tenereteam",
    name="TenereTeam",
    domains=("tenereteam.com",),
    url_patterns=("/",),
    selectors=SiteSelectors(
        coupon_container="#coupons-list, .coupons-list, .coupon-list, #coupons",
        coupon_items=CssList([".coupon-item", ".coupon-box", "div[data-coupon-id]"]),
        coupon_item_xpath='.//*[@data-coupon-id or @data-coupon]',
        merchant_container=CssList([".store-info", ".merchant-info", ".store-header"]),
        merchant_link=CssList(["a.store-link", "a.visit-store", 'a[rel*="nofollow"]']),
        merchant_logo=CssList([".store-logo img", ".merchant-logo img", ".store-header img", ".logo img"]),
        merchant_description=XPathWithFallback(
            '//*[contains(@class, "store-description")]',
            [".store-desc", ".merchant-description", ".about-store"],
        ),
        promotion_title=XPathWithFallback(
            './/*[contains(@class, "coupon-title")]',
            [".coupon-name", ".offer-title", "h3"],
        ),
        description=XPathWithFallback(
            './/*[contains(@class, "coupon-desc")]',
            [".description", ".desc"],
        ),
        coupon_code=XPathWithFallback('.//*[@data-code]', [".coupon-code", ".code-text"]),
        expiry_date=XPathWithFallback(
            './/*[contains(@class, "expir")]',
            [".expiry", ".expire-date", ".valid-until"],
        ),
    ),
    rules=TenereteamRules(),
)

COLORMANGO = SiteConfig(
    key="colormango",
    name="ColorMango",
    domains=("colormango.com",),
    url_patterns=("/coupon", "/promo", "discount"),
    selectors=SiteSelectors(
        coupon_container="#coupon-list, .coupon-list, body",
        coupon_items=XPathWithFallback('.//ul[contains(@class, "coupon-row")]', ["ul.coupon-row", ".coupon-table ul"]),
        coupon_code_attr="data-code",
        merchant_logo=CssList([".product-logo img", ".logo img", "img.product-icon"]),
        merchant_description=XPathWithFallback(
            '//*[@id="product-description"]',
            [".product-description", ".intro"],
        ),
        promotion_title=XPathWithFallback("./li[2]", ["li:nth-child(2)", ".coupon-title"]),
        discount_label=XPathWithFallback("./li[1]", ["li:first-child", ".discount"]),
    ),
    rules=ColormangoRules(),
)

SITE_CONFIGS: Mapping[str, SiteConfig] = MappingProxyType(
    {config.key: config for config in (WORTHEPENNY, GRABON, TENERETEAM, COLORMANGO)}
)


def detect_site(url: str) -> Optional[SiteConfig]:
    """Return the first registered site whose domain and URL pattern both match."""

    for config in SITE_CONFIGS.values():
        if config.matches(url):
            logger.debug("Detected site %s for %s", config.key, url)
            return config
    return None


def get_site_config(key: str) -> Optional[SiteConfig]:
    return SITE_CONFIGS.get((key or "").lower())


def known_item_selectors() -> Tuple[str, ...]:
    """Coupon-card CSS selectors of every registered site, deduplicated in order."""

    seen: Dict[str, None] = {}
    for config in SITE_CONFIGS.values():
        for selector in config.item_selectors():
            seen.setdefault(selector, None)
    return tuple(seen)


__all__ = [
    "COLORMANGO",
    "ColormangoRules",
    "GRABON",
    "GrabonRules",
    "SITE_CONFIGS",
    "SiteConfig",
    "SiteRules",
    "SiteSelectors",
    "TENERETEAM",
    "TenereteamRules",
    "WORTHEPENNY",
    "WorthepennyRules",
    "detect_site",
    "get_site_config",
    "known_item_selectors",
]
