"""URL and domain helpers shared by the site rules and the scraper."""
from __future__ import annotations

import re
from typing import Optional
from urllib.parse import parse_qs, quote, urlsplit

VIGLINK_REDIRECT = "https://redirect.viglink.com"

_COUPON_DOMAIN_WORDS = (
    (re.compile(r"^([a-z0-9-]+)coupons?\."), r"\1."),
    (re.compile(r"^([a-z0-9-]+)deals?\."), r"\1."),
    (re.compile(r"^([a-z0-9-]+)offers?\."), r"\1."),
    (re.compile(r"^([a-z0-9-]+)promo\."), r"\1."),
    (re.compile(r"coupons?([a-z0-9-]*\.[a-z]+)$"), r"\1"),
    (re.compile(r"deals?([a-z0-9-]*\.[a-z]+)$"), r"\1"),
    (re.compile(r"offers?([a-z0-9-]*\.[a-z]+)$"), r"\1"),
    (re.compile(r"promo([a-z0-9-]*\.[a-z]+)$"), r"\1"),
)


def clean_domain_name(domain: str) -> str:
    """Drop coupon-site noise from a scraped domain (``nikecoupons.com`` -> ``nike.com``)."""

    if not domain:
        return ""
    for pattern, replacement in _COUPON_DOMAIN_WORDS:
        domain = pattern.sub(replacement, domain)
    return domain.strip()


def extract_domain(url: Optional[str]) -> str:
    """Bare domain for ``url``: no scheme, ``www.``, path, port or stray characters."""

    if not url:
        return ""
    domain = re.sub(r"^https?://", "", url.strip(), flags=re.I)
    domain = re.sub(r"^www\.", "", domain, flags=re.I)
    domain = domain.split("/")[0].split("?")[0].split(":")[0]
    domain = re.sub(r"[^a-zA-Z0-9.-]", "", domain)
    domain = re.sub(r"\.+", ".", domain).strip(".")
    return clean_domain_name(domain.lower())


def ensure_https_url(url: Optional[str]) -> str:
    if not url:
        return ""
    url = re.sub(r"&(?=\.com|\.net|\.org)", "", url.strip())
    url = re.sub(r"[^a-zA-Z0-9./:?&=_%#-]", "", url)
    if url.startswith("https://"):
        return url
    if url.startswith("http://"):
        return "https://" + url[len("http://"):]
    return "https://" + url


def query_parameter(url: Optional[str], name: str) -> str:
    """Decoded value of query parameter ``name`` in ``url`` (``""`` if missing)."""

    if not url:
        return ""
    values = parse_qs(urlsplit(url).query).get(name)
    return values[0] if values else ""


def generate_viglink_url(merchant_url: Optional[str], api_key: str) -> str:
    """Wrap ``merchant_url`` in a VigLink affiliate redirect."""

    if not merchant_url:
        return ""
    if not api_key:
        return ensure_https_url(merchant_url)
    encoded = quote(ensure_https_url(merchant_url), safe="")
    return f"{VIGLINK_REDIRECT}?u={encoded}&key={api_key}&prodOvrd=WRA&opt=true"


def slugify(name: str) -> str:
    """Lowercase dash-separated alias used for stores."""

    slug = re.sub(r"[^a-z0-9]+", "-", (name or "").lower())
    return slug.strip("-")


__all__ = [
    "clean_domain_name",
    "ensure_https_url",
    "extract_domain",
    "generate_viglink_url",
    "query_parameter",
    "slugify",
]
