"""Field extraction and normalization helpers for scraped coupon items."""
from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Pattern, Sequence, Tuple

from .dom import DomNode, first_attribute, node_text
from .locator import locate, query_first
from .selectors import SelectorSpec

logger = logging.getLogger(__name__)

CODE_MIN_LENGTH = 3
CODE_MAX_LENGTH = 20
TITLE_MIN_LENGTH = 5
TITLE_MAX_LENGTH = 300

CODE_ATTRIBUTES: Tuple[str, ...] = ("data-code", "data-coupon", "data-promo")

GENERIC_TITLE_SELECTORS: Tuple[str, ...] = (
    "h1", "h2", "h3", "h4", "h5", ".title", ".heading", "strong", "b", "span", "p",
)

# Keywords are case-insensitive; the captured token must already look like a code.
CODE_PATTERNS: Tuple[Tuple[str, Pattern[str], bool], ...] = (
    ("keyword", re.compile(r"(?i:Code|Coupon|Promo|Discount)(?:\s*[:：]\s*|\s+)([A-Z0-9]{3,})"), False),
    ("token", re.compile(r"\b([A-Z0-9]{4,})\b"), True),
    ("instruction", re.compile(r"(?i:Use|Apply|Enter)(?:\s+(?i:code)\s+|\s+)([A-Z0-9]{3,})"), False),
    ("mixed", re.compile(r"\b([A-Z]{2,}[0-9]+|[0-9]+[A-Z]{2,})\b"), True),
)

_CODE_STOPWORDS = frozenset({
    "CODE", "CODES", "COUPON", "COUPONS", "PROMO", "DEAL", "DEALS", "OFFER", "OFFERS",
    "DISCOUNT", "SAVE", "FREE", "SHOP", "SALE", "SHOW", "COPY", "GET", "USE", "OFF",
})

_WHITESPACE = re.compile(r"\s+")
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")

_SUBTITLE_PATTERNS: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(r"(\d+%\s*off)", re.I), "{0}"),
    (re.compile(r"(\$\d+(?:\.\d+)?\s*off)", re.I), "{0}"),
    (re.compile(r"([£€¥]\d+(?:\.\d+)?\s*off)", re.I), "{0}"),
    (re.compile(r"(?:up\s*to\s*|save\s*)(\d+%)", re.I), "{0} off"),
    (re.compile(r"save(?:\s*up\s*to)?\s*(\$\d+(?:\.\d+)?)", re.I), "{0} off"),
)
_SUBTITLE_KEYWORDS: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(r"free\s*shipping", re.I), "free shipping"),
    (re.compile(r"buy\s*(?:one|1)\s*get\s*(?:one|1)|bogo", re.I), "bogo"),
    (re.compile(r"free\s*(?:delivery|returns?)", re.I), "free delivery"),
)


def normalize_code(raw: Optional[str]) -> str:
    """Strip non-alphanumerics and uppercase; ``""`` when the result is too short."""

    if not raw:
        return ""
    code = _NON_ALNUM.sub("", raw).upper()
    return code if len(code) >= CODE_MIN_LENGTH else ""


def normalize_title(raw: Optional[str]) -> str:
    if not raw:
        return ""
    return _WHITESPACE.sub(" ", raw).strip()


def looks_like_title(text: str, minimum: int = TITLE_MIN_LENGTH, maximum: int = TITLE_MAX_LENGTH) -> bool:
    return minimum <= len(text) <= maximum


def _plausible_code(token: str) -> bool:
    return (
        CODE_MIN_LENGTH <= len(token) <= CODE_MAX_LENGTH
        and not token.isdigit()
        and token.upper() not in _CODE_STOPWORDS
    )


def extract_code_from_text(text: str, patterns: Sequence[Tuple[str, Pattern[str], bool]] = CODE_PATTERNS) -> str:
    """Scan free text for something that looks like a coupon code.

    Patterns are tried in order; a pattern flagged as a scan looks at every
    match, the others only at the first one. The first plausible token wins.
    """

    if not text:
        return ""
    for name, pattern, scan in patterns:
        matches = pattern.finditer(text) if scan else filter(None, [pattern.search(text)])
        for match in matches:
            token = match.group(1)
            if _plausible_code(token):
                logger.debug("Code %r found by %s pattern", token, name)
                return token
    return ""


def extract_subtitle(title: Optional[str]) -> str:
    """Bucket a promotion title into a short discount label (``"20% off"``, ``"bogo"``, ...)."""

    if not title:
        return "other"
    for pattern, template in _SUBTITLE_PATTERNS:
        match = pattern.search(title)
        if match:
            return template.format(match.group(1)).lower()
    for pattern, label in _SUBTITLE_KEYWORDS:
        if pattern.search(title):
            return label
    return "other"


def first_text_line(text: str, minimum: int = TITLE_MIN_LENGTH + 1) -> str:
    for line in text.splitlines():
        line = line.strip()
        if len(line) >= minimum:
            return line
    return ""


def extract_text(spec: Optional[SelectorSpec], item: DomNode, attribute: Optional[str] = None) -> str:
    """Locate ``spec`` under ``item`` and return its attribute value or text."""

    element = locate(spec, item)
    if element is None:
        return ""
    if attribute:
        value = element.get_attribute(attribute)
        if value and value.strip():
            return value.strip()
    return node_text(element)


def extract_title(
    item: DomNode,
    spec: Optional[SelectorSpec] = None,
    attribute: Optional[str] = None,
    generic_selectors: Iterable[str] = GENERIC_TITLE_SELECTORS,
) -> str:
    """Configured title, then generic heading-ish tags, then the item's first text line."""

    title = normalize_title(extract_text(spec, item, attribute))
    if title:
        return title

    for selector in generic_selectors:
        text = normalize_title(node_text(query_first(item, selector)))
        if TITLE_MIN_LENGTH < len(text) < 200:
            return text

    full_text = node_text(item)
    if 10 < len(full_text) < TITLE_MAX_LENGTH:
        return normalize_title(first_text_line(full_text))
    return ""


def extract_code(
    item: DomNode,
    spec: Optional[SelectorSpec] = None,
    item_attribute: Optional[str] = None,
    text_patterns: bool = True,
) -> str:
    """Return the raw code for ``item``; normalization is left to the caller.

    Order: the attribute named on the item itself, then the configured code
    element (its ``data-*`` code attributes before its text), then a regex
    scan of the item's full text.
    """

    if item_attribute:
        value = item.get_attribute(item_attribute)
        if value and value.strip():
            return value.strip()

    element = locate(spec, item)
    if element is not None:
        value = first_attribute(element, CODE_ATTRIBUTES) or node_text(element)
        if value:
            return value

    if text_patterns:
        return extract_code_from_text(node_text(item))
    return ""


def image_source(element: Optional[DomNode]) -> str:
    """``src`` (or lazy-load attribute) of an image; text for XPath attribute results."""

    if element is None:
        return ""
    if element.tag == "#text":
        return node_text(element)
    if element.tag == "meta":
        return first_attribute(element, ("content",))
    return first_attribute(element, ("src", "data-src", "data-lazy"))


def scan_logo_images(root: DomNode, excluded: Sequence[str] = ("placeholder", "loading")) -> str:
    """Find an ``<img>`` whose alt/src mentions a logo or brand."""

    images: List[DomNode] = root.query_selector_all("img")
    for image in images:
        src = image_source(image)
        alt = (image.get_attribute("alt") or "").lower()
        if not src:
            continue
        if "logo" in alt or "logo" in src.lower() or "brand" in alt:
            if not any(word in src for word in excluded):
                return src
    return ""


__all__ = [
    "CODE_ATTRIBUTES",
    "CODE_PATTERNS",
    "GENERIC_TITLE_SELECTORS",
    "extract_code",
    "extract_code_from_text",
    "extract_subtitle",
    "extract_text",
    "extract_title",
    "first_text_line",
    "image_source",
    "looks_like_title",
    "normalize_code",
    "normalize_title",
    "scan_logo_images",
]
