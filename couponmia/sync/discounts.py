"""Free-text discount parsing and per-store discount statistics."""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional, Union

PERCENT = "percent"
AMOUNT = "amount"
BXGY = "bxgy"
UPTO_PERCENT = "upto_percent"
OTHER = "other"

PERCENT_TYPES = frozenset({PERCENT, UPTO_PERCENT})

_PERCENT_OFF = re.compile(r"(\d+)%\s*off")
_UPTO_PREFIX = re.compile(r"up\s*to\s*$")
_AMOUNT_OFF = re.compile(r"[£$€¥₹]\s*(\d+(?:\.\d{1,2})?)\s*off")
_BUY_GET = re.compile(r"buy\s*(\d+)\s*get\s*(\d+)")
_UP_TO = re.compile(r"up\s*to\s*(\d+)%")


@dataclass(frozen=True)
class ParsedDiscount:
    type: str
    original: str
    value: Optional[Union[int, float]] = None
    buy: Optional[int] = None
    get: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type, "original": self.original}
        if self.value is not None:
            data["value"] = self.value
        if self.type == BXGY:
            data.update(buy=self.buy, get=self.get)
        return data


def _percent_off(text: str) -> Optional[int]:
    # "up to 70% off" belongs to the up-to bucket, not a flat percentage.
    for match in _PERCENT_OFF.finditer(text):
        if not _UPTO_PREFIX.search(text[: match.start()]):
            return int(match.group(1))
    return None


def parse_discount(text: Optional[str]) -> Optional[ParsedDiscount]:
    """Classify a discount string; ``None`` only for empty input.

    Matching is case-insensitive on whitespace-collapsed text and tries, in
    order: percent off, currency amount off, buy X get Y, up to N%, other.
    """

    if text is None or not str(text).strip():
        return None
    original = str(text)
    normalized = re.sub(r"\s+", " ", original.lower()).strip()

    percent = _percent_off(normalized)
    if percent is not None:
        return ParsedDiscount(PERCENT, original, value=percent)

    match = _AMOUNT_OFF.search(normalized)
    if match:
        return ParsedDiscount(AMOUNT, original, value=float(match.group(1)))

    match = _BUY_GET.search(normalized)
    if match:
        return ParsedDiscount(BXGY, original, buy=int(match.group(1)), get=int(match.group(2)))

    match = _UP_TO.search(normalized)
    if match:
        return ParsedDiscount(UPTO_PERCENT, original, value=int(match.group(1)))

    return ParsedDiscount(OTHER, original)


def best_offer(discounts: List[ParsedDiscount]) -> Optional[str]:
    """Highest percentage, else highest amount, else the first original text."""

    if not discounts:
        return None
    percent = [item for item in discounts if item.type in PERCENT_TYPES]
    if percent:
        return max(percent, key=lambda item: item.value).original
    amounts = [item for item in discounts if item.type == AMOUNT]
    if amounts:
        return max(amounts, key=lambda item: item.value).original
    return discounts[0].original


def _round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def analyze_discounts(discount_values: Iterable[Optional[str]], analyzed_at: Optional[datetime] = None) -> Dict[str, Any]:
    """Aggregate statistics over the discount texts of one store's active coupons."""

    values = list(discount_values)
    parsed = [item for item in (parse_discount(value) for value in values) if item is not None]
    percents = [item.value for item in parsed if item.type in PERCENT_TYPES]
    amounts = [item.value for item in parsed if item.type == AMOUNT]

    types: List[str] = []
    for item in parsed:
        if item.type not in types:
            types.append(item.type)

    return {
        "total_offers": len(values),
        "parsed_discounts": len(parsed),
        "min_percent": min(percents) if percents else None,
        "max_percent": max(percents) if percents else None,
        "avg_percent": _round_half_up(sum(percents) / len(percents)) if percents else None,
        "min_amount": min(amounts) if amounts else None,
        "max_amount": max(amounts) if amounts else None,
        "discount_types": types,
        "best_offer": best_offer(parsed),
        "analyzed_at": (analyzed_at or datetime.now().astimezone()).isoformat(),
    }


__all__ = [
    "AMOUNT",
    "BXGY",
    "OTHER",
    "PERCENT",
    "ParsedDiscount",
    "UPTO_PERCENT",
    "analyze_discounts",
    "best_offer",
    "parse_discount",
]
