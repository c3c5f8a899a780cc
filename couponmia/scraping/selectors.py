"""Selector specifications understood by the element locator.

A site configuration can describe how to find an element in three shapes:

* a single CSS selector (:class:`CssOne`),
* an ordered list of CSS selectors where the first hit wins (:class:`CssList`),
* an XPath expression tried before a list of CSS fallbacks
  (:class:`XPathWithFallback`).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Tuple, Union


@dataclass(frozen=True)
class CssOne:
    selector: str


@dataclass(frozen=True)
class CssList:
    selectors: Tuple[str, ...]

    def __init__(self, selectors: Iterable[str]) -> None:
        object.__setattr__(self, "selectors", tuple(selectors))


@dataclass(frozen=True)
class XPathWithFallback:
    xpath: str
    fallbacks: Tuple[str, ...] = ()

    def __init__(self, xpath: str, fallbacks: Iterable[str] = ()) -> None:
        object.__setattr__(self, "xpath", xpath)
        object.__setattr__(self, "fallbacks", tuple(fallbacks))


SelectorSpec = Union[CssOne, CssList, XPathWithFallback]


def as_selector_spec(value: Any) -> Optional[SelectorSpec]:
    """Coerce configuration literals into a :data:`SelectorSpec`.

    Accepts an existing spec, a CSS string, a list/tuple of CSS strings, or a
    mapping with ``xpath`` and optional ``fallbacks`` keys. ``None`` and empty
    values map to ``None``.
    """

    if value is None:
        return None
    if isinstance(value, (CssOne, CssList, XPathWithFallback)):
        return value
    if isinstance(value, str):
        return CssOne(value) if value.strip() else None
    if isinstance(value, Mapping):
        xpath = value.get("xpath")
        fallbacks = tuple(value.get("fallbacks") or ())
        if xpath:
            return XPathWithFallback(xpath, fallbacks)
        return CssList(fallbacks) if fallbacks else None
    if isinstance(value, (list, tuple)):
        selectors = tuple(item for item in value if item)
        return CssList(selectors) if selectors else None
    raise TypeError(f"Unsupported selector specification: {value!r}")


def describe(spec: Optional[SelectorSpec]) -> str:
    """Short human readable form used in log messages."""

    if spec is None:
        return "<none>"
    if isinstance(spec, CssOne):
        return spec.selector
    if isinstance(spec, CssList):
        return " | ".join(spec.selectors)
    fallbacks = " | ".join(spec.fallbacks)
    return f"xpath={spec.xpath}" + (f" | {fallbacks}" if fallbacks else "")


__all__ = [
    "CssList",
    "CssOne",
    "SelectorSpec",
    "XPathWithFallback",
    "as_selector_spec",
    "describe",
]
