"""Null-safe element lookup over :data:`~couponmia.scraping.selectors.SelectorSpec`."""
from __future__ import annotations

import logging
from typing import List, Optional

from .dom import DomNode, DomQueryError
from .selectors import CssList, CssOne, SelectorSpec, XPathWithFallback, describe

logger = logging.getLogger(__name__)


def query_first(root: DomNode, selector: str) -> Optional[DomNode]:
    """``root.query_selector`` that logs and returns ``None`` on invalid selectors."""

    try:
        return root.query_selector(selector)
    except DomQueryError as exc:
        logger.warning("Selector failed: %s (%s)", selector, exc)
        return None


def query_all(root: DomNode, selector: str) -> List[DomNode]:
    """``root.query_selector_all`` that logs and returns ``[]`` on invalid selectors."""

    try:
        return root.query_selector_all(selector)
    except DomQueryError as exc:
        logger.warning("Selector failed: %s (%s)", selector, exc)
        return []


def evaluate_xpath(root: DomNode, expression: str) -> List[DomNode]:
    """Evaluate ``expression`` relative to ``root``; ``[]`` when it fails."""

    try:
        return root.xpath(expression)
    except DomQueryError as exc:
        logger.warning("XPath failed: %s (%s)", expression, exc)
        return []


def _first_css(selectors, root: DomNode) -> Optional[DomNode]:
    for selector in selectors:
        element = query_first(root, selector)
        if element is not None:
            return element
    return None


def _all_css(selectors, root: DomNode) -> List[DomNode]:
    for selector in selectors:
        elements = query_all(root, selector)
        if elements:
            return elements
    return []


def locate(spec: Optional[SelectorSpec], root: DomNode) -> Optional[DomNode]:
    """Return the first element matching ``spec`` under ``root``.

    Never raises: an invalid selector, a failing XPath or an empty result all
    yield ``None`` so callers can fall through to their next strategy.
    """

    if spec is None or root is None:
        return None
    if isinstance(spec, CssOne):
        element = query_first(root, spec.selector)
    elif isinstance(spec, CssList):
        element = _first_css(spec.selectors, root)
    elif isinstance(spec, XPathWithFallback):
        matches = evaluate_xpath(root, spec.xpath)
        element = matches[0] if matches else _first_css(spec.fallbacks, root)
    else:
        raise TypeError(f"Unsupported selector specification: {spec!r}")

    if element is None:
        logger.debug("No element for %s", describe(spec))
    return element


def locate_all(spec: Optional[SelectorSpec], root: DomNode) -> List[DomNode]:
    """Return every element matched by the first successful strategy of ``spec``."""

    if spec is None or root is None:
        return []
    if isinstance(spec, CssOne):
        elements = query_all(root, spec.selector)
    elif isinstance(spec, CssList):
        elements = _all_css(spec.selectors, root)
    elif isinstance(spec, XPathWithFallback):
        elements = evaluate_xpath(root, spec.xpath) or _all_css(spec.fallbacks, root)
    else:
        raise TypeError(f"Unsupported selector specification: {spec!r}")

    if not elements:
        logger.debug("No elements for %s", describe(spec))
    return elements


__all__ = ["evaluate_xpath", "locate", "locate_all", "query_all", "query_first"]
