"""Queryable DOM tree used by the coupon scrapers.

The scraping core only talks to the small :class:`DomNode` surface defined here
(``query_selector``, ``query_selector_all``, ``xpath``, ``get_attribute`` and
``text_content``). :class:`HtmlNode` implements it on top of an ``lxml`` tree,
which lets the same cascade run against a rendered Playwright snapshot, a saved
HTML file, or an in-memory fixture in the test-suite.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, List, Optional, Protocol, Sequence

import lxml.html
from cssselect import SelectorError
from lxml import etree
from lxml.cssselect import CSSSelector


class DomQueryError(ValueError):
    """Raised when a CSS selector or XPath expression cannot be evaluated."""


class DomNode(Protocol):
    """Minimal element interface required by the locator and extractors."""

    @property
    def tag(self) -> str: ...

    def query_selector(self, selector: str) -> Optional["DomNode"]: ...

    def query_selector_all(self, selector: str) -> List["DomNode"]: ...

    def xpath(self, expression: str) -> List["DomNode"]: ...

    def get_attribute(self, name: str) -> Optional[str]: ...

    def text_content(self) -> str: ...


@lru_cache(maxsize=512)
def _compile_css(selector: str) -> CSSSelector:
    try:
        return CSSSelector(selector, translator="html")
    except SelectorError as exc:
        raise DomQueryError(f"Invalid CSS selector {selector!r}: {exc}") from exc


def _is_element(item: Any) -> bool:
    # Comments and processing instructions expose a callable ``tag``.
    return isinstance(item, etree._Element) and isinstance(item.tag, str)


class HtmlNode:
    """:class:`DomNode` backed by an ``lxml.html`` element.

    CSS queries follow browser ``Element.querySelectorAll`` semantics: the
    selector is matched against the whole document and the result is limited
    to proper descendants of this element, in document order.
    """

    __slots__ = ("element",)

    def __init__(self, element: etree._Element) -> None:
        self.element = element

    def __repr__(self) -> str:
        return f"<HtmlNode {self.tag}>"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, HtmlNode) and other.element is self.element

    def __hash__(self) -> int:
        return id(self.element)

    @property
    def tag(self) -> str:
        return str(self.element.tag).lower()

    def _document_root(self) -> etree._Element:
        return self.element.getroottree().getroot()

    def _is_descendant(self, candidate: etree._Element) -> bool:
        return any(ancestor is self.element for ancestor in candidate.iterancestors())

    def query_selector_all(self, selector: str) -> List["HtmlNode"]:
        matcher = _compile_css(selector)
        try:
            matches = matcher(self._document_root())
        except etree.XPathError as exc:
            raise DomQueryError(f"CSS selector {selector!r} failed: {exc}") from exc
        return [HtmlNode(match) for match in matches if self._is_descendant(match)]

    def query_selector(self, selector: str) -> Optional["HtmlNode"]:
        matches = self.query_selector_all(selector)
        return matches[0] if matches else None

    def xpath(self, expression: str) -> List[DomNode]:
        try:
            result = self._xpath_context().xpath(expression)
        except (etree.XPathError, TypeError) as exc:
            raise DomQueryError(f"Invalid XPath {expression!r}: {exc}") from exc

        if not isinstance(result, list):
            # Scalar results (``string(...)``, ``count(...)``) become a single value node.
            if isinstance(result, bool):
                return []
            return [TextValue(str(result))] if str(result) else []

        nodes: List[DomNode] = []
        for item in result:
            if _is_element(item):
                nodes.append(HtmlNode(item))
            elif isinstance(item, str):
                nodes.append(TextValue(str(item)))
        return nodes

    def _xpath_context(self) -> Any:
        return self.element

    def get_attribute(self, name: str) -> Optional[str]:
        return self.element.get(name)

    def text_content(self) -> str:
        return self.element.text_content() or ""


class TextValue:
    """Leaf produced by XPath expressions selecting text or attribute values."""

    __slots__ = ("value",)

    tag = "#text"

    def __init__(self, value: str) -> None:
        self.value = value

    def __repr__(self) -> str:
        return f"<TextValue {self.value[:30]!r}>"

    def query_selector(self, selector: str) -> None:
        return None

    def query_selector_all(self, selector: str) -> List[DomNode]:
        return []

    def xpath(self, expression: str) -> List[DomNode]:
        return []

    def get_attribute(self, name: str) -> Optional[str]:
        return None

    def text_content(self) -> str:
        return self.value


class HtmlDocument(HtmlNode):
    """Document-level node; queries include the ``<html>`` root itself."""

    __slots__ = ("url",)

    def __init__(self, element: etree._Element, url: str = "") -> None:
        super().__init__(element)
        self.url = url

    def __repr__(self) -> str:
        return f"<HtmlDocument {self.url or 'about:blank'}>"

    def _is_descendant(self, candidate: etree._Element) -> bool:
        return True

    def _xpath_context(self) -> Any:
        return self.element.getroottree()

    @property
    def title(self) -> str:
        titles = self.element.xpath("//title")
        if not titles:
            return ""
        return (titles[0].text_content() or "").strip()

    @property
    def body(self) -> HtmlNode:
        body = self.element.find("body")
        return HtmlNode(body) if body is not None else self

    def meta_content(self, *, name: Optional[str] = None, prop: Optional[str] = None) -> str:
        """Return the ``content`` of a ``<meta name=...>`` or ``<meta property=...>`` tag."""

        if name:
            matches = self.element.xpath("//meta[@name=$value]/@content", value=name)
        elif prop:
            matches = self.element.xpath("//meta[@property=$value]/@content", value=prop)
        else:
            return ""
        return str(matches[0]).strip() if matches else ""


def parse_html(html: str, url: str = "") -> HtmlDocument:
    """Parse an HTML string into an :class:`HtmlDocument`."""

    if not html or not html.strip():
        html = "<html><head></head><body></body></html>"
    root = lxml.html.document_fromstring(html)
    return HtmlDocument(root, url=url)


def node_text(node: Optional[DomNode]) -> str:
    """Trimmed text content of ``node`` (empty string for ``None``)."""

    if node is None:
        return ""
    return (node.text_content() or "").strip()


def first_attribute(node: Optional[DomNode], names: Sequence[str]) -> str:
    """Return the first non-empty attribute value among ``names``."""

    if node is None:
        return ""
    for name in names:
        value = node.get_attribute(name)
        if value and value.strip():
            return value.strip()
    return ""


__all__ = [
    "DomNode",
    "DomQueryError",
    "HtmlDocument",
    "HtmlNode",
    "TextValue",
    "first_attribute",
    "node_text",
    "parse_html",
]
