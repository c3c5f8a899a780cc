"""Tests for selector specs, the null-safe locator and the cascade helper."""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from couponmia.scraping.cascade import first_success
from couponmia.scraping.dom import DomQueryError, parse_html
from couponmia.scraping.locator import locate, locate_all
from couponmia.scraping.selectors import CssList, CssOne, XPathWithFallback, as_selector_spec, describe

PAGE = """
<html><body>
  <div class="store"><a class="visit" href="https://acme.com">Visit Acme</a></div>
  <ul class="coupons">
    <li class="coupon">A</li>
    <li class="coupon">B</li>
  </ul>
</body></html>
"""


@pytest.fixture()
def document():
    return parse_html(PAGE)


def test_xpath_match_never_evaluates_css_fallbacks() -> None:
    root = MagicMock()
    hit = MagicMock(name="hit")
    root.xpath.return_value = [hit]

    spec = XPathWithFallback("//a[@class='visit']", [".visit", "a"])
    assert locate(spec, root) is hit
    assert locate_all(spec, root) == [hit]

    root.query_selector.assert_not_called()
    root.query_selector_all.assert_not_called()


def test_css_fallbacks_run_in_order_when_xpath_is_empty() -> None:
    root = MagicMock()
    root.xpath.return_value = []
    found = MagicMock(name="found")
    root.query_selector.side_effect = [None, found, MagicMock(name="never")]

    spec = XPathWithFallback("//missing", [".first", ".second", ".third"])
    assert locate(spec, root) is found
    assert [call.args[0] for call in root.query_selector.call_args_list] == [".first", ".second"]


def test_locate_against_real_document(document) -> None:
    assert locate(CssOne(".visit"), document).get_attribute("href") == "https://acme.com"
    assert locate(CssList([".missing", ".coupon"]), document).text_content() == "A"
    assert locate(XPathWithFallback("//li[2]", [".coupon"]), document).text_content() == "B"
    assert [node.text_content() for node in locate_all(CssList([".nope", "li.coupon"]), document)] == ["A", "B"]


def test_not_found_and_invalid_selectors_yield_nothing(document) -> None:
    assert locate(None, document) is None
    assert locate(CssOne(".absent"), document) is None
    assert locate(CssOne("div[[["), document) is None
    assert locate_all(XPathWithFallback("//*[", ["li.coupon"]), document)[0].text_content() == "A"


def test_locator_swallows_dom_errors_from_any_node() -> None:
    root = MagicMock()
    root.query_selector.side_effect = DomQueryError("bad selector")
    root.query_selector_all.side_effect = DomQueryError("bad selector")

    assert locate(CssOne("::bad"), root) is None
    assert locate_all(CssList(["::bad"]), root) == []


def test_as_selector_spec_coerces_literals() -> None:
    assert as_selector_spec(None) is None
    assert as_selector_spec("  ") is None
    assert as_selector_spec(".a") == CssOne(".a")
    assert as_selector_spec([".a", "", ".b"]) == CssList([".a", ".b"])
    assert as_selector_spec({"xpath": "//a", "fallbacks": [".a"]}) == XPathWithFallback("//a", (".a",))
    assert as_selector_spec({"fallbacks": [".a"]}) == CssList([".a"])
    with pytest.raises(TypeError):
        as_selector_spec(42)


def test_describe_formats_each_shape() -> None:
    assert describe(None) == "<none>"
    assert describe(CssOne(".a")) == ".a"
    assert describe(CssList([".a", ".b"])) == ".a | .b"
    assert describe(XPathWithFallback("//a", [".a"])) == "xpath=//a | .a"


def test_first_success_is_lazy_and_skips_failures() -> None:
    calls = []

    def failing():
        calls.append("failing")
        raise RuntimeError("boom")

    def empty():
        calls.append("empty")
        return []

    def found():
        calls.append("found")
        return ["item"]

    def never():
        calls.append("never")
        return ["other"]

    hit = first_success([("failing", failing), ("empty", empty), ("found", found), ("never", never)])
    assert hit is not None
    assert hit.step == "found"
    assert hit.value == ["item"]
    assert calls == ["failing", "empty", "found"]


def test_first_success_returns_none_when_nothing_matches() -> None:
    assert first_success([("empty", lambda: None)]) is None
    assert first_success([("zero", lambda: 0)], accept=lambda value: value is not None).value == 0
