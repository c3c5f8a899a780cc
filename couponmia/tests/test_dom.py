"""Tests for the lxml-backed DOM adapter."""
from __future__ import annotations

import pytest

from couponmia.scraping.dom import DomQueryError, HtmlNode, first_attribute, node_text, parse_html

PAGE = """
<html>
<head>
  <title> Acme Coupons </title>
  <meta name="description" content="Acme deals and discounts">
  <meta property="og:image" content="https://acme.com/logo.png">
</head>
<body>
  <div id="list">
    <div class="item" data-code="ONE">First <b>deal</b></div>
    <div class="item">Second deal</div>
  </div>
  <div class="item">Outside</div>
</body>
</html>
"""


@pytest.fixture()
def document():
    return parse_html(PAGE, url="https://acme.com/coupons")


def test_document_exposes_title_meta_and_body(document) -> None:
    assert document.url == "https://acme.com/coupons"
    assert document.title == "Acme Coupons"
    assert document.meta_content(name="description") == "Acme deals and discounts"
    assert document.meta_content(prop="og:image") == "https://acme.com/logo.png"
    assert document.meta_content(name="missing") == ""
    assert document.body.tag == "body"


def test_css_queries_are_scoped_to_descendants(document) -> None:
    container = document.query_selector("#list")
    assert isinstance(container, HtmlNode)

    items = container.query_selector_all(".item")
    assert [node_text(item) for item in items] == ["First deal", "Second deal"]
    assert len(document.query_selector_all(".item")) == 3
    assert container.query_selector("#list") is None


def test_css_selector_matching_ancestors_still_scoped(document) -> None:
    container = document.query_selector("#list")
    # "body div" matches the container itself, which is not its own descendant.
    matches = container.query_selector_all("body div")
    assert [match.get_attribute("class") for match in matches] == ["item", "item"]


def test_xpath_relative_to_node_and_text_values(document) -> None:
    container = document.query_selector("#list")
    first = container.xpath("./div[1]")
    assert len(first) == 1 and first[0].get_attribute("data-code") == "ONE"

    values = container.xpath("./div[1]/@data-code")
    assert values[0].tag == "#text"
    assert values[0].text_content() == "ONE"

    assert document.xpath("string(//title)")[0].text_content().strip() == "Acme Coupons"
    assert document.xpath("count(//div) > 100") == []


def test_invalid_queries_raise_dom_query_error(document) -> None:
    with pytest.raises(DomQueryError):
        document.query_selector("div[[[")
    with pytest.raises(DomQueryError):
        document.xpath("//*[")


def test_empty_html_parses_to_blank_document() -> None:
    document = parse_html("")
    assert document.title == ""
    assert document.query_selector_all("div") == []


def test_text_helpers_are_null_safe(document) -> None:
    assert node_text(None) == ""
    assert first_attribute(None, ["src"]) == ""
    item = document.query_selector(".item")
    assert first_attribute(item, ["data-missing", "data-code"]) == "ONE"
