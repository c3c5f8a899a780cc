"""End-to-end scraping tests against saved coupon page snapshots."""
from __future__ import annotations

import re
from pathlib import Path
from unittest.mock import patch

import pytest

from couponmia.scraping.dom import parse_html
from couponmia.scraping.scraper import (
    UNKNOWN_MERCHANT,
    CouponRecord,
    CouponScraper,
    UnsupportedSiteError,
    generate_coupon_description,
    resolve_site,
    scrape_html,
)
from couponmia.scraping.site_configs import SiteConfig, SiteSelectors, TENERETEAM

FIXTURES = Path(__file__).parent / "fixtures"
CODE_SHAPE = re.compile(r"^[A-Z0-9]{3,}$")


def _fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


def test_generic_cards_found_by_class_heuristics() -> None:
    url = "https://nike.tenereteam.com/coupons"
    document = parse_html(_fixture("generic_cards.html"), url=url)
    scraper = CouponScraper(TENERETEAM)

    # Nothing the site configuration names exists on this page.
    assert scraper._configured_items(scraper.find_container(document)) == []

    result = scraper.scrape(document, url)

    assert result.strategy == "class_heuristics"
    assert len(result.records) == 3
    for record in result.records:
        assert record.promotion_title
        assert CODE_SHAPE.match(record.coupon_code)
    assert [record.coupon_code for record in result.records] == ["SAVE20", "SPRING15", "TAKE10NOW"]
    assert result.records[0].promotion_title == "SAVE20 - 20% off storewide"
    assert result.records[0].subtitle == "20% off"


def test_generic_cards_merchant_from_title_and_subdomain() -> None:
    result = scrape_html(_fixture("generic_cards.html"), "https://nike.tenereteam.com/coupons")

    assert result.site_key == "tenereteam"
    assert result.merchant.name == "Nike"
    assert result.merchant.domain == "nike.com"
    assert result.merchant.url == "https://nike.com"
    assert result.merchant.description == TENERETEAM.rules.default_description
    record = result.records[0]
    assert record.merchant_name == "Nike"
    assert record.url == "https://nike.com"
    assert "'SAVE20'" in record.description


def test_worthepenny_snapshot() -> None:
    result = scrape_html(
        _fixture("worthepenny.html"),
        "https://www.worthepenny.com/store/acme/",
        viglink_api_key="KEY",
    )

    assert result.strategy == "configured_items"
    merchant = result.merchant
    assert merchant.name == "Acme"
    assert merchant.domain == "acme.com"
    assert merchant.url == "https://www.acme.com/"
    assert merchant.logo == "https://img.worthepenny.com/store/acme.png"
    assert merchant.description.startswith("Acme sells outdoor gear")

    first, second = result.records
    assert first.promotion_title == "15% Off Sitewide"
    assert first.coupon_code == "ACME15"
    assert first.subtitle == "15% off"
    assert first.url.startswith("https://redirect.viglink.com?u=https%3A%2F%2Fwww.acme.com%2F&key=KEY")
    assert second.promotion_title == "Free Shipping Over $25"
    assert second.coupon_code == ""
    assert second.subtitle == "free shipping"
    assert "free shipping" in second.description


def test_grabon_snapshot() -> None:
    result = scrape_html(_fixture("grabon.html"), "https://www.grabon.in/myntra-coupons/")

    assert result.strategy == "configured_items"
    merchant = result.merchant
    assert merchant.name == "Myntra"
    assert merchant.url == "https://myntra.com"
    assert merchant.logo == "https://cdn.grabon.in/gograbon/images/merchant/myntra-logo.png"
    assert merchant.description == "Shop the latest fashion at Myntra. Discover great deals every day."

    first, second = result.records
    assert (first.promotion_title, first.coupon_code, first.subtitle) == (
        "Flat 30% off on your first order", "MYNTRA30", "30% off",
    )
    assert first.description == "Valid on app orders only"
    assert second.coupon_code == ""
    assert second.subtitle == "free shipping"


def test_colormango_snapshot_skips_header_row() -> None:
    result = scrape_html(
        _fixture("colormango.html"),
        "https://www.colormango.com/product/acme-photo/coupon.html",
    )

    merchant = result.merchant
    assert merchant.name == "Acme Photo"
    assert merchant.domain == "acmephoto.com"
    assert merchant.logo == "https://www.colormango.com/logo/acme-photo.png"

    assert [(r.coupon_code, r.promotion_title, r.subtitle) for r in result.records] == [
        ("PHOTO25", "Acme Photo Editor discount", "25% off"),
        ("BUNDLE40", "Acme Photo bundle", "40% off"),
    ]


def test_configured_xpath_strategy() -> None:
    html = """
    <html><body><ul id="coupons">
      <li data-coupon-id="1"><span class="coupon-title">20% off winter boots</span><span data-code="BOOT20"></span></li>
      <li data-coupon-id="2"><span class="coupon-title">Free shipping on orders</span></li>
    </ul></body></html>
    """
    url = "https://acme.tenereteam.com/coupons"
    document = parse_html(html, url=url)
    scraper = CouponScraper(TENERETEAM)

    assert scraper._configured_items(scraper.find_container(document)) == []

    with patch.object(CouponScraper, "_class_heuristics") as heuristics:
        result = scraper.scrape(document, url)

    heuristics.assert_not_called()
    assert result.strategy == "configured_xpath"
    assert [(r.promotion_title, r.coupon_code) for r in result.records] == [
        ("20% off winter boots", "BOOT20"),
        ("Free shipping on orders", ""),
    ]


def test_text_xpath_strategy() -> None:
    html = "<html><body><section><p>Use this coupon today for 10% off</p></section></body></html>"
    result = scrape_html(html, "https://acme.tenereteam.com/")

    assert result.strategy == "text_xpath"
    assert [record.promotion_title for record in result.records] == ["Use this coupon today for 10% off"]
    assert result.records[0].coupon_code == ""


def test_structural_strategy() -> None:
    html = "<html><body><div>Big summer clearance, free returns on everything</div></body></html>"
    result = scrape_html(html, "https://acme.tenereteam.com/")

    assert result.strategy == "structural"
    assert len(result.records) == 1


def test_empty_page_yields_no_records() -> None:
    result = scrape_html("<html><body></body></html>", "https://www.tenereteam.com/")

    assert result.records == []
    assert result.strategy is None
    assert result.merchant.name == UNKNOWN_MERCHANT


def test_broken_item_is_skipped() -> None:
    document = parse_html(_fixture("generic_cards.html"))
    scraper = CouponScraper(TENERETEAM)
    original = scraper.extract_item

    def flaky(item, index, merchant_name):
        if index == 1:
            raise RuntimeError("detached node")
        return original(item, index, merchant_name)

    with patch.object(scraper, "extract_item", side_effect=flaky):
        records, strategy = scraper.scrape_coupons(document, "Nike")

    assert [record.coupon_code for record in records] == ["SAVE20", "TAKE10NOW"]


def test_title_synthesized_when_item_has_no_text() -> None:
    config = SiteConfig(
        key="test",
        name="Test",
        domains=("example.com",),
        url_patterns=("/",),
        selectors=SiteSelectors(coupon_items=None, coupon_code_attr="data-code"),
    )
    document = parse_html('<html><body><div data-code="XY9"></div><div></div></body></html>')
    items = document.query_selector_all("div")
    scraper = CouponScraper(config)

    assert scraper.extract_item(items[0], 0, "Acme").promotion_title == "Acme Discount Code: XY9"
    assert scraper.extract_item(items[1], 1, "").promotion_title == "Merchant Special Offer #2"


def test_resolve_site() -> None:
    assert resolve_site("https://www.grabon.in/myntra-coupons/").key == "grabon"
    assert resolve_site("https://anything.example/", "colormango").key == "colormango"
    with pytest.raises(UnsupportedSiteError):
        resolve_site("https://example.com/")
    with pytest.raises(UnsupportedSiteError):
        resolve_site("https://www.grabon.in/myntra-coupons/", "nope")


def test_coupon_record_dict_shapes() -> None:
    record = CouponRecord(promotion_title="20% off", coupon_code="SAVE20", merchant_name="Acme")
    data = record.to_dict()
    assert data["promotionTitle"] == "20% off"
    assert data["couponCode"] == "SAVE20"
    assert data["merchantName"] == "Acme"

    assert CouponRecord.from_dict(data) == record
    assert CouponRecord.from_dict({"promotion_title": "Deal", "coupon_code": "X1Y"}).coupon_code == "X1Y"
    with pytest.raises(ValueError):
        CouponRecord.from_dict({"couponCode": "SAVE20"})


def test_generate_coupon_description() -> None:
    assert "'SAVE20'" in generate_coupon_description("Acme", "SAVE20", "20% off")
    assert "20% off" in generate_coupon_description("Acme", "", "20% off")
    assert "this store" in generate_coupon_description("", "", "")
