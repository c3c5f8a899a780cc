"""Tests for the affiliate sync service against an in-memory database."""
from __future__ import annotations

import json
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select

from couponmia.scraping.scraper import CouponRecord
from couponmia.sync.service import (
    DataSyncService,
    MalformedRecordError,
    StoreNotFoundError,
    is_offer_active,
    parse_date,
    scraped_coupon_id,
)
from couponmia.workflow.db import Coupon, Store, SyncLog

ADVERTISERS = [
    {
        "ID": 101,
        "Name": "Acme Outdoors",
        "Image": "https://cdn.example.com/acme.png",
        "Domains": ["acme.com", "acme.co.uk"],
        "LinkUrl": "https://go.example.com/acme",
        "Category": ["Outdoor"],
        "CommissionRate": "5%",
        "Countries": ["US", "UK"],
    },
    {"ID": 102, "Name": "Bolt Bikes", "Image": "", "Domains": "boltbikes.com"},
    {"Name": "Missing Id"},
]

OFFERS = [
    {
        "LinkID": f"acme-{index}",
        "AdvertiserID": 101,
        "Title": f"{10 + index}% off tents",
        "KeyTitle": f"{10 + index}% off",
        "CouponCode": f"TENT{10 + index}",
        "StartDate": "2024-01-01",
        "EndDate": "2030-01-01 00:00:00",
        "LinkUrl": "https://go.example.com/acme",
    }
    for index in range(12)
] + [
    {"LinkID": "acme-old", "AdvertiserID": 101, "Title": "$5 off", "KeyTitle": "$5 off", "EndDate": "2020-01-01"},
    {"LinkID": "ghost-1", "AdvertiserID": 999, "Title": "Unknown store"},
    {"AdvertiserID": 101, "Title": "No link id"},
]


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def clock():
    return Clock(datetime(2025, 1, 1, tzinfo=UTC))


@pytest.fixture()
def client():
    stub = MagicMock()
    stub.fetch_advertisers.return_value = ADVERTISERS
    stub.fetch_offers.return_value = OFFERS
    return stub


@pytest.fixture()
def service(client, session_factory, clock):
    return DataSyncService(client, session_factory, sleep=lambda _: None, now=clock)


def _count(session_factory, statement) -> int:
    with session_factory() as session:
        return session.execute(statement).scalar_one()


def _store(session_factory, external_id: str) -> Store:
    with session_factory() as session:
        return session.execute(select(Store).where(Store.external_id == external_id)).scalar_one()


def test_parse_date_and_activity() -> None:
    assert parse_date("2030-01-01 00:00:00") == datetime(2030, 1, 1, tzinfo=UTC)
    assert parse_date("2024-03-05T10:00:00Z") == datetime(2024, 3, 5, 10, tzinfo=UTC)
    assert parse_date("12/31/2024") == datetime(2024, 12, 31, tzinfo=UTC)
    assert parse_date("0000-00-00") is None
    assert parse_date("soon") is None
    assert parse_date(None) is None

    now = datetime(2025, 1, 1, tzinfo=UTC)
    assert is_offer_active(None, None, now)
    assert not is_offer_active(datetime(2025, 2, 1, tzinfo=UTC), None, now)
    assert not is_offer_active(None, datetime(2024, 12, 31, tzinfo=UTC), now)


def test_map_advertiser(service) -> None:
    values = service.map_advertiser(ADVERTISERS[0])
    assert values["external_id"] == "101"
    assert values["alias"] == "acme-outdoors"
    assert values["website"] == "acme.com"
    assert values["category"] == "Outdoor"
    assert json.loads(values["commission_rate_data"]) == {"rate": "5%"}
    assert json.loads(values["domains_data"]) == ["acme.com", "acme.co.uk"]

    sparse = service.map_advertiser(ADVERTISERS[1])
    assert sparse["logo_url"] is None
    assert sparse["url"] == "#"
    assert sparse["website"] == "boltbikes.com"

    with pytest.raises(MalformedRecordError):
        service.map_advertiser(ADVERTISERS[2])


def test_map_offer(service) -> None:
    values = service.map_offer(OFFERS[0], store_id=7)
    assert values["type"] == "code"
    assert values["code"] == "TENT10"
    assert values["discount_value"] == "10% off"
    assert values["is_active"] is True

    deal = service.map_offer(OFFERS[12], store_id=7)
    assert deal["type"] == "deal"
    assert deal["code"] is None
    assert deal["is_active"] is False

    with pytest.raises(MalformedRecordError):
        service.map_offer(OFFERS[-1], store_id=7)


def test_store_upsert_is_idempotent(service, session_factory, clock) -> None:
    first = service.sync_stores()
    first_updated = _store(session_factory, "101").updated_at

    clock.now = datetime(2025, 1, 2, tzinfo=UTC)
    second = service.sync_stores()
    second_updated = _store(session_factory, "101").updated_at

    assert (first.success, first.failed) == (2, 1)
    assert (second.success, second.failed) == (2, 1)
    assert _count(session_factory, select(func.count(Store.id))) == 2
    assert second_updated >= first_updated
    assert _store(session_factory, "101").created_at == first_updated


def test_coupon_sync_skips_unknown_stores(service, session_factory) -> None:
    service.sync_stores()
    result = service.sync_coupons()

    assert result.processed == len(OFFERS)
    assert result.success == 13
    assert result.skipped == 1
    assert result.failed == 1
    assert _count(session_factory, select(func.count(Coupon.id))) == 13
    assert _count(session_factory, select(func.count(Coupon.id)).where(Coupon.is_active.is_(True))) == 12

    service.sync_coupons()
    assert _count(session_factory, select(func.count(Coupon.id))) == 13


def test_malformed_records_do_not_halt_the_batch(service, client, session_factory) -> None:
    client.fetch_advertisers.return_value = [None, {"ID": 1, "Name": 42}, {"ID": 2, "Name": "Good Store"}]
    client.fetch_offers.return_value = [
        None,
        {"LinkID": "a", "AdvertiserID": 1, "Title": "Numeric code", "CouponCode": 12345},
        {"LinkID": "b", "AdvertiserID": 2, "Title": "Text code", "CouponCode": "GOOD"},
    ]

    stores = service.sync_stores()
    assert (stores.processed, stores.success, stores.failed) == (3, 2, 1)
    assert _store(session_factory, "1").name == "42"
    assert _store(session_factory, "2").name == "Good Store"

    coupons = service.sync_coupons()
    assert (coupons.processed, coupons.success, coupons.failed) == (3, 2, 1)
    with session_factory() as session:
        codes = session.execute(select(Coupon.code).order_by(Coupon.external_id)).scalars().all()
    assert codes == ["12345", "GOOD"]


def test_mappers_reject_non_object_records(service) -> None:
    with pytest.raises(MalformedRecordError):
        service.map_advertiser(None)
    with pytest.raises(MalformedRecordError):
        service.map_offer("not-a-record", store_id=1)


def test_popularity_and_analysis(service, session_factory) -> None:
    service.sync_stores()
    service.sync_coupons()

    analyze = service.analyze_store_discounts()
    popularity = service.update_store_popularity()

    assert analyze.success == 1
    assert popularity.success == 2
    assert popularity.details["featured"] == 1

    acme = _store(session_factory, "101")
    assert acme.active_offers_count == 12
    assert acme.popularity_score == 60
    assert acme.is_featured
    assert 3.5 <= acme.rating <= 3.7
    analysis = json.loads(acme.discount_analysis)
    assert analysis["min_percent"] == 10
    assert analysis["max_percent"] == 21
    assert analysis["best_offer"] == "21% off"

    bolt = _store(session_factory, "102")
    assert bolt.popularity_score == 0
    assert not bolt.is_featured


def test_cleanup_is_idempotent_and_popularity_follows(service, session_factory, clock) -> None:
    service.sync_stores()
    service.sync_coupons()
    service.update_store_popularity()

    clock.now = datetime(2031, 1, 1, tzinfo=UTC)
    first = service.cleanup_expired_coupons()
    second = service.cleanup_expired_coupons()

    assert first.success == 12
    assert second.success == 0
    assert _count(session_factory, select(func.count(Coupon.id)).where(Coupon.is_active.is_(True))) == 0

    service.update_store_popularity("acme")
    acme = _store(session_factory, "101")
    assert acme.active_offers_count == 0
    assert not acme.is_featured


def test_sync_all_runs_every_step_in_order(service, client) -> None:
    results = service.sync_all()

    assert list(results) == ["stores", "coupons", "cleanup", "analyze", "popularity"]
    client.fetch_advertisers.assert_called_once()
    client.fetch_offers.assert_called_once()


def test_run_writes_sync_log(service, session_factory) -> None:
    results = service.run("stores")

    assert list(results) == ["stores"]
    with session_factory() as session:
        log = session.execute(select(SyncLog).where(SyncLog.sync_type == "stores")).scalar_one()
    assert log.status == "error"
    assert log.success_count == 2
    assert log.error_count == 1

    with pytest.raises(ValueError):
        service.run("bogus")


def test_sync_store_refreshes_single_store(service, session_factory) -> None:
    service.sync_stores()
    service.sync_coupons()

    outcome = service.sync_store("acme")

    assert outcome["store"]["name"] == "Acme Outdoors"
    assert outcome["analyze"].success == 1
    assert outcome["popularity"].success == 1
    assert _store(session_factory, "101").is_featured


def test_sync_store_unknown_name_is_logged(service, session_factory) -> None:
    with pytest.raises(StoreNotFoundError):
        service.sync_store("nowhere")

    statement = select(func.count(SyncLog.id)).where(SyncLog.sync_type == "store_webhook", SyncLog.status == "error")
    assert _count(session_factory, statement) == 1


def test_affiliate_commands_need_credentials(session_factory) -> None:
    service = DataSyncService(None, session_factory)
    with pytest.raises(RuntimeError):
        service.sync_stores()
    assert service.cleanup_expired_coupons().success == 0


def _scraped(title: str, code: str = "", merchant: str = "Acme", subtitle: str = "other") -> CouponRecord:
    return CouponRecord(
        promotion_title=title,
        subtitle=subtitle,
        coupon_code=code,
        url="https://www.acme.com/",
        merchant_name=merchant,
        merchant_domain="acme.com",
        merchant_url="https://www.acme.com/",
        merchant_logo="https://img.example.com/acme.png",
    )


def test_import_scraped_coupons_dedupes(service, session_factory) -> None:
    records = [
        _scraped("15% Off Sitewide", "ACME15", subtitle="15% off"),
        _scraped("Free Shipping Over $25", subtitle="free shipping"),
        _scraped("15% Off Sitewide again", "ACME15", subtitle="15% off"),
        _scraped("Flat 30% off", "MYNTRA30", merchant="Myntra", subtitle="30% off"),
    ]

    first = service.import_scraped_coupons(records, "worthepenny")
    second = service.import_scraped_coupons(records, "worthepenny")

    assert (first.success, first.skipped, first.failed) == (3, 1, 0)
    assert (second.success, second.skipped) == (0, 4)
    assert sorted(first.details["stores"]) == ["worthepenny_acme", "worthepenny_myntra"]

    acme = _store(session_factory, "worthepenny_acme")
    assert acme.is_featured
    assert acme.logo_url == "https://img.example.com/acme.png"
    assert acme.website == "acme.com"

    with session_factory() as session:
        coupon = session.execute(select(Coupon).where(Coupon.code == "ACME15")).scalar_one()
    assert coupon.type == "code"
    assert coupon.discount_value == "15% off"
    assert coupon.external_id == scraped_coupon_id("worthepenny", "worthepenny_acme", "ACME15", "15% Off Sitewide")
