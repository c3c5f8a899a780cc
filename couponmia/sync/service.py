"""Affiliate data sync: store/coupon upserts, discount analysis and popularity."""
from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from itertools import groupby
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Type

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from couponmia.scraping.scraper import CouponRecord
from couponmia.scraping.urls import slugify
from couponmia.workflow.db import Base, Coupon, Store, SyncLog, get_session_factory, session_scope, utcnow

from .affiliate import AffiliateClient
from .discounts import analyze_discounts
from .scoring import calculate_popularity, generate_rating_and_reviews

logger = logging.getLogger(__name__)

COMMANDS = ("all", "stores", "coupons", "popularity", "analyze", "cleanup")

_DATE_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d", "%m/%d/%Y", "%d/%m/%Y")


class MalformedRecordError(ValueError):
    """An upstream record is missing a field required for the upsert."""


class StoreNotFoundError(LookupError):
    """No store matches the requested name or alias."""


@dataclass
class SyncResult:
    """Counters reported at the end of every batch command."""

    name: str
    processed: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    details: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_date(value: Any) -> Optional[datetime]:
    """Parse an upstream date into an aware UTC datetime; ``None`` when unreadable."""

    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text or text.startswith("0000"):
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            for fmt in _DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
            else:
                return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def is_offer_active(starts_at: Optional[datetime], expires_at: Optional[datetime], now: datetime) -> bool:
    if starts_at and now < starts_at:
        return False
    if expires_at and now > expires_at:
        return False
    return True


def _json_text(value: Any) -> Optional[str]:
    if value in (None, "", [], {}):
        return None
    return json.dumps(value)


def _first(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        return str(value[0]) if value else None
    return str(value) if value else None


def _record_label(record: Any, key: str) -> Any:
    return record.get(key) if isinstance(record, Mapping) else record


def scraped_coupon_id(site_key: str, store_external_id: str, code: Optional[str], title: str) -> str:
    digest = hashlib.sha1(f"{store_external_id}|{code or title}".encode("utf-8")).hexdigest()
    return f"{site_key}_{digest[:20]}"


class DataSyncService:
    """Syncs affiliate advertisers/offers and maintains derived store metrics.

    Every record is written in its own transaction: a failing record is
    logged, counted and skipped without affecting the rest of the batch.
    """

    def __init__(
        self,
        client: Optional[AffiliateClient] = None,
        session_factory: Optional[sessionmaker] = None,
        *,
        store_delay: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._client = client
        self.session_factory = session_factory or get_session_factory()
        self.store_delay = store_delay
        self._sleep = sleep
        self._now = now

    @classmethod
    def from_settings(cls, settings, **overrides: Any) -> "DataSyncService":
        client = AffiliateClient.from_settings(settings) if settings.affiliate_enabled else None
        options = {"client": client, "store_delay": settings.sync_store_delay}
        options.update(overrides)
        return cls(**options)

    @property
    def client(self) -> AffiliateClient:
        if self._client is None:
            raise RuntimeError("Affiliate API credentials are not configured (API_USER / API_KEY)")
        return self._client

    # -- mapping -----------------------------------------------------------
    def map_advertiser(self, advertiser: Mapping[str, Any]) -> Dict[str, Any]:
        if not isinstance(advertiser, Mapping):
            raise MalformedRecordError(f"Advertiser record is not an object: {advertiser!r:.200}")
        external_id = advertiser.get("ID")
        name = str(advertiser.get("Name") or "").strip()
        if not external_id or not name:
            raise MalformedRecordError(f"Advertiser record without ID/Name: {dict(advertiser)!r:.200}")

        commission_rate = advertiser.get("CommissionRate")
        return {
            "external_id": str(external_id),
            "name": name,
            "alias": slugify(name),
            "logo_url": advertiser.get("Image") or None,
            "description": f"{name} offers and coupons",
            "website": _first(advertiser.get("Domains")) or name,
            "url": _first(advertiser.get("LinkUrl")) or "#",
            "category": _first(advertiser.get("Category")),
            "commission_rate_data": json.dumps({"rate": commission_rate}) if commission_rate else None,
            "countries_data": _json_text(advertiser.get("Countries")),
            "domains_data": _json_text(advertiser.get("Domains")),
            "commission_model_data": _json_text(advertiser.get("CommissionModel")),
        }

    def map_offer(self, offer: Mapping[str, Any], store_id: int) -> Dict[str, Any]:
        if not isinstance(offer, Mapping):
            raise MalformedRecordError(f"Offer record is not an object: {offer!r:.200}")
        external_id = offer.get("LinkID")
        if not external_id:
            raise MalformedRecordError(f"Offer record without LinkID: {dict(offer)!r:.200}")

        code = str(offer.get("CouponCode") or "").strip()
        title = str(offer.get("Title") or "Special Offer")
        key_title = str(offer.get("KeyTitle") or "")
        starts_at = parse_date(offer.get("StartDate"))
        expires_at = parse_date(offer.get("EndDate"))
        countries = offer.get("ShippingCountry")
        return {
            "external_id": str(external_id),
            "store_id": store_id,
            "title": title,
            "subtitle": key_title,
            "code": code or None,
            "type": "code" if code else "deal",
            "discount_value": key_title,
            "description": offer.get("Description") or title,
            "url": offer.get("LinkUrl"),
            "countries": countries if isinstance(countries, str) or countries is None else json.dumps(countries),
            "starts_at": starts_at,
            "expires_at": expires_at,
            "is_active": is_offer_active(starts_at, expires_at, self._now()),
        }

    # -- persistence helpers ----------------------------------------------
    def _upsert(self, session: Session, model: Type[Base], values: Dict[str, Any]) -> bool:
        """Insert or update ``model`` keyed by ``external_id``; True when inserted."""

        now = self._now()
        existing = session.execute(
            select(model).where(model.external_id == values["external_id"])
        ).scalar_one_or_none()
        if existing is not None:
            for key, value in values.items():
                setattr(existing, key, value)
            existing.updated_at = now
            return False
        session.add(model(**values, created_at=now, updated_at=now))
        return True

    def _stores_query(self, store_name: Optional[str]):
        query = select(Store).order_by(Store.id)
        if store_name:
            pattern = f"%{store_name.strip()}%"
            query = query.where(or_(Store.name.ilike(pattern), Store.alias.ilike(pattern)))
        return query

    def _active_coupon_count(self, session: Session, store_id: int) -> int:
        return session.execute(
            select(func.count(Coupon.id)).where(Coupon.store_id == store_id, Coupon.is_active.is_(True))
        ).scalar_one()

    def _write_log(self, sync_type: str, status: str, success: int, errors: int, details: Dict[str, Any]) -> None:
        try:
            with session_scope(self.session_factory) as session:
                session.add(
                    SyncLog(
                        sync_type=sync_type,
                        status=status,
                        success_count=success,
                        error_count=errors,
                        details=json.dumps(details, default=str),
                        created_at=self._now(),
                    )
                )
        except SQLAlchemyError as exc:
            logger.warning("Failed to write sync log for %s: %s", sync_type, exc)

    # -- batch commands ----------------------------------------------------
    def sync_stores(self) -> SyncResult:
        result = SyncResult("stores")
        advertisers = self.client.fetch_advertisers()
        for advertiser in advertisers:
            result.processed += 1
            try:
                values = self.map_advertiser(advertiser)
                with session_scope(self.session_factory) as session:
                    self._upsert(session, Store, values)
                result.success += 1
            except (MalformedRecordError, SQLAlchemyError) as exc:
                result.failed += 1
                logger.error("Failed to sync advertiser %s: %s", _record_label(advertiser, "Name"), exc)
        logger.info("Store sync finished: %d ok, %d failed", result.success, result.failed)
        return result

    def sync_coupons(self) -> SyncResult:
        result = SyncResult("coupons")
        offers = self.client.fetch_offers()
        with session_scope(self.session_factory) as session:
            store_map = dict(session.execute(select(Store.external_id, Store.id)).all())

        for offer in offers:
            result.processed += 1
            if not isinstance(offer, Mapping):
                result.failed += 1
                logger.error("Failed to sync offer %r: not an object", offer)
                continue
            store_id = store_map.get(str(offer.get("AdvertiserID")))
            if store_id is None:
                result.skipped += 1
                continue
            try:
                values = self.map_offer(offer, store_id)
                with session_scope(self.session_factory) as session:
                    self._upsert(session, Coupon, values)
                result.success += 1
            except (MalformedRecordError, SQLAlchemyError) as exc:
                result.failed += 1
                logger.error("Failed to sync offer %s: %s", _record_label(offer, "Title"), exc)
        logger.info(
            "Coupon sync finished: %d ok, %d failed, %d skipped",
            result.success, result.failed, result.skipped,
        )
        return result

    def cleanup_expired_coupons(self) -> SyncResult:
        """Deactivate coupons whose expiry has passed; safe to repeat."""

        result = SyncResult("cleanup")
        now = self._now()
        with session_scope(self.session_factory) as session:
            outcome = session.execute(
                update(Coupon)
                .where(Coupon.is_active.is_(True), Coupon.expires_at.is_not(None), Coupon.expires_at < now)
                .values(is_active=False, updated_at=now)
            )
            result.processed = result.success = outcome.rowcount or 0
        logger.info("Deactivated %d expired coupons", result.success)
        return result

    def analyze_store_discounts(self, store_name: Optional[str] = None) -> SyncResult:
        result = SyncResult("analyze")
        query = self._stores_query(store_name).where(Store.coupons.any(Coupon.is_active.is_(True)))
        with session_scope(self.session_factory) as session:
            stores = [(store.id, store.external_id, store.name) for store in session.execute(query).scalars()]

        if store_name and not stores:
            logger.error("No store with active coupons matches %r", store_name)
            result.details["error"] = f"store not found: {store_name}"
            return result

        for index, (store_id, external_id, name) in enumerate(stores):
            result.processed += 1
            try:
                with session_scope(self.session_factory) as session:
                    values = session.execute(
                        select(Coupon.discount_value).where(Coupon.store_id == store_id, Coupon.is_active.is_(True))
                    ).scalars().all()
                    if not values:
                        result.skipped += 1
                        continue
                    analysis = analyze_discounts(values, analyzed_at=self._now())
                    rating, reviews = generate_rating_and_reviews(len(values), seed=external_id)
                    store = session.get(Store, store_id)
                    store.discount_analysis = json.dumps(analysis)
                    store.active_offers_count = len(values)
                    store.rating = rating
                    store.review_count = reviews
                    store.updated_at = self._now()
                result.success += 1
                logger.debug("Analyzed %s: best offer %s", name, analysis["best_offer"])
            except SQLAlchemyError as exc:
                result.failed += 1
                logger.error("Failed to analyze store %s: %s", name, exc)
            if self.store_delay and index < len(stores) - 1:
                self._sleep(self.store_delay)

        logger.info("Discount analysis finished for %d stores", result.success)
        return result

    def update_store_popularity(self, store_name: Optional[str] = None) -> SyncResult:
        """Recount active coupons and recompute popularity for each store."""

        result = SyncResult("popularity")
        with session_scope(self.session_factory) as session:
            store_ids = [(store.id, store.name) for store in session.execute(self._stores_query(store_name)).scalars()]

        if store_name and not store_ids:
            logger.error("No store matches %r", store_name)
            result.details["error"] = f"store not found: {store_name}"
            return result

        featured = 0
        for store_id, name in store_ids:
            result.processed += 1
            try:
                with session_scope(self.session_factory) as session:
                    store = session.get(Store, store_id)
                    count = self._active_coupon_count(session, store_id)
                    popularity = calculate_popularity(store.logo_url, count)
                    store.active_offers_count = count
                    store.popularity_score = popularity.score
                    store.is_featured = popularity.is_featured
                    store.updated_at = self._now()
                result.success += 1
                featured += int(popularity.is_featured)
            except SQLAlchemyError as exc:
                result.failed += 1
                logger.error("Failed to score store %s: %s", name, exc)

        result.details["featured"] = featured
        logger.info("Popularity updated for %d stores (%d featured)", result.success, featured)
        return result

    def sync_all(self) -> Dict[str, SyncResult]:
        """Full pipeline: stores, coupons, expiry sweep, analysis, popularity."""

        started = time.monotonic()
        results = {
            "stores": self.sync_stores(),
            "coupons": self.sync_coupons(),
            "cleanup": self.cleanup_expired_coupons(),
            "analyze": self.analyze_store_discounts(),
            "popularity": self.update_store_popularity(),
        }
        logger.info("Full sync finished in %.1fs", time.monotonic() - started)
        return results

    def find_store(self, store_name: str) -> Dict[str, Any]:
        with session_scope(self.session_factory) as session:
            store = session.execute(self._stores_query(store_name).limit(1)).scalars().first()
            if store is None:
                raise StoreNotFoundError(f'Store "{store_name}" not found in database')
            return {"id": store.id, "name": store.name, "alias": store.alias}

    def sync_store(self, store_name: str) -> Dict[str, Any]:
        """Validate a single store, then refresh its analysis and popularity."""

        try:
            store = self.find_store(store_name)
        except StoreNotFoundError as exc:
            self._write_log("store_webhook", "error", 0, 1, {"store": store_name, "message": str(exc)})
            raise

        analyze = self.analyze_store_discounts(store_name)
        popularity = self.update_store_popularity(store_name)
        errors = analyze.failed + popularity.failed
        self._write_log(
            "store_webhook",
            "error" if errors else "completed",
            analyze.success + popularity.success,
            errors,
            {"store": store["name"], "analyze": analyze.as_dict(), "popularity": popularity.as_dict()},
        )
        return {"store": store, "analyze": analyze, "popularity": popularity}

    def run(self, command: str = "all", store_name: Optional[str] = None) -> Dict[str, SyncResult]:
        """Dispatch one sync command and record it in the sync log."""

        handlers: Dict[str, Callable[[], Any]] = {
            "stores": self.sync_stores,
            "coupons": self.sync_coupons,
            "popularity": lambda: self.update_store_popularity(store_name),
            "analyze": lambda: self.analyze_store_discounts(store_name),
            "cleanup": self.cleanup_expired_coupons,
            "all": self.sync_all,
        }
        if command not in handlers:
            raise ValueError(f"Unknown sync command: {command}")

        logger.info("Running sync command %s", command, extra={"store": store_name})
        outcome = handlers[command]()
        results = outcome if isinstance(outcome, dict) else {command: outcome}
        success = sum(item.success for item in results.values())
        errors = sum(item.failed for item in results.values())
        self._write_log(
            command,
            "error" if errors else "completed",
            success,
            errors,
            {name: item.as_dict() for name, item in results.items()},
        )
        return results

    # -- scraped coupons ---------------------------------------------------
    def import_scraped_coupons(self, records: Iterable[CouponRecord], site_key: str) -> SyncResult:
        """Insert scraped coupons under a featured store per merchant.

        Stores are keyed ``{site}_{alias}``; coupons already present for the
        store (same code, or same title for deals) are skipped.
        """

        result = SyncResult("import", details={"site": site_key, "stores": []})
        ordered = sorted(records, key=lambda record: record.merchant_name or "")
        for merchant_name, group in groupby(ordered, key=lambda record: record.merchant_name or ""):
            group = list(group)
            alias = slugify(merchant_name) or "unknown-merchant"
            store_external_id = f"{site_key}_{alias}"
            try:
                with session_scope(self.session_factory) as session:
                    store = self._import_store(session, store_external_id, merchant_name, alias, group)
                    for record in group:
                        result.processed += 1
                        if self._import_coupon(session, store, store_external_id, record, site_key):
                            result.success += 1
                        else:
                            result.skipped += 1
                result.details["stores"].append(store_external_id)
            except SQLAlchemyError as exc:
                result.failed += len(group)
                logger.error("Failed to import coupons for %s: %s", merchant_name, exc)

        logger.info(
            "Imported %d scraped coupons (%d duplicates skipped)", result.success, result.skipped,
            extra={"site": site_key},
        )
        self._write_log(
            f"import_{site_key}", "error" if result.failed else "completed",
            result.success, result.failed, result.details,
        )
        return result

    def _import_store(
        self, session: Session, external_id: str, name: str, alias: str, records: Sequence[CouponRecord]
    ) -> Store:
        head = records[0]
        values = {
            "name": name or "Unknown Merchant",
            "alias": alias,
            "logo_url": head.merchant_logo or None,
            "website": head.merchant_domain or None,
            "url": head.url or head.merchant_url or None,
            "description": head.merchant_description or None,
        }
        store = session.execute(select(Store).where(Store.external_id == external_id)).scalar_one_or_none()
        now = self._now()
        if store is None:
            store = Store(external_id=external_id, is_featured=True, created_at=now, updated_at=now, **values)
            session.add(store)
            session.flush()
            return store
        for key, value in values.items():
            if value and not getattr(store, key):
                setattr(store, key, value)
        store.updated_at = now
        return store

    def _import_coupon(
        self, session: Session, store: Store, store_external_id: str, record: CouponRecord, site_key: str
    ) -> bool:
        code = record.coupon_code or None
        duplicate = select(Coupon.id).where(Coupon.store_id == store.id)
        duplicate = duplicate.where(Coupon.code == code) if code else duplicate.where(Coupon.title == record.promotion_title)
        if session.execute(duplicate.limit(1)).first() is not None:
            return False

        external_id = scraped_coupon_id(site_key, store_external_id, code, record.promotion_title)
        if session.execute(select(Coupon.id).where(Coupon.external_id == external_id)).first() is not None:
            return False

        expires_at = parse_date(record.expiry_date)
        now = self._now()
        session.add(
            Coupon(
                external_id=external_id,
                store_id=store.id,
                title=record.promotion_title,
                subtitle=record.subtitle,
                code=code,
                type="code" if code else "deal",
                discount_value=record.subtitle if record.subtitle != "other" else record.promotion_title,
                description=record.description,
                url=record.url or record.merchant_url or None,
                expires_at=expires_at,
                is_active=is_offer_active(None, expires_at, now),
                created_at=now,
                updated_at=now,
            )
        )
        session.flush()
        return True


__all__ = [
    "COMMANDS",
    "DataSyncService",
    "MalformedRecordError",
    "StoreNotFoundError",
    "SyncResult",
    "is_offer_active",
    "parse_date",
    "scraped_coupon_id",
]
