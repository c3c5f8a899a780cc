"""Database models and session helpers for stores, coupons and sync bookkeeping."""
from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Iterator

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker

from .config import get_settings

Base = declarative_base()


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(UTC)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _json(value: str | None):
    return json.loads(value) if value else None


class Store(Base):
    """Merchant synced from the affiliate network or imported from a scrape."""

    __tablename__ = "stores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(128), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    alias = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    logo_url = Column(String(1024), nullable=True)
    website = Column(String(255), nullable=True)
    url = Column(String(2048), nullable=True)
    category = Column(String(255), nullable=True)
    domains_data = Column(Text, nullable=True)
    countries_data = Column(Text, nullable=True)
    commission_rate_data = Column(Text, nullable=True)
    commission_model_data = Column(Text, nullable=True)
    is_featured = Column(Boolean, nullable=False, default=False)
    popularity_score = Column(Integer, nullable=False, default=0)
    active_offers_count = Column(Integer, nullable=False, default=0)
    rating = Column(Float, nullable=True)
    review_count = Column(Integer, nullable=True)
    discount_analysis = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    coupons = relationship("Coupon", back_populates="store", cascade="all, delete-orphan")

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "name": self.name,
            "alias": self.alias,
            "description": self.description,
            "logo_url": self.logo_url,
            "website": self.website,
            "url": self.url,
            "is_featured": self.is_featured,
            "popularity_score": self.popularity_score,
            "active_offers_count": self.active_offers_count,
            "rating": self.rating,
            "review_count": self.review_count,
            "discount_analysis": _json(self.discount_analysis),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Coupon(Base):
    """Offer belonging to a store; ``type`` is ``code`` when a code is present."""

    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(128), nullable=False, unique=True, index=True)
    store_id = Column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(512), nullable=False)
    subtitle = Column(String(128), nullable=True)
    code = Column(String(64), nullable=True)
    type = Column(String(16), nullable=False, default="deal")
    discount_value = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    url = Column(String(2048), nullable=True)
    countries = Column(Text, nullable=True)
    starts_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    store = relationship("Store", back_populates="coupons")

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "store_id": self.store_id,
            "title": self.title,
            "subtitle": self.subtitle,
            "code": self.code,
            "type": self.type,
            "discount_value": self.discount_value,
            "description": self.description,
            "url": self.url,
            "starts_at": _iso(self.starts_at),
            "expires_at": _iso(self.expires_at),
            "is_active": self.is_active,
        }


class SyncLog(Base):
    """Audit row written for every sync command run."""

    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sync_type = Column(String(64), nullable=False)
    status = Column(String(32), nullable=False, default="running")
    success_count = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "sync_type": self.sync_type,
            "status": self.status,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "details": _json(self.details),
            "created_at": _iso(self.created_at),
        }


class ScrapeRun(Base):
    """Persisted record describing a queued coupon scrape."""

    __tablename__ = "scrape_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    url = Column(String(2048), nullable=False)
    site_key = Column(String(64), nullable=True)
    status = Column(String(32), nullable=False, default="pending")
    record_count = Column(Integer, nullable=False, default=0)
    payload = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "site_key": self.site_key,
            "status": self.status,
            "record_count": self.record_count,
            "payload": _json(self.payload),
            "error_message": self.error_message,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def get_engine() -> Engine:
    """Construct (or return cached) SQLAlchemy engine."""

    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(settings.resolved_database_url(), pool_pre_ping=True)
    return _engine


def get_session_factory() -> sessionmaker:
    """Return a session factory bound to the configured engine."""

    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=get_engine(), expire_on_commit=False)
    return _SessionLocal


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session: Session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def get_session() -> Iterator[Session]:
    """Transactional scope bound to the configured database."""

    with session_scope(get_session_factory()) as session:
        yield session


def init_db(engine: Engine | None = None) -> None:
    """Create database tables if they do not already exist."""

    Base.metadata.create_all(bind=engine or get_engine())
