"""Celery tasks for queued scraping and scheduled affiliate syncs."""
from __future__ import annotations

import json
import logging
from typing import Optional

from celery import shared_task

from couponmia.scraping.browser import BrowserConfig, fetch_rendered_html
from couponmia.scraping.scraper import resolve_site, scrape_html
from couponmia.sync.service import DataSyncService

from .config import get_settings
from .db import ScrapeRun, get_session, init_db

logger = logging.getLogger(__name__)


@shared_task(bind=True, name="couponmia.workflow.tasks.scrape_site")
def scrape_site_task(self, url: str, site_key: Optional[str] = None, import_records: bool = False) -> dict:
    """Render a coupon page, scrape it and persist the run (optionally importing coupons)."""

    settings = get_settings()
    init_db()
    config = resolve_site(url, site_key)

    with get_session() as session:
        run = ScrapeRun(url=url, site_key=config.key, status="running")
        session.add(run)
        session.flush()
        run_id = run.id

    logger.info("Starting coupon scrape", extra={"url": url, "run_id": run_id, "site": config.key})

    try:
        rendered = fetch_rendered_html(
            url,
            config=BrowserConfig(headless=settings.playwright_headless, browser_type=settings.playwright_browser),
            wait_for_selector=config.selectors.coupon_container,
            wait_timeout_ms=settings.scrape_wait_timeout_ms,
            settle_ms=settings.scrape_settle_ms,
        )
        result = scrape_html(
            rendered.html,
            url,
            site_key=config.key,
            title=rendered.title,
            viglink_api_key=settings.viglink_api_key,
        )
        payload = result.to_dict()

        imported = None
        if import_records and result.records:
            imported = DataSyncService.from_settings(settings).import_scraped_coupons(result.records, config.key)

        with get_session() as session:
            run = session.get(ScrapeRun, run_id)
            if run is not None:
                run.status = "completed"
                run.record_count = len(result.records)
                run.payload = json.dumps(payload)
        logger.info(
            "Completed coupon scrape",
            extra={"url": url, "run_id": run_id, "record_count": len(result.records), "strategy": result.strategy},
        )
        return {
            "run_id": run_id,
            "record_count": len(result.records),
            "strategy": result.strategy,
            "imported": imported.as_dict() if imported else None,
        }
    except Exception as exc:  # pragma: no cover - integration behavior
        logger.exception("Coupon scrape failed", extra={"url": url, "run_id": run_id})
        with get_session() as session:
            run = session.get(ScrapeRun, run_id)
            if run is not None:
                run.status = "failed"
                run.error_message = str(exc)
        raise


@shared_task(bind=True, name="couponmia.workflow.tasks.run_sync")
def run_sync_task(self, command: str = "all", store_name: Optional[str] = None) -> dict:
    """Run one affiliate sync command and return its counters."""

    settings = get_settings()
    init_db()
    results = DataSyncService.from_settings(settings).run(command, store_name)
    summary = {name: result.as_dict() for name, result in results.items()}
    logger.info("Sync command finished", extra={"command": command, "store": store_name})
    return summary


@shared_task(bind=True, name="couponmia.workflow.tasks.sync_store")
def sync_store_task(self, store_name: str) -> dict:
    """Refresh discount analysis and popularity for a single store."""

    settings = get_settings()
    init_db()
    outcome = DataSyncService.from_settings(settings).sync_store(store_name)
    return {
        "store": outcome["store"],
        "analyze": outcome["analyze"].as_dict(),
        "popularity": outcome["popularity"].as_dict(),
    }


def enqueue_scrape(url: str, site_key: Optional[str] = None, import_records: bool = False):
    """Convenience helper for scheduling a coupon scrape."""

    return scrape_site_task.delay(url=url, site_key=site_key, import_records=import_records)


def enqueue_sync(command: str = "all", store_name: Optional[str] = None):
    """Convenience helper for scheduling a sync command."""

    return run_sync_task.delay(command=command, store_name=store_name)


def enqueue_sync_store(store_name: str):
    """Convenience helper for scheduling a single-store refresh."""

    return sync_store_task.delay(store_name=store_name)
