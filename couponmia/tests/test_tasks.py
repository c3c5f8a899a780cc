"""Tests for the Celery task bodies (executed eagerly, no broker)."""
from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path
from unittest.mock import patch

import pytest
from sqlalchemy import select

from couponmia.scraping.browser import RenderedPage
from couponmia.scraping.scraper import CouponRecord
from couponmia.sync.service import DataSyncService
from couponmia.workflow import tasks
from couponmia.workflow.db import ScrapeRun, session_scope

FIXTURES = Path(__file__).parent / "fixtures"
GRABON_URL = "https://www.grabon.in/myntra-coupons/"


@pytest.fixture()
def task_env(session_factory):
    @contextmanager
    def get_session():
        with session_scope(session_factory) as session:
            yield session

    service = DataSyncService(None, session_factory)
    with patch.object(tasks, "get_session", get_session), patch.object(tasks, "init_db"), patch.object(
        tasks.DataSyncService, "from_settings", return_value=service
    ):
        yield session_factory


def _runs(session_factory):
    with session_factory() as session:
        return session.execute(select(ScrapeRun)).scalars().all()


def test_scrape_site_task_records_completed_run(task_env) -> None:
    html = (FIXTURES / "grabon.html").read_text(encoding="utf-8")
    rendered = RenderedPage(url=GRABON_URL, title="Myntra Coupons & Offers", html=html)

    with patch.object(tasks, "fetch_rendered_html", return_value=rendered):
        result = tasks.scrape_site_task(GRABON_URL, import_records=True)

    assert result["record_count"] == 2
    assert result["strategy"] == "configured_items"
    assert result["imported"]["success"] == 2

    (run,) = _runs(task_env)
    assert run.status == "completed"
    assert run.site_key == "grabon"
    assert json.loads(run.payload)["merchant"]["name"] == "Myntra"


def test_scrape_site_task_marks_failed_run(task_env) -> None:
    with patch.object(tasks, "fetch_rendered_html", side_effect=RuntimeError("navigation failed")):
        with pytest.raises(RuntimeError):
            tasks.scrape_site_task(GRABON_URL)

    (run,) = _runs(task_env)
    assert run.status == "failed"
    assert run.error_message == "navigation failed"


def test_run_sync_task_returns_counters(task_env) -> None:
    summary = tasks.run_sync_task("cleanup")
    assert summary == {
        "cleanup": {"name": "cleanup", "processed": 0, "success": 0, "failed": 0, "skipped": 0, "details": {}}
    }


def test_sync_store_task_refreshes_store(task_env) -> None:
    record = CouponRecord(promotion_title="20% off everything", coupon_code="SAVE20", merchant_name="Acme")
    DataSyncService(None, task_env).import_scraped_coupons([record], "worthepenny")

    outcome = tasks.sync_store_task("acme")

    assert outcome["store"]["external_id"] == "worthepenny_acme"
    assert outcome["analyze"]["success"] == 1
    assert outcome["popularity"]["success"] == 1


def test_enqueue_sync_store_delays_task() -> None:
    with patch.object(tasks, "sync_store_task") as task:
        tasks.enqueue_sync_store("acme")
    task.delay.assert_called_once_with(store_name="acme")
