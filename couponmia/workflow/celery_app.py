"""Celery application initialization."""
from __future__ import annotations

import os

from celery import Celery
from celery.schedules import crontab

from .config import get_settings

settings = get_settings()

celery_app = Celery(
    "couponmia",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_default_queue=os.getenv("CELERY_DEFAULT_QUEUE", "default"),
    task_routes={
        "couponmia.workflow.tasks.scrape_site": {"queue": "scraping"},
        "couponmia.workflow.tasks.run_sync": {"queue": "sync"},
        "couponmia.workflow.tasks.sync_store": {"queue": "sync"},
    },
    beat_schedule={
        "daily-affiliate-sync": {
            "task": "couponmia.workflow.tasks.run_sync",
            "schedule": crontab(hour=settings.sync_schedule_hour, minute=0),
            "kwargs": {"command": "all"},
        },
    },
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=os.getenv("CELERY_TIMEZONE", "UTC"),
    enable_utc=True,
)

celery_app.autodiscover_tasks(["couponmia.workflow.tasks"])
