"""Celery configuration for the scheduled leaderboard sync."""

from __future__ import annotations

import os

from celery import Celery
from celery.schedules import crontab

from leetrank.utils.dates import timezone_name

broker_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")
backend_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")

celery_app = Celery("leetrank", broker=broker_url, backend=backend_url, include=["leetrank.jobs.sync"])
celery_app.conf.timezone = timezone_name()
celery_app.conf.beat_schedule = {
    "daily-leaderboard-sync": {
        "task": "leetrank.jobs.sync.run_sync",
        "schedule": crontab(hour=int(os.environ.get("SYNC_HOUR", "3")), minute=int(os.environ.get("SYNC_MINUTE", "0"))),
    },
}


@celery_app.task(name="leetrank.jobs.sync.run_sync")
def run_sync_task() -> dict[str, object]:  # pragma: no cover - executed by worker
    import asyncio
    from dataclasses import asdict

    from leetrank.jobs.sync import run_sync

    summary = asyncio.run(run_sync())
    return asdict(summary)
