"""Celery app running the daily accrual on the platform calendar"""

import logging
from datetime import date
from typing import Optional

from celery import Celery
from celery.schedules import crontab

from yield_ledger.config import settings
from yield_ledger.infrastructure.database.session import SessionLocal
from yield_ledger.infrastructure.observability.logging import setup_logging
from yield_ledger.services.accrual import AccrualEngine

setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = Celery("yield_ledger", broker=settings.celery_broker_url)
app.conf.timezone = settings.platform_timezone
app.conf.enable_utc = False

app.conf.beat_schedule = {
    "run-daily-accrual": {
        "task": "yield_ledger.run_daily_accrual",
        "schedule": crontab(hour=settings.accrual_hour, minute=settings.accrual_minute),
    },
}


@app.task(name="yield_ledger.run_daily_accrual")
def run_daily_accrual(grant_date: Optional[str] = None) -> dict:
    """
    Accrue one day of income for every active investment.

    Carries no "already ran" state: a duplicate or overlapping delivery is
    absorbed by the per-investment grant records.
    """
    db = SessionLocal()
    try:
        summary = AccrualEngine(db).run(date.fromisoformat(grant_date) if grant_date else None)
    finally:
        db.close()
    return {
        "grant_date": summary.grant_date.isoformat(),
        "checked": summary.checked,
        "granted": summary.granted,
        "skipped": summary.skipped,
        "duplicates": summary.duplicates,
        "failed": summary.failed,
        "total_amount": str(summary.total_amount),
    }
