import json
import logging

from apscheduler.schedulers.blocking import BlockingScheduler

from renewals.config import Settings
from renewals.handlers import run_scan


logger = logging.getLogger(__name__)


def _run_daily_scan(settings: Settings) -> None:
    response = run_scan(settings)
    body = json.loads(response["body"])
    if response["statusCode"] != 200:
        logger.error(
            "scheduled renewal scan failed",
            extra={"status_code": response["statusCode"], "reference": body.get("reference")},
        )
        return
    logger.info(
        "scheduled renewal scan completed",
        extra={"status_code": response["statusCode"], "results": body.get("results")},
    )


def start_scheduler(settings: Settings, *, run_now: bool = False) -> None:
    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_job(
        _run_daily_scan,
        "cron",
        args=[settings],
        hour=settings.schedule_hour_utc,
        minute=settings.schedule_minute_utc,
        id="daily_renewal_scan",
        replace_existing=True,
    )

    logger.info(
        "scheduler started",
        extra={
            "schedule_hour_utc": settings.schedule_hour_utc,
            "schedule_minute_utc": settings.schedule_minute_utc,
        },
    )

    if run_now:
        _run_daily_scan(settings)

    scheduler.start()
