"""Dedicated APScheduler worker process."""
from __future__ import annotations

import logging
import signal
import threading

from apscheduler.schedulers.background import BackgroundScheduler

from ally.core.config import settings
from ally.core.logging import configure_logging
from ally.db.session import SessionLocal
from ally.services.job_runner import run_balance_for_all_users


logger = logging.getLogger(__name__)


def main() -> None:
    configure_logging(log_level=settings.log_level)
    logger.info("Scheduler worker starting (enabled=%s)", settings.scheduler_enabled)

    scheduler = BackgroundScheduler(timezone=settings.scheduler_timezone)

    if settings.scheduler_enabled:
        register_jobs(scheduler)
        scheduler.start()
        if settings.jobs_run_on_startup:
            logger.info("Running balance job once on startup")
            run_balance_job()
    else:
        logger.warning("Scheduler disabled via config; worker will idle")

    stop_event = threading.Event()

    def shutdown(signum, frame):  # pragma: no cover - signal handler
        logger.info("Scheduler worker shutting down (signal=%s)", signum)
        if scheduler.running:
            scheduler.shutdown(wait=False)
        stop_event.set()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        stop_event.wait()
    except KeyboardInterrupt:  # pragma: no cover - manual stop
        shutdown(signal.SIGINT, None)


def register_jobs(scheduler: BackgroundScheduler) -> None:
    scheduler.add_job(
        run_balance_job,
        trigger="cron",
        hour=settings.balance_job_hour,
        minute=settings.balance_job_minute,
        id="balance_score_job",
        replace_existing=True,
    )
    logger.info(
        "Registered balance job (daily at %02d:%02d %s)",
        settings.balance_job_hour,
        settings.balance_job_minute,
        settings.scheduler_timezone,
    )


def run_balance_job() -> None:
    session = SessionLocal()
    try:
        result = run_balance_for_all_users(session)
        logger.info(
            "Balance job complete: users=%s, scores=%s, errors=%s",
            result.users_processed,
            result.scores_written,
            result.errors,
        )
    except Exception:  # pragma: no cover - worker must keep running
        logger.exception("Balance job failed")
    finally:
        session.close()


if __name__ == "__main__":  # pragma: no cover - manual launch
    main()
