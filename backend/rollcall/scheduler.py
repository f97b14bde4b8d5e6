"""
APScheduler background job that runs the session sweeper.

The job closes every active session whose duration has elapsed and fills
absences for members without a record. Re-running it is harmless.
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(timezone='UTC')


def _sweep_sessions_scheduled(app: Flask) -> None:
    """Scheduled task: sweep expired sessions inside an application context."""
    from rollcall.services.session_sweeper import SessionSweeper

    with app.app_context():
        try:
            result = SessionSweeper.run()
            if result.ended_count:
                logger.info(
                    "Sweeper closed %d session(s): %s",
                    result.ended_count, result.session_ids,
                )
        except Exception as exc:
            logger.error("Session sweep failed: %s", exc, exc_info=True)


def start_scheduler(app: Flask) -> None:
    """Start the background scheduler (called from the application factory)."""
    scheduler.add_job(
        _sweep_sessions_scheduled,
        trigger="interval",
        seconds=app.config.get('SWEEPER_INTERVAL_SECONDS', 60),
        args=[app],
        id="session_sweeper",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    if not scheduler.running:
        scheduler.start()
    logger.info("Scheduler started - sweeping sessions every %ss.",
                app.config.get('SWEEPER_INTERVAL_SECONDS', 60))


def stop_scheduler() -> None:
    """Stop the scheduler cleanly."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped.")
