"""Recurring execution of the pipeline."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import schedule

logger = logging.getLogger(__name__)

POLL_SECONDS = 1.0


def run_safely(job: Callable[[], Any]) -> bool:
    """Run ``job`` once, logging instead of raising on failure."""
    try:
        job()
    except Exception:  # noqa: BLE001
        logger.exception("Scheduled run failed; will try again at the next interval")
        return False
    return True


def run_forever(
    job: Callable[[], Any],
    interval_minutes: float,
    scheduler: Optional[schedule.Scheduler] = None,
    sleep: Callable[[float], Any] = time.sleep,
    should_continue: Callable[[], bool] = lambda: True,
) -> None:
    """Run ``job`` now and then every ``interval_minutes`` until stopped.

    Jobs run on the calling thread, so a slow run delays the next one rather
    than overlapping it.
    """
    if interval_minutes <= 0:
        raise ValueError("interval-minutes must be positive.")

    scheduler = scheduler or schedule.Scheduler()
    interval_seconds = max(1, int(round(interval_minutes * 60)))
    scheduler.every(interval_seconds).seconds.do(run_safely, job)
    logger.info("Scheduled pipeline every %d seconds", interval_seconds)

    run_safely(job)
    while should_continue():
        scheduler.run_pending()
        sleep(POLL_SECONDS)
