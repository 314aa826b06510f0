"""Celery tasks for fulfillment automation."""

from __future__ import annotations

import structlog
from celery import shared_task  # type: ignore

from .scheduler import RetryScheduler

logger = structlog.get_logger(__name__)


@shared_task(name="automation.retry_failed_events")
def retry_failed_events() -> dict[str, int]:
    """
    Replay due items from the retry queue.

    Runs every 5 minutes through Celery Beat. Overlapping runs are safe:
    every item is claimed with a conditional update before replay.

    Returns:
        dict: {"processed": ..., "resolved": ..., "still_failed": ..., "unfinalized": ...}
    """
    return RetryScheduler().run()
