"""Celery tasks for supplier action locks."""

from __future__ import annotations

import structlog
from celery import shared_task  # type: ignore

from .services import find_stale_locks

logger = structlog.get_logger(__name__)


@shared_task(name="suppliers.report_stale_locks")
def report_stale_locks() -> dict[str, int]:
    """
    Report supplier locks stuck in `pending`.

    A stale lock usually means a worker died mid-call. The supplier may or
    may not have booked, so nothing is released automatically; an operator
    checks with the supplier and releases through the admin or
    `release_supplier_lock`.

    Runs every 30 minutes through Celery Beat.
    """
    stale = list(find_stale_locks().values("idempotency_key", "booking_id", "supplier", "updated_at"))
    for lock in stale:
        logger.warning(
            "supplier.lock.stale",
            idempotency_key=lock["idempotency_key"],
            booking_id=lock["booking_id"],
            supplier=lock["supplier"],
            updated_at=lock["updated_at"].isoformat(),
        )
    return {"stale": len(stale)}
