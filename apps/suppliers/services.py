"""Supplier booking and lock maintenance services."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import structlog
from django.conf import settings  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.domain.lifecycle import ActorType
from apps.bookings.models import Booking
from apps.bookings.services import update_status_flags
from shared.domain.value_objects import clean_token

from .exceptions import SupplierLockError, SupplierLockNotFound
from .gateway import SupplierGateway
from .guard import GuardResult, extract_confirmation_reference, guard
from .models import SupplierActionLock

logger = structlog.get_logger(__name__)

BOOK_ACTION = "book"


def book_with_supplier(
    booking: Booking,
    supplier: str,
    provider_ref,
    payload: dict[str, Any],
    *,
    request_id=None,
    actor_type=ActorType.SYSTEM,
    actor_id=None,
    gateway: SupplierGateway | None = None,
) -> GuardResult:
    """
    Book the reserved item with the supplier, at most once.

    On success (fresh or cached) the supplier reference is stored on the
    booking and `supplier.confirmed` is dispatched. A skipped call for an
    in-flight or failed lock returns without touching the booking.
    """
    from apps.automation.services import dispatch_automation_event

    gateway = gateway or SupplierGateway()
    outcome = guard(
        booking.pk,
        supplier,
        BOOK_ACTION,
        provider_ref,
        lambda: gateway.create_booking(supplier, payload),
        request_id=request_id,
        meta={"booking_code": booking.booking_code},
    )

    if outcome.skipped and outcome.reason != "already_succeeded":
        return outcome

    confirmation_ref = extract_confirmation_reference(outcome.result)
    if confirmation_ref and confirmation_ref != booking.supplier_confirmation_reference:
        update_status_flags(booking.pk, supplier_confirmation_reference=confirmation_ref)

    dispatch_automation_event(
        "supplier.confirmed",
        booking_id=str(booking.pk),
        payload={"supplier": supplier, "confirmation_ref": confirmation_ref},
        actor_type=actor_type,
        actor_id=actor_id,
        idempotency_key=outcome.idempotency_key,
        source="supplier_booking",
    )
    return outcome


def stale_threshold(now=None):
    minutes = getattr(settings, "SUPPLIER_LOCK_STALE_AFTER_MINUTES", 30)
    return (now or timezone.now()) - timedelta(minutes=minutes)


def find_stale_locks(now=None):
    """Pending locks that have not moved for longer than the stale threshold."""

    return SupplierActionLock.objects.stale(stale_threshold(now)).order_by("updated_at")


def release_lock(idempotency_key: str, released_by: str, reason: str = "", *, force: bool = False) -> SupplierActionLock:
    """
    Operator unlock: move a stale pending or failed lock to `released`.

    The released row stays for audit and the key becomes free for exactly
    one new execution. Succeeded locks are never released.

    Raises:
        SupplierLockNotFound: no active lock holds the key
        SupplierLockError: the lock succeeded, is still fresh, or changed meanwhile
    """
    key = clean_token(idempotency_key)
    lock = SupplierActionLock.objects.active().filter(idempotency_key=key).first()
    if lock is None:
        raise SupplierLockNotFound(f"No active lock for {key}")

    if lock.status == SupplierActionLock.Status.SUCCESS:
        raise SupplierLockError("A succeeded supplier action cannot be released")

    if (
        lock.status == SupplierActionLock.Status.PENDING
        and not force
        and lock.updated_at >= stale_threshold()
    ):
        raise SupplierLockError("Lock is still in flight; pass force to release it anyway")

    now = timezone.now()
    meta = {
        **(lock.meta or {}),
        "released_from": lock.status,
        "release_reason": reason,
        "release_forced": force,
    }
    released = SupplierActionLock.objects.filter(
        pk=lock.pk,
        status=lock.status,
        updated_at=lock.updated_at,
    ).update(
        status=SupplierActionLock.Status.RELEASED,
        released_at=now,
        released_by=clean_token(released_by)[:64],
        updated_at=now,
        meta=meta,
    )
    if not released:
        raise SupplierLockError("Lock changed while releasing; reload and try again")

    logger.warning(
        "supplier.lock.released",
        idempotency_key=key,
        released_from=lock.status,
        released_by=released_by,
        force=force,
    )
    lock.refresh_from_db()
    return lock
