"""
External Action Guard

Makes a single non-idempotent supplier call safe to invoke repeatedly.

Strategy:
1. Derive the idempotency key from (booking, supplier, action, provider ref)
2. Insert a `pending` lock row with that key (own savepoint, committed
   before the supplier is called)
3. Lost the insert: read the existing lock and report it as skipped
   - success: return the stored result
   - failed: do not re-execute; retries belong to the failure queue
   - pending: another process is in flight
4. Won the insert: run the call, then finalize the lock to success/failed.
   Failures are re-raised after the lock is marked. A result the lock
   column cannot store is kept as text; the lock still settles to success.

The pending row is only durable before the call in autocommit mode. Inside
`atomic()` (or with ATOMIC_REQUESTS) it commits with the caller, so a crash
mid-call leaves no trace of the attempt.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable

import structlog
from django.core.serializers.json import DjangoJSONEncoder  # type: ignore
from django.db import DatabaseError, IntegrityError, transaction  # type: ignore
from django.utils import timezone  # type: ignore

from shared.domain.base import OutcomeResult
from shared.domain.value_objects import clean_token

from .models import SupplierActionLock

logger = structlog.get_logger(__name__)

Status = SupplierActionLock.Status

# Keys in a supplier answer that carry its booking reference, most specific first.
CONFIRMATION_REF_FIELDS = (
    "confirmationRef",
    "confirmation_ref",
    "bookingReference",
    "booking_reference",
    "provider_booking_id",
    "providerBookingId",
    "pnr",
    "orderId",
    "order_id",
)


@dataclass(frozen=True)
class GuardResult(OutcomeResult):
    """
    Outcome of a guarded call

    reason:
    - executed: this call ran the supplier action
    - already_succeeded: an earlier call succeeded, `result` is its cached answer
    - previously_failed: an earlier call failed; nothing was executed
    - in_flight: another caller holds the lock right now
    """
    idempotency_key: str
    skipped: bool
    reason: str
    lock_status: str
    result: Any = None

    @property
    def changed(self) -> bool:
        return not self.skipped


class _StoredResultEncoder(DjangoJSONEncoder):
    def default(self, o):
        try:
            return super().default(o)
        except TypeError:
            return str(o)


def build_idempotency_key(booking_id, supplier, action, ref=None) -> str:
    """sup:<supplier>|act:<action>|bk:<booking>|ref:<ref>"""
    return (
        f"sup:{clean_token(supplier).lower()}"
        f"|act:{clean_token(action).lower()}"
        f"|bk:{clean_token(booking_id)}"
        f"|ref:{clean_token(ref) or 'na'}"
    )


def extract_confirmation_reference(result) -> str | None:
    """Pick the supplier's booking reference out of its answer, if any"""
    if not isinstance(result, dict):
        return None
    for field_name in CONFIRMATION_REF_FIELDS:
        value = clean_token(result.get(field_name))
        if value:
            return value
    return None


def storable_result(result):
    """JSON-safe copy of a supplier answer for the lock row"""
    try:
        return json.loads(json.dumps(result, cls=_StoredResultEncoder))
    except (TypeError, ValueError):
        return {"unstored_result": repr(result)[:2000]}


def _finalize(lock: SupplierActionLock, status: str, **fields) -> bool:
    """Settle a pending lock. Returns False when the row was not updated."""
    try:
        updated = SupplierActionLock.objects.filter(pk=lock.pk, status=Status.PENDING).update(
            status=status,
            updated_at=timezone.now(),
            **fields,
        )
    except DatabaseError:
        # The row stays pending and shows up as stale for an operator.
        logger.error(
            "supplier.guard.finalize_failed",
            idempotency_key=lock.idempotency_key,
            status=status,
            exc_info=True,
        )
        return False
    if not updated:
        logger.warning(
            "supplier.guard.finalize_skipped",
            idempotency_key=lock.idempotency_key,
            status=status,
        )
    return bool(updated)


def _skipped(key: str, existing: SupplierActionLock | None) -> GuardResult:
    if existing is None:
        # Released between our insert attempt and the read.
        reason, status, result = "in_flight", Status.PENDING, None
    elif existing.status == Status.SUCCESS:
        reason, status, result = "already_succeeded", existing.status, existing.result
    elif existing.status == Status.FAILED:
        reason, status, result = "previously_failed", existing.status, None
    else:
        reason, status, result = "in_flight", existing.status, None

    logger.info("supplier.guard.skipped", idempotency_key=key, reason=reason, lock_status=str(status))
    return GuardResult(
        idempotency_key=key,
        skipped=True,
        reason=reason,
        lock_status=str(status),
        result=result,
    )


def guard(
    booking_id,
    supplier: str,
    action: str,
    provider_ref,
    execute: Callable[[], Any],
    *,
    request_id=None,
    meta: dict | None = None,
) -> GuardResult:
    """
    Run `execute` at most once per (booking, supplier, action, provider ref).

    `provider_ref` must be a stable caller reference (offer id, hotel rate
    key), never something derived from request timing. When it is empty the
    request id is used instead.

    Call it outside `transaction.atomic()`: the pending lock has to be
    committed before the supplier is reached.

    Raises whatever `execute` raises, after the lock is marked failed.
    """
    booking_token = clean_token(booking_id)
    supplier_token = clean_token(supplier).lower()
    action_token = clean_token(action).lower()
    if not booking_token or not supplier_token or not action_token:
        raise ValueError("booking_id, supplier and action are required for a guarded call")

    ref = clean_token(provider_ref) or clean_token(request_id) or "na"
    key = build_idempotency_key(booking_token, supplier_token, action_token, ref)

    if transaction.get_connection().in_atomic_block:
        logger.warning("supplier.guard.lock_not_durable", idempotency_key=key)

    try:
        with transaction.atomic():
            lock = SupplierActionLock.objects.create(
                booking_id=booking_token,
                supplier=supplier_token,
                action=action_token,
                provider_ref=ref,
                request_id=clean_token(request_id),
                idempotency_key=key,
                status=Status.PENDING,
                meta={"ref": ref, **(meta or {})},
            )
    except IntegrityError:
        existing = SupplierActionLock.objects.active().filter(idempotency_key=key).first()
        return _skipped(key, existing)

    logger.info(
        "supplier.guard.acquired",
        idempotency_key=key,
        booking_id=booking_token,
        supplier=supplier_token,
        action=action_token,
    )

    try:
        result = execute()
    except Exception as exc:
        _finalize(
            lock,
            Status.FAILED,
            error=f"{exc.__class__.__name__}: {exc}"[:2000],
            meta={**lock.meta, "error": str(exc)[:500]},
        )
        logger.warning(
            "supplier.guard.execute_failed",
            idempotency_key=key,
            error=str(exc),
        )
        raise

    confirmation_ref = extract_confirmation_reference(result)
    final_meta = dict(lock.meta)
    if confirmation_ref:
        final_meta["confirmation_ref"] = confirmation_ref
    _finalize(lock, Status.SUCCESS, result=storable_result(result), meta=final_meta)

    logger.info(
        "supplier.guard.executed",
        idempotency_key=key,
        confirmation_ref=confirmation_ref,
    )
    return GuardResult(
        idempotency_key=key,
        skipped=False,
        reason="executed",
        lock_status=Status.SUCCESS.value,
        result=result,
    )
