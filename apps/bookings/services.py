"""Domain services for the booking lifecycle.

`transition_lifecycle` is the only writer of `Booking.lifecycle_status`.
Every advance is a single-row compare-and-swap on the status read just
before it, written together with its audit row. Losing the swap or finding
the booking already at the target is reported as a result, never raised.
"""

from __future__ import annotations

import uuid

import structlog
from django.db import IntegrityError, transaction  # type: ignore
from django.utils import timezone  # type: ignore

from shared.domain.value_objects import IdempotencyKey, clean_token

from .domain.lifecycle import (
    ActorType,
    LifecycleStatus,
    TransitionOutcome,
    TransitionResult,
    is_at_or_beyond,
)
from .models import Booking, BookingLifecycleEvent

logger = structlog.get_logger(__name__)

# Re-read attempts when the status moves between our read and our swap.
MAX_SWAP_ATTEMPTS = 3


class LifecycleConflictError(Exception):
    """Raised when the booking keeps changing under a transition; retryable."""


class _StaleSnapshot(Exception):
    pass


def resolve_booking(identifier) -> Booking | None:
    """Find a booking by its human-readable code, then by its UUID."""

    reference = clean_token(identifier)
    if not reference:
        return None

    booking = Booking.objects.filter(booking_code=reference).first()
    if booking is not None:
        return booking

    try:
        booking_id = uuid.UUID(reference)
    except ValueError:
        return None
    return Booking.objects.filter(pk=booking_id).first()


def update_status_flags(booking_id, **flags) -> int:
    """Set auxiliary payment/supplier flags. They never drive ordering."""

    allowed = {"payment_status", "supplier_status", "supplier_confirmation_reference"}
    unknown = set(flags) - allowed
    if unknown:
        raise ValueError(f"Unsupported booking flags: {sorted(unknown)}")
    return Booking.objects.filter(pk=booking_id).update(updated_at=timezone.now(), **flags)


def _current_status(booking_id) -> LifecycleStatus:
    value = Booking.objects.filter(pk=booking_id).values_list("lifecycle_status", flat=True).first()
    if value is None:
        raise Booking.DoesNotExist(f"Booking {booking_id} not found")
    return LifecycleStatus.parse(value)


def transition_lifecycle(
    booking_id,
    to_status,
    *,
    idempotency_key,
    actor_type=ActorType.SYSTEM,
    actor_id=None,
    note: str = "",
) -> TransitionResult:
    """
    Move a booking forward to `to_status`.

    Returns a TransitionResult; only `APPLIED` changed anything.

    Raises:
        InvalidLifecycleStatus: `to_status` is not a lifecycle state
        Booking.DoesNotExist: no booking with this id
        LifecycleConflictError: the status kept moving during the swap
        DatabaseError: the store write failed; the transition did not happen
    """
    target = LifecycleStatus.parse(to_status)
    actor = ActorType.parse(actor_type)
    key = clean_token(idempotency_key)
    if not key:
        raise ValueError("idempotency_key is required for lifecycle transitions")

    first_seen = None
    for _ in range(MAX_SWAP_ATTEMPTS):
        current = _current_status(booking_id)
        first_seen = first_seen or current

        if is_at_or_beyond(current, target):
            outcome = (
                TransitionOutcome.ALREADY_REACHED if current == first_seen else TransitionOutcome.LOST_RACE
            )
            logger.info(
                "lifecycle.transition.noop",
                booking_id=str(booking_id),
                current=current.value,
                target=target.value,
                outcome=outcome.value,
            )
            return TransitionResult(booking_id, current, target, outcome, key)

        try:
            with transaction.atomic():
                BookingLifecycleEvent.objects.create(
                    booking_id=booking_id,
                    from_status=current.value,
                    to_status=target.value,
                    actor_type=actor.value,
                    actor_id=clean_token(actor_id),
                    idempotency_key=key,
                    note=(note or "")[:255],
                )
                advanced = Booking.objects.filter(
                    pk=booking_id,
                    lifecycle_status=current.value,
                ).update(lifecycle_status=target.value, updated_at=timezone.now())
                if not advanced:
                    raise _StaleSnapshot()
        except IntegrityError:
            logger.info(
                "lifecycle.transition.duplicate",
                booking_id=str(booking_id),
                target=target.value,
                idempotency_key=key,
            )
            return TransitionResult(booking_id, current, target, TransitionOutcome.DUPLICATE, key)
        except _StaleSnapshot:
            continue

        logger.info(
            "lifecycle.transition.applied",
            booking_id=str(booking_id),
            from_status=current.value,
            to_status=target.value,
            actor_type=actor.value,
            idempotency_key=key,
        )
        return TransitionResult(booking_id, current, target, TransitionOutcome.APPLIED, key)

    raise LifecycleConflictError(
        f"Booking {booking_id} changed {MAX_SWAP_ATTEMPTS} times while moving to {target.value}"
    )


def complete_booking(booking_id, *, actor_type=ActorType.SYSTEM, actor_id=None, note: str = "") -> TransitionResult:
    """Final step of the fulfillment sequence."""

    key = IdempotencyKey(f"complete:{booking_id}").child(LifecycleStatus.COMPLETED.value)
    return transition_lifecycle(
        booking_id,
        LifecycleStatus.COMPLETED,
        idempotency_key=str(key),
        actor_type=actor_type,
        actor_id=actor_id,
        note=note or "Booking completed",
    )
