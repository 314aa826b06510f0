"""Tests for the booking lifecycle engine."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from apps.bookings import services
from apps.bookings.domain.lifecycle import (
    ActorType,
    InvalidLifecycleStatus,
    LifecycleStatus,
    TransitionOutcome,
    is_at_or_beyond,
)
from apps.bookings.models import Booking, BookingLifecycleEvent
from apps.bookings.services import (
    LifecycleConflictError,
    complete_booking,
    resolve_booking,
    transition_lifecycle,
    update_status_flags,
)


@pytest.fixture
def booking(db):
    return Booking.objects.create()


def test_lifecycle_order():
    assert [status.value for status in LifecycleStatus] == [
        "created",
        "payment_confirmed",
        "supplier_confirmed",
        "documents_generated",
        "completed",
    ]
    assert is_at_or_beyond("documents_generated", LifecycleStatus.SUPPLIER_CONFIRMED)
    assert is_at_or_beyond(LifecycleStatus.CREATED, "created")
    assert not is_at_or_beyond("payment_confirmed", "supplier_confirmed")


def test_parse_rejects_unknown_status():
    with pytest.raises(InvalidLifecycleStatus):
        LifecycleStatus.parse("shipped")
    assert LifecycleStatus.parse(" Completed ") is LifecycleStatus.COMPLETED


def test_transition_applies_and_audits(booking):
    result = transition_lifecycle(
        booking.pk,
        "payment_confirmed",
        idempotency_key="payment.confirmed:BK-1",
        actor_type=ActorType.WEBHOOK,
        actor_id="stripe",
        note="captured",
    )

    assert result.outcome is TransitionOutcome.APPLIED
    assert result.changed
    assert result.from_status is LifecycleStatus.CREATED
    booking.refresh_from_db()
    assert booking.lifecycle is LifecycleStatus.PAYMENT_CONFIRMED

    audit = BookingLifecycleEvent.objects.get()
    assert (audit.from_status, audit.to_status) == ("created", "payment_confirmed")
    assert audit.actor_type == "webhook"
    assert audit.actor_id == "stripe"
    assert audit.note == "captured"


@pytest.mark.parametrize("second_key", ["payment.confirmed:BK-1", "payment.confirmed:BK-1:redelivery"])
def test_repeated_transition_is_noop(booking, second_key):
    transition_lifecycle(booking.pk, "payment_confirmed", idempotency_key="payment.confirmed:BK-1")

    again = transition_lifecycle(booking.pk, "payment_confirmed", idempotency_key=second_key)

    assert again.outcome is TransitionOutcome.ALREADY_REACHED
    assert not again.changed
    assert BookingLifecycleEvent.objects.count() == 1


def test_transition_never_moves_backwards(booking):
    Booking.objects.filter(pk=booking.pk).update(lifecycle_status=LifecycleStatus.DOCUMENTS_GENERATED.value)

    result = transition_lifecycle(booking.pk, LifecycleStatus.PAYMENT_CONFIRMED, idempotency_key="late")

    assert result.outcome is TransitionOutcome.ALREADY_REACHED
    booking.refresh_from_db()
    assert booking.lifecycle is LifecycleStatus.DOCUMENTS_GENERATED
    assert BookingLifecycleEvent.objects.count() == 0


def test_transition_may_skip_ahead(booking):
    result = transition_lifecycle(booking.pk, "supplier_confirmed", idempotency_key="supplier:BK-1")

    assert result.outcome is TransitionOutcome.APPLIED
    booking.refresh_from_db()
    assert booking.lifecycle is LifecycleStatus.SUPPLIER_CONFIRMED


def test_reused_key_is_reported_as_duplicate(booking):
    transition_lifecycle(booking.pk, "payment_confirmed", idempotency_key="shared-key")

    result = transition_lifecycle(booking.pk, "supplier_confirmed", idempotency_key="shared-key")

    assert result.outcome is TransitionOutcome.DUPLICATE
    booking.refresh_from_db()
    assert booking.lifecycle is LifecycleStatus.PAYMENT_CONFIRMED


def test_same_key_on_another_booking_still_applies(booking):
    other = Booking.objects.create()
    transition_lifecycle(booking.pk, "payment_confirmed", idempotency_key="evt-1")

    result = transition_lifecycle(other.pk, "payment_confirmed", idempotency_key="evt-1")

    assert result.outcome is TransitionOutcome.APPLIED
    other.refresh_from_db()
    assert other.lifecycle is LifecycleStatus.PAYMENT_CONFIRMED
    assert BookingLifecycleEvent.objects.filter(idempotency_key="evt-1").count() == 2


def test_lost_race_to_concurrent_writer(booking):
    real_current_status = services._current_status
    reads = []

    def racing_read(booking_id):
        status = real_current_status(booking_id)
        reads.append(status)
        if len(reads) == 1:
            # Another process advances the booking right after our read.
            Booking.objects.filter(pk=booking_id).update(lifecycle_status=LifecycleStatus.SUPPLIER_CONFIRMED.value)
        return status

    with patch.object(services, "_current_status", side_effect=racing_read):
        result = transition_lifecycle(booking.pk, "payment_confirmed", idempotency_key="payment.confirmed:BK-1")

    assert result.outcome is TransitionOutcome.LOST_RACE
    assert not result.changed
    booking.refresh_from_db()
    assert booking.lifecycle is LifecycleStatus.SUPPLIER_CONFIRMED
    assert BookingLifecycleEvent.objects.count() == 0


def test_status_that_keeps_moving_raises_conflict(booking):
    with patch.object(services, "_current_status", return_value=LifecycleStatus.CREATED):
        Booking.objects.filter(pk=booking.pk).update(lifecycle_status=LifecycleStatus.PAYMENT_CONFIRMED.value)
        with pytest.raises(LifecycleConflictError):
            transition_lifecycle(booking.pk, "supplier_confirmed", idempotency_key="supplier:BK-1")

    assert BookingLifecycleEvent.objects.count() == 0


def test_invalid_target_and_missing_booking(booking):
    with pytest.raises(InvalidLifecycleStatus):
        transition_lifecycle(booking.pk, "refunded", idempotency_key="k")
    with pytest.raises(ValueError):
        transition_lifecycle(booking.pk, "completed", idempotency_key=" ")
    with pytest.raises(Booking.DoesNotExist):
        transition_lifecycle("6f1c1f4e-1c6a-4c53-9f33-7d36b8f6b0a1", "completed", idempotency_key="k")


def test_complete_booking_uses_structured_key(booking):
    result = complete_booking(booking.pk, actor_type="admin", actor_id="7")

    assert result.outcome is TransitionOutcome.APPLIED
    assert result.idempotency_key == f"v1|complete:{booking.pk}|completed"
    assert complete_booking(booking.pk).outcome is TransitionOutcome.ALREADY_REACHED


def test_resolve_booking_by_code_or_id(booking):
    assert resolve_booking(booking.booking_code) == booking
    assert resolve_booking(str(booking.pk)) == booking
    assert resolve_booking("BK-UNKNOWN") is None
    assert resolve_booking("") is None


def test_update_status_flags_rejects_unknown_fields(booking):
    update_status_flags(booking.pk, payment_status=Booking.PaymentStatus.CAPTURED)
    booking.refresh_from_db()
    assert booking.payment_status == "captured"

    with pytest.raises(ValueError):
        update_status_flags(booking.pk, lifecycle_status="completed")
