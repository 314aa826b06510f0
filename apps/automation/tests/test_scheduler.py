"""Tests for the retry scheduler: backoff, claims, replay and finalization."""

from __future__ import annotations

from datetime import timedelta

import pytest
from django.db import DatabaseError
from django.db.models import QuerySet
from django.utils import timezone

from apps.automation.application.handlers import AutomationEventHandler
from apps.automation.models import AutomationFailure, AutomationHeartbeat
from apps.automation.scheduler import RetryScheduler
from apps.automation.services import mark_failure_resolved
from apps.automation.tasks import retry_failed_events
from apps.bookings.domain.lifecycle import LifecycleStatus
from apps.bookings.models import Booking


class RecordingGenerator:
    def __init__(self, failed=None):
        self.calls = []
        self.failed = failed or []

    def __call__(self, booking_id, trigger):
        self.calls.append(trigger)
        return {"failed": self.failed}


def make_failure(booking_ref, event="documents.generate", attempts=0, age_minutes=60, **fields):
    failure = AutomationFailure.objects.create(
        booking_id=booking_ref,
        event=event,
        attempts=attempts,
        last_error="boom",
        meta={"retry_history": ["2026-01-01T00:00:00+00:00"] * attempts},
        **fields,
    )
    AutomationFailure.objects.filter(pk=failure.pk).update(updated_at=timezone.now() - timedelta(minutes=age_minutes))
    failure.refresh_from_db()
    return failure


@pytest.fixture
def booking(db):
    return Booking.objects.create(lifecycle_status=LifecycleStatus.SUPPLIER_CONFIRMED.value)


@pytest.fixture
def generator():
    return RecordingGenerator()


@pytest.fixture
def scheduler(generator):
    return RetryScheduler(handler=AutomationEventHandler(generator))


@pytest.mark.parametrize(
    "attempts, age_minutes, due",
    [
        (0, 4, False),
        (0, 5, True),
        (1, 14, False),
        (1, 15, True),
        (2, 44, False),
        (2, 46, True),
        (3, 600, False),
    ],
)
def test_backoff_grows_with_attempts(attempts, age_minutes, due):
    now = timezone.now()
    scheduler = RetryScheduler(handler=AutomationEventHandler(RecordingGenerator()), clock=lambda: now)
    failure = AutomationFailure(attempts=attempts, updated_at=now - timedelta(minutes=age_minutes))

    assert scheduler.is_due(failure, now) is due


def test_backoff_delay_repeats_last_step():
    scheduler = RetryScheduler(handler=AutomationEventHandler(RecordingGenerator()))

    assert scheduler.backoff_delay(0) == timedelta(minutes=5)
    assert scheduler.backoff_delay(1) == timedelta(minutes=15)
    assert scheduler.backoff_delay(2) == timedelta(minutes=45)
    assert scheduler.backoff_delay(7) == timedelta(minutes=45)


def test_documents_retry_is_resolved(booking, scheduler, generator):
    failure = make_failure(booking.booking_code, attempts=1, age_minutes=20)

    summary = scheduler.run()

    assert summary == {"processed": 1, "resolved": 1, "still_failed": 0, "unfinalized": 0}
    failure.refresh_from_db()
    assert failure.status == AutomationFailure.Status.RESOLVED
    assert failure.attempts == 2
    assert len(failure.retry_history) == 2
    assert failure.meta["last_retry_outcome"] == "resolved"
    assert failure.last_error == ""
    assert generator.calls == ["cron_retry"]

    booking.refresh_from_db()
    assert booking.lifecycle is LifecycleStatus.DOCUMENTS_GENERATED
    assert booking.lifecycle_events.get().idempotency_key == f"v1|automation-retry:{failure.pk}|documents_generated"

    heartbeat = AutomationHeartbeat.objects.get(name="cron_retry")
    assert heartbeat.last_summary == summary


def test_failed_replay_counts_attempt(booking):
    failing = RecordingGenerator(failed=[{"type": "invoice", "error": "renderer offline"}])
    scheduler = RetryScheduler(handler=AutomationEventHandler(failing))
    failure = make_failure(booking.booking_code, attempts=0, age_minutes=10)

    summary = scheduler.run()

    assert summary == {"processed": 1, "resolved": 0, "still_failed": 1, "unfinalized": 0}
    failure.refresh_from_db()
    assert failure.status == AutomationFailure.Status.FAILED
    assert failure.attempts == 1
    assert failure.retryable is True
    assert "invoice" in failure.last_error
    assert failure.meta["last_retry_outcome"] == "failed"

    # Just updated, so not due again in the same minute.
    assert scheduler.run()["processed"] == 0


def test_items_not_due_are_left_alone(booking, scheduler, generator):
    failure = make_failure(booking.booking_code, attempts=0, age_minutes=2)

    assert scheduler.run() == {"processed": 0, "resolved": 0, "still_failed": 0, "unfinalized": 0}
    failure.refresh_from_db()
    assert failure.status == AutomationFailure.Status.FAILED
    assert generator.calls == []


def test_attempt_cap_is_terminal(booking, scheduler, generator):
    make_failure(booking.booking_code, attempts=3, age_minutes=600)

    assert scheduler.select_due(timezone.now()) == []
    assert scheduler.run()["processed"] == 0
    assert generator.calls == []


def test_non_retryable_replay_error_leaves_queue(db, scheduler):
    failure = make_failure("BK-GONE", event="payment.confirmed", age_minutes=10)

    scheduler.run()

    failure.refresh_from_db()
    assert failure.status == AutomationFailure.Status.FAILED
    assert failure.retryable is False
    assert failure.attempts == 1
    assert scheduler.select_due(timezone.now() + timedelta(hours=2)) == []


def test_batch_size_limits_one_run(booking, scheduler, settings):
    settings.AUTOMATION_RETRY_BATCH_SIZE = 2
    scheduler = RetryScheduler(handler=scheduler.handler)
    for _ in range(3):
        make_failure(booking.booking_code, age_minutes=30)

    assert scheduler.run()["processed"] == 2


def test_only_one_claim_wins_for_same_snapshot(booking, scheduler):
    failure = make_failure(booking.booking_code, attempts=1, age_minutes=20)
    first_view = AutomationFailure.objects.get(pk=failure.pk)
    second_view = AutomationFailure.objects.get(pk=failure.pk)

    won = scheduler.claim(first_view)
    lost = scheduler.claim(second_view)

    assert won is not None
    assert won.attempts == 2
    assert lost is None
    failure.refresh_from_db()
    assert failure.status == AutomationFailure.Status.RETRYING
    assert failure.attempts == 2
    assert len(failure.retry_history) == 2


def test_finalize_does_not_override_operator_resolution(booking, scheduler):
    failure = make_failure(booking.booking_code, age_minutes=20)
    claim = scheduler.claim(failure)

    assert mark_failure_resolved(failure.pk, resolved_by="ops") is True
    assert scheduler.finalize(claim, AutomationFailure.Status.FAILED.value, "late error") is False

    failure.refresh_from_db()
    assert failure.status == AutomationFailure.Status.RESOLVED
    assert failure.meta["resolved_by"] == "ops"


def test_finalize_write_failure_is_reported_not_counted(booking, scheduler, monkeypatch):
    failure = make_failure(booking.booking_code, age_minutes=20)
    real_update = QuerySet.update

    def update(queryset, **fields):
        if queryset.model is AutomationFailure and fields.get("status") != AutomationFailure.Status.RETRYING:
            raise DatabaseError("connection lost")
        return real_update(queryset, **fields)

    monkeypatch.setattr(QuerySet, "update", update)
    summary = scheduler.run()
    monkeypatch.undo()

    assert summary == {"processed": 1, "resolved": 0, "still_failed": 0, "unfinalized": 1}
    assert AutomationHeartbeat.objects.get(name="cron_retry").last_summary == summary
    failure.refresh_from_db()
    assert failure.status == AutomationFailure.Status.RETRYING
    assert failure.attempts == 1

    assert scheduler.run()["processed"] == 0
    failure.refresh_from_db()
    assert failure.status == AutomationFailure.Status.RETRYING


def test_manual_retry_ignores_backoff_and_cap(booking, scheduler):
    failure = make_failure(booking.booking_code, attempts=3, age_minutes=1)

    outcome = scheduler.retry_item(failure.pk)

    assert outcome is not None
    assert outcome.status == "resolved"
    assert outcome.attempts == 4
    failure.refresh_from_db()
    assert failure.status == AutomationFailure.Status.RESOLVED


def test_manual_retry_skips_items_not_failed(booking, scheduler):
    failure = make_failure(booking.booking_code, status=AutomationFailure.Status.RESOLVED)

    assert scheduler.retry_item(failure.pk) is None


def test_periodic_task_runs_one_pass(booking):
    make_failure(booking.booking_code, age_minutes=10)

    assert retry_failed_events() == {"processed": 1, "resolved": 1, "still_failed": 0, "unfinalized": 0}
