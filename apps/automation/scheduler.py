"""
Retry Scheduler

Replays failed automation runs from the retry queue.

Strategy (safe under overlapping runs and manual retries):
1. Scan `failed` items below the attempt cap, oldest first
2. Keep the ones whose backoff elapsed, up to the batch size
3. Claim each item with a conditional update on the
   (status, attempts, updated_at) snapshot; losing the claim means
   somebody else is on it, so skip
4. Replay through the orchestrator with a per-item idempotency root
5. Finalize with a conditional update on (status=retrying, attempts);
   if that write fails the item stays `retrying` for an operator and the
   run counts it as `unfinalized`
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

import structlog
from django.conf import settings  # type: ignore
from django.db import DatabaseError  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.domain.lifecycle import ActorType

from .application.handlers import AutomationEventHandler, HandleAutomationEventCommand
from .domain.events import AutomationEvent
from .exceptions import UnsupportedEventError, is_retryable
from .models import AutomationFailure, AutomationHeartbeat

logger = structlog.get_logger(__name__)

HEARTBEAT_NAME = "cron_retry"
RETRY_TRIGGER = "cron_retry"

Status = AutomationFailure.Status


@dataclass
class Claim:
    failure: AutomationFailure
    attempts: int
    meta: dict


@dataclass
class ReplayOutcome:
    failure_id: int
    status: str
    attempts: int
    error: str | None = None
    finalized: bool = True


def is_document_event(event_name) -> bool:
    try:
        return AutomationEvent.parse(event_name).is_document_event
    except UnsupportedEventError:
        return False


class RetryScheduler:
    def __init__(self, handler: AutomationEventHandler | None = None, clock=None):
        self.handler = handler or AutomationEventHandler()
        self.clock = clock or timezone.now
        self.max_attempts = getattr(settings, "AUTOMATION_RETRY_MAX_ATTEMPTS", 3)
        self.scan_limit = getattr(settings, "AUTOMATION_RETRY_SCAN_LIMIT", 200)
        self.batch_size = getattr(settings, "AUTOMATION_RETRY_BATCH_SIZE", 10)
        self.backoff_minutes = tuple(getattr(settings, "AUTOMATION_RETRY_BACKOFF_MINUTES", (5, 15, 45)))

    # ===== Selection =====

    def backoff_delay(self, attempts: int) -> timedelta:
        """Delay since the last update before the next try; the last step repeats"""
        index = min(max(attempts, 0), len(self.backoff_minutes) - 1)
        return timedelta(minutes=self.backoff_minutes[index])

    def is_due(self, failure: AutomationFailure, now) -> bool:
        if failure.attempts >= self.max_attempts:
            return False
        if failure.updated_at is None:
            return True
        return now - failure.updated_at >= self.backoff_delay(failure.attempts)

    def select_due(self, now) -> list[AutomationFailure]:
        candidates = AutomationFailure.objects.filter(
            status=Status.FAILED,
            attempts__lt=self.max_attempts,
            retryable=True,
        ).order_by("updated_at")[: self.scan_limit]
        return [failure for failure in candidates if self.is_due(failure, now)][: self.batch_size]

    # ===== Claim / finalize =====

    def claim(self, failure: AutomationFailure) -> Claim | None:
        now = self.clock()
        attempts = failure.attempts + 1
        meta = dict(failure.meta or {})
        history = meta.get("retry_history")
        meta["retry_history"] = [*(history if isinstance(history, list) else []), now.isoformat()]
        meta["last_retry_attempt"] = attempts
        meta["last_retry_at"] = now.isoformat()

        claimed = AutomationFailure.objects.filter(
            pk=failure.pk,
            status=Status.FAILED,
            attempts=failure.attempts,
            updated_at=failure.updated_at,
        ).update(status=Status.RETRYING, attempts=attempts, updated_at=now, meta=meta)

        if not claimed:
            logger.info("automation.retry.skipped", failure_id=failure.pk, reason="claim_lost")
            return None
        return Claim(failure=failure, attempts=attempts, meta=meta)

    def finalize(self, claim: Claim, status: str, error: str | None, retryable: bool = True) -> bool:
        now = self.clock()
        meta = {
            **claim.meta,
            "last_retry_outcome": status,
            "last_retry_error": error,
            "last_retry_processed_at": now.isoformat(),
        }
        fields = {"status": status, "last_error": (error or "")[:500], "meta": meta, "updated_at": now}
        if not retryable:
            fields["retryable"] = False

        try:
            updated = AutomationFailure.objects.filter(
                pk=claim.failure.pk,
                status=Status.RETRYING,
                attempts=claim.attempts,
            ).update(**fields)
        except DatabaseError:
            logger.error("automation.retry.finalize_failed", failure_id=claim.failure.pk, status=status, exc_info=True)
            return False

        if not updated:
            logger.warning("automation.retry.finalize_skipped", failure_id=claim.failure.pk, status=status)
        return bool(updated)

    # ===== Replay =====

    def replay(self, failure: AutomationFailure) -> None:
        payload = dict(failure.payload or {})
        if is_document_event(failure.event):
            payload["trigger"] = RETRY_TRIGGER

        self.handler.handle(
            HandleAutomationEventCommand(
                event=failure.event,
                booking_id=failure.booking_id or None,
                payload=payload or dict(failure.meta or {}),
                actor_type=ActorType.SYSTEM,
                idempotency_key=f"automation-retry:{failure.pk}",
            )
        )

    def process(self, claim: Claim) -> ReplayOutcome:
        failure = claim.failure
        error = None
        retryable = True
        try:
            self.replay(failure)
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__
            retryable = is_retryable(exc)
        status = Status.FAILED.value if error else Status.RESOLVED.value

        finalized = self.finalize(claim, status, error, retryable=retryable)
        logger.info(
            f"automation.retry.{status}",
            failure_id=failure.pk,
            automation_event=failure.event,
            booking_id=failure.booking_id,
            attempt=claim.attempts,
            error=error,
            retryable=retryable,
        )
        return ReplayOutcome(failure.pk, status, claim.attempts, error, finalized)

    # ===== Entry points =====

    def run(self) -> dict[str, int]:
        summary = {"processed": 0, "resolved": 0, "still_failed": 0, "unfinalized": 0}

        for failure in self.select_due(self.clock()):
            claim = self.claim(failure)
            if claim is None:
                continue
            outcome = self.process(claim)
            summary["processed"] += 1
            if not outcome.finalized:
                # Left `retrying`; only an operator moves it on.
                summary["unfinalized"] += 1
            elif outcome.status == Status.RESOLVED:
                summary["resolved"] += 1
            else:
                summary["still_failed"] += 1

        self.write_heartbeat(summary)
        logger.info("automation.retry.run_finished", **summary)
        return summary

    def retry_item(self, failure_id) -> ReplayOutcome | None:
        """
        Operator replay of one item, ignoring backoff and the attempt cap.

        Returns None when the item is not `failed` or another process
        claimed it first.
        """
        failure = AutomationFailure.objects.get(pk=failure_id)
        if failure.status != Status.FAILED:
            return None
        claim = self.claim(failure)
        if claim is None:
            return None
        return self.process(claim)

    def write_heartbeat(self, summary: dict) -> None:
        try:
            AutomationHeartbeat.objects.update_or_create(
                name=HEARTBEAT_NAME,
                defaults={"last_run_at": self.clock(), "last_summary": summary},
            )
        except DatabaseError:
            logger.error("automation.heartbeat.write_failed", name=HEARTBEAT_NAME, exc_info=True)
