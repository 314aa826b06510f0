"""Automation entry points and retry queue writes.

`dispatch_automation_event` is the outermost caller of the orchestrator
for webhooks, admin actions and supplier bookings. It is the only place
(besides the retry scheduler) that turns an exception into retry queue
state.
"""

from __future__ import annotations

import structlog
from django.db import DatabaseError  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.domain.lifecycle import ActorType
from shared.domain.value_objects import clean_token

from .application.handlers import AutomationEventHandler, HandleAutomationEventCommand
from .domain.events import AutomationEvent
from .exceptions import UnsupportedEventError, is_retryable
from .models import AutomationFailure

logger = structlog.get_logger(__name__)

UNKNOWN_EVENT = "automation.unknown"
MAX_ERROR_LENGTH = 500


def canonical_event_name(event) -> str:
    try:
        return AutomationEvent.parse(event).value
    except UnsupportedEventError:
        return clean_token(event) or UNKNOWN_EVENT


def record_automation_failure(event, booking_id, error, *, payload=None, meta=None) -> AutomationFailure:
    """Put a failed run in the retry queue."""

    failure = AutomationFailure.objects.create(
        booking_id=clean_token(booking_id)[:64],
        event=canonical_event_name(event)[:64],
        status=AutomationFailure.Status.FAILED,
        attempts=0,
        last_error=str(error)[:MAX_ERROR_LENGTH],
        payload=payload if isinstance(payload, dict) else {},
        meta={"retry_history": [], **(meta or {})},
    )
    logger.warning(
        "automation.failure.recorded",
        failure_id=failure.pk,
        automation_event=failure.event,
        booking_id=failure.booking_id,
        error=failure.last_error,
    )
    return failure


def dispatch_automation_event(
    event,
    *,
    booking_id=None,
    payload=None,
    actor_type=ActorType.SYSTEM,
    actor_id=None,
    idempotency_key=None,
    source: str = "dispatch",
    handler: AutomationEventHandler | None = None,
) -> None:
    """
    Run the orchestrator for one event.

    Retryable errors are recorded in the retry queue before they are
    re-raised; the queued item id is attached to the exception as
    `failure_id`. Non-retryable errors are logged and re-raised only.
    """
    handler = handler or AutomationEventHandler()
    payload = payload if isinstance(payload, dict) else {}
    command = HandleAutomationEventCommand(
        event=event,
        booking_id=booking_id,
        payload=payload,
        actor_type=actor_type,
        actor_id=actor_id,
        idempotency_key=idempotency_key,
    )

    try:
        handler.handle(command)
    except Exception as exc:
        if not is_retryable(exc):
            logger.warning(
                "automation.event.rejected",
                automation_event=clean_token(event),
                booking_id=clean_token(booking_id),
                source=source,
                error=str(exc),
            )
            raise

        logger.error(
            "automation.event.failed",
            automation_event=clean_token(event),
            booking_id=clean_token(booking_id),
            source=source,
            error=str(exc),
            exc_info=True,
        )
        try:
            failure = record_automation_failure(
                event,
                booking_id or payload.get("booking_id") or payload.get("bookingId"),
                exc,
                payload=payload,
                meta={
                    "source": source,
                    "actor_type": clean_token(getattr(actor_type, "value", actor_type)),
                    "actor_id": clean_token(actor_id),
                    "idempotency_key": clean_token(idempotency_key),
                    "error_type": exc.__class__.__name__,
                },
            )
        except DatabaseError:
            logger.error("automation.failure.record_failed", automation_event=clean_token(event), exc_info=True)
        else:
            exc.failure_id = failure.pk
        raise

    logger.info(
        "automation.event.handled",
        automation_event=clean_token(event),
        booking_id=clean_token(booking_id),
        source=source,
    )


def mark_failure_resolved(failure_id, resolved_by: str, note: str = "") -> bool:
    """
    Operator close-out of a queued item.

    Returns False when the item is already resolved or changed while we
    were looking at it.
    """
    failure = AutomationFailure.objects.get(pk=failure_id)
    if failure.status == AutomationFailure.Status.RESOLVED:
        return False

    now = timezone.now()
    meta = {
        **(failure.meta or {}),
        "resolved_by": clean_token(resolved_by),
        "resolved_at": now.isoformat(),
        "resolution_note": note,
    }
    updated = AutomationFailure.objects.filter(
        pk=failure.pk,
        status=failure.status,
        updated_at=failure.updated_at,
    ).update(status=AutomationFailure.Status.RESOLVED, meta=meta, updated_at=now)

    if updated:
        logger.info("automation.failure.marked_resolved", failure_id=failure.pk, resolved_by=resolved_by)
    return bool(updated)
