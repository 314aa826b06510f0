"""
Automation Event Handlers

The event orchestrator. Takes one loosely specified event, resolves the
booking and drives the lifecycle forward, chaining into the next step when
the booking is ready for it.

Commands:
- HandleAutomationEventCommand: act on one automation event

The handler never records failures. Errors propagate to the outermost
caller (dispatch entry point, retry scheduler), which decides whether the
failure goes to the retry queue.

Idempotency:
Every event run has one idempotency root (caller supplied, or derived from
event and booking). Chained steps reuse that root and each lifecycle step
derives its own key from it, so replaying the outer event replays the
exact same transition keys.
"""

from dataclasses import dataclass, field
from typing import Any, Callable

import structlog
from django.conf import settings  # type: ignore
from django.utils.module_loading import import_string  # type: ignore

from apps.automation.domain.events import AutomationEvent
from apps.automation.exceptions import (
    BookingNotFoundError,
    DocumentGenerationError,
    InvalidIdempotencyKeyError,
    MissingBookingReferenceError,
)
from apps.bookings.domain.lifecycle import ActorType, LifecycleStatus, is_at_or_beyond
from apps.bookings.models import Booking
from apps.bookings.services import resolve_booking, transition_lifecycle, update_status_flags
from shared.domain.value_objects import IdempotencyKey, clean_token

logger = structlog.get_logger(__name__)

DEFAULT_DOCUMENT_GENERATOR = 'apps.documents.services.generate_docs_for_booking'


# ===== Commands =====

@dataclass
class HandleAutomationEventCommand:
    """
    Command to act on one automation event

    `booking_id` may be a booking code or id. When empty the reference is
    looked up in `payload` (and in a nested `payload.payload`).
    """
    event: Any
    booking_id: Any = None
    payload: dict = field(default_factory=dict)
    actor_type: Any = ActorType.SYSTEM
    actor_id: Any = None
    idempotency_key: Any = None


def extract_booking_reference(booking_id, payload) -> str:
    direct = clean_token(booking_id)
    if direct:
        return direct

    payload = payload if isinstance(payload, dict) else {}
    nested = payload.get('payload') if isinstance(payload.get('payload'), dict) else {}
    for source in (payload, nested):
        for key in ('booking_id', 'bookingId'):
            reference = clean_token(source.get(key))
            if reference:
                return reference
    return ''


def supplier_looks_confirmed(booking: Booking) -> bool:
    """The supplier step already happened, even if the event never arrived"""
    if clean_token(booking.supplier_confirmation_reference):
        return True
    if 'confirm' in clean_token(booking.supplier_status).lower():
        return True
    return is_at_or_beyond(booking.lifecycle, LifecycleStatus.SUPPLIER_CONFIRMED)


def failed_documents(summary) -> list:
    if isinstance(summary, dict):
        return list(summary.get('failed') or [])
    return list(getattr(summary, 'failed', None) or [])


# ===== Command Handlers =====

class AutomationEventHandler:
    """
    Handler for HandleAutomationEventCommand

    State machine:
    - payment.confirmed: capture flag, advance to payment_confirmed unless the
      supplier step is already behind us, generate documents, then chain into
      supplier.confirmed when the supplier step looks done
    - supplier.confirmed: confirm flag, advance to supplier_confirmed, chain
      into documents.generate
    - documents.generate / documents.generated: generate documents, advance
      to documents_generated unless the booking is completed
    """

    def __init__(self, document_generator: Callable | None = None):
        self._document_generator = document_generator

    @property
    def document_generator(self) -> Callable:
        if self._document_generator is None:
            self._document_generator = import_string(
                getattr(settings, 'AUTOMATION_DOCUMENT_GENERATOR', DEFAULT_DOCUMENT_GENERATOR)
            )
        return self._document_generator

    def handle(self, command: HandleAutomationEventCommand) -> None:
        """
        Raises:
            UnsupportedEventError: event name not in the alias table
            MissingBookingReferenceError: no booking reference anywhere
            BookingNotFoundError: reference matches no booking
            InvalidIdempotencyKeyError: caller key is a malformed structured key
            DocumentGenerationError: at least one document type failed
            LifecycleConflictError, DatabaseError: store problems, retryable
        """
        event = AutomationEvent.parse(command.event)

        reference = extract_booking_reference(command.booking_id, command.payload)
        if not reference:
            raise MissingBookingReferenceError(event.value)

        booking = resolve_booking(reference)
        if booking is None:
            raise BookingNotFoundError(reference)

        root = self._idempotency_root(command.idempotency_key, event, booking)
        actor_type = ActorType.parse(command.actor_type)
        payload = command.payload if isinstance(command.payload, dict) else {}

        logger.info(
            "automation.event.handling",
            automation_event=event.value,
            booking_id=str(booking.pk),
            lifecycle_status=booking.lifecycle_status,
            idempotency_root=str(root),
        )

        if event is AutomationEvent.PAYMENT_CONFIRMED:
            self._payment_confirmed(booking, root, actor_type, command.actor_id, payload)
        elif event is AutomationEvent.SUPPLIER_CONFIRMED:
            self._supplier_confirmed(booking, root, actor_type, command.actor_id, payload)
        else:
            self._documents(event, booking, root, actor_type, command.actor_id, payload)

    def _idempotency_root(self, idempotency_key, event, booking) -> IdempotencyKey:
        if not clean_token(idempotency_key):
            return IdempotencyKey(f'automation:{event.value}:{booking.pk}')
        try:
            return IdempotencyKey.from_value(idempotency_key)
        except ValueError as exc:
            raise InvalidIdempotencyKeyError(idempotency_key, exc) from exc

    def _advance(self, booking, to_status, root, actor_type, actor_id, note):
        return transition_lifecycle(
            booking.pk,
            to_status,
            idempotency_key=str(root.child(to_status.value)),
            actor_type=actor_type,
            actor_id=actor_id,
            note=note,
        )

    def _generate_documents(self, booking, trigger):
        failed = failed_documents(self.document_generator(booking.pk, trigger))
        if failed:
            raise DocumentGenerationError(str(booking.pk), failed)

    def _chain(self, event, booking, root, actor_type, actor_id, payload):
        self.handle(
            HandleAutomationEventCommand(
                event=event,
                booking_id=str(booking.pk),
                payload=payload,
                actor_type=actor_type,
                actor_id=actor_id,
                idempotency_key=str(root),
            )
        )

    def _payment_confirmed(self, booking, root, actor_type, actor_id, payload):
        update_status_flags(booking.pk, payment_status=Booking.PaymentStatus.CAPTURED)

        if not is_at_or_beyond(booking.lifecycle, LifecycleStatus.SUPPLIER_CONFIRMED):
            self._advance(
                booking,
                LifecycleStatus.PAYMENT_CONFIRMED,
                root,
                actor_type,
                actor_id,
                "Automation handler: payment confirmed",
            )

        self._generate_documents(booking, AutomationEvent.PAYMENT_CONFIRMED.value)

        if is_at_or_beyond(booking.lifecycle, LifecycleStatus.DOCUMENTS_GENERATED):
            return

        if supplier_looks_confirmed(booking):
            self._chain(AutomationEvent.SUPPLIER_CONFIRMED, booking, root, actor_type, actor_id, payload)

    def _supplier_confirmed(self, booking, root, actor_type, actor_id, payload):
        if is_at_or_beyond(booking.lifecycle, LifecycleStatus.DOCUMENTS_GENERATED):
            logger.info("automation.event.noop", automation_event="supplier.confirmed", booking_id=str(booking.pk))
            return

        update_status_flags(booking.pk, supplier_status=Booking.SupplierStatus.CONFIRMED)
        self._advance(
            booking,
            LifecycleStatus.SUPPLIER_CONFIRMED,
            root,
            actor_type,
            actor_id,
            "Automation handler: supplier confirmed",
        )

        chained_payload = dict(payload)
        if not (clean_token(payload.get('trigger')) or clean_token(payload.get('retry_trigger'))):
            chained_payload['trigger'] = AutomationEvent.SUPPLIER_CONFIRMED.value
        self._chain(AutomationEvent.DOCUMENTS_GENERATE, booking, root, actor_type, actor_id, chained_payload)

    def _documents(self, event, booking, root, actor_type, actor_id, payload):
        trigger = clean_token(payload.get('trigger')) or clean_token(payload.get('retry_trigger')) or event.value
        self._generate_documents(booking, trigger)

        if booking.lifecycle is LifecycleStatus.COMPLETED:
            return

        self._advance(
            booking,
            LifecycleStatus.DOCUMENTS_GENERATED,
            root,
            actor_type,
            actor_id,
            "Automation handler: documents generated",
        )
