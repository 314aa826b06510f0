"""
Automation Events

The closed set of events the orchestrator acts on. Producers (payment
webhooks, supplier callbacks, admin buttons, cron replays) spell event
names loosely, so names are normalized and looked up in an explicit alias
table. Anything not in the table is rejected at the boundary.
"""

from enum import Enum

from apps.automation.exceptions import UnsupportedEventError


class AutomationEvent(str, Enum):
    PAYMENT_CONFIRMED = 'payment.confirmed'
    SUPPLIER_CONFIRMED = 'supplier.confirmed'
    DOCUMENTS_GENERATE = 'documents.generate'
    DOCUMENTS_GENERATED = 'documents.generated'

    @property
    def is_document_event(self) -> bool:
        return self in (AutomationEvent.DOCUMENTS_GENERATE, AutomationEvent.DOCUMENTS_GENERATED)

    @classmethod
    def parse(cls, value) -> 'AutomationEvent':
        if isinstance(value, cls):
            return value
        event = EVENT_ALIASES.get(normalize_event_name(value))
        if event is None:
            raise UnsupportedEventError(value)
        return event


def normalize_event_name(value) -> str:
    """'Booking_Payment_Confirmed ' -> 'booking.payment.confirmed'"""
    return str(value or '').strip().lower().replace('_', '.')


def _aliases(event: AutomationEvent) -> dict:
    # payment.confirmed, booking.payment.confirmed, booking.paymentconfirmed
    subject, _, verb = event.value.partition('.')
    names = (event.value, f'booking.{event.value}', f'booking.{subject}{verb}')
    return {name: event for name in names}


EVENT_ALIASES = {
    **_aliases(AutomationEvent.PAYMENT_CONFIRMED),
    **_aliases(AutomationEvent.SUPPLIER_CONFIRMED),
    **_aliases(AutomationEvent.DOCUMENTS_GENERATE),
    **_aliases(AutomationEvent.DOCUMENTS_GENERATED),
}
