"""Automation error taxonomy.

`retryable` tells the outermost caller whether a failure belongs in the
retry queue. Errors that no replay can fix (unknown event, unknown
booking) are surfaced to the caller and never queued.
"""


class AutomationError(Exception):
    retryable = True


class UnsupportedEventError(AutomationError):
    retryable = False

    def __init__(self, event):
        self.event = event
        super().__init__(f"Unsupported automation event: {event!r}")


class MissingBookingReferenceError(AutomationError):
    retryable = False

    def __init__(self, event):
        self.event = event
        super().__init__(f"Event {event!r} carries no booking reference")


class BookingNotFoundError(AutomationError):
    retryable = False

    def __init__(self, reference):
        self.reference = reference
        super().__init__(f"Booking {reference!r} not found")


class InvalidIdempotencyKeyError(AutomationError):
    retryable = False

    def __init__(self, key, reason):
        self.key = key
        super().__init__(f"Invalid idempotency key {key!r}: {reason}")


class DocumentGenerationError(AutomationError):
    """Some document types failed; the generated ones are kept."""

    def __init__(self, booking_id, failed):
        self.booking_id = booking_id
        self.failed = list(failed)
        types = ", ".join(str(item.get("type")) for item in self.failed)
        super().__init__(f"Document generation failed for booking {booking_id}: {types}")


def is_retryable(exc: BaseException) -> bool:
    """Unknown exceptions (database errors, timeouts) are retryable."""
    return getattr(exc, "retryable", True)
