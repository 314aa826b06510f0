"""
Booking Lifecycle Rules

The fulfillment lifecycle is a fixed, forward-only sequence:

    created -> payment_confirmed -> supplier_confirmed
            -> documents_generated -> completed

A request to move a booking to a state at or behind its current state is a
successful no-op. Redundant deliveries (webhook retries, cron replays, admin
clicks) are expected, so stale requests are absorbed instead of rejected.
"""

from dataclasses import dataclass
from enum import Enum

from shared.domain.base import OutcomeResult


class InvalidLifecycleStatus(ValueError):
    """Raised when a status is not part of the fulfillment sequence."""


class LifecycleStatus(str, Enum):
    """Ordered fulfillment states; declaration order is the lifecycle order"""
    CREATED = 'created'
    PAYMENT_CONFIRMED = 'payment_confirmed'
    SUPPLIER_CONFIRMED = 'supplier_confirmed'
    DOCUMENTS_GENERATED = 'documents_generated'
    COMPLETED = 'completed'

    @property
    def rank(self) -> int:
        return list(LifecycleStatus).index(self)

    @property
    def label(self) -> str:
        return self.value.replace('_', ' ').capitalize()

    @classmethod
    def parse(cls, value) -> 'LifecycleStatus':
        if isinstance(value, cls):
            return value
        normalized = str(value or '').strip().lower()
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidLifecycleStatus(f"Unknown lifecycle status: {value!r}") from None


class ActorType(str, Enum):
    """Who asked for a transition"""
    SYSTEM = 'system'
    WEBHOOK = 'webhook'
    ADMIN = 'admin'

    @classmethod
    def parse(cls, value) -> 'ActorType':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or '').strip().lower())
        except ValueError:
            raise ValueError(f"Unknown actor type: {value!r}") from None


def is_at_or_beyond(current, target) -> bool:
    """Check if `current` already reached `target` in the lifecycle order"""
    return LifecycleStatus.parse(current).rank >= LifecycleStatus.parse(target).rank


class TransitionOutcome(Enum):
    APPLIED = 'applied'                  # status advanced, audit row written
    ALREADY_REACHED = 'already_reached'  # current state at or beyond target
    DUPLICATE = 'duplicate'              # idempotency key already recorded
    LOST_RACE = 'lost_race'              # a concurrent writer advanced first


@dataclass(frozen=True)
class TransitionResult(OutcomeResult):
    """
    Result of a lifecycle transition request

    Only APPLIED means something changed. Every other outcome is an
    expected no-op and must not be treated as a failure.
    """
    booking_id: object
    from_status: LifecycleStatus
    to_status: LifecycleStatus
    outcome: TransitionOutcome
    idempotency_key: str

    @property
    def changed(self) -> bool:
        return self.outcome is TransitionOutcome.APPLIED

    def __str__(self):
        return (
            f"{self.booking_id}: {self.from_status.value} -> {self.to_status.value} "
            f"({self.outcome.value})"
        )
