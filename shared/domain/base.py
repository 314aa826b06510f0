"""
Base Domain Classes

Foundational building blocks shared by the fulfillment domains:
- ValueObject: Immutable objects compared by value
- OutcomeResult: Base for explicit "what happened" results returned instead
  of using exceptions for expected no-ops
"""

from abc import ABC
from dataclasses import dataclass


@dataclass(frozen=True)
class ValueObject(ABC):
    """
    Base class for value objects

    Value objects are immutable and have no identity.
    Two value objects are equal if all their attributes are equal.
    """
    pass


@dataclass(frozen=True)
class OutcomeResult(ValueObject):
    """
    Base class for operation results

    Operations that can legitimately do nothing (already done, lost a race)
    return a result describing the outcome. Exceptions are reserved for
    genuine failures.
    """

    @property
    def changed(self) -> bool:
        """True when the operation actually mutated state"""
        raise NotImplementedError
