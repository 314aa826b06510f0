"""
Common Value Objects

Value objects used across multiple domains:
- IdempotencyKey: Versioned, structured key derived from one root per logical operation
"""

from dataclasses import dataclass

from shared.domain.base import ValueObject

KEY_VERSION = 'v1'
SEPARATOR = '|'


def clean_token(value) -> str:
    """Trim a loosely typed identifier into a string token"""
    if value is None:
        return ''
    return str(value).strip()


@dataclass(frozen=True)
class IdempotencyKey(ValueObject):
    """
    Idempotency key value object

    A key is a root plus an ordered list of steps. Chained operations keep
    the same root and derive their own key with `child()`, so a retried
    outer operation always produces the same inner keys.

    Examples:
        - IdempotencyKey('automation-retry:42').child('payment_confirmed')
          -> 'v1|automation-retry:42|payment_confirmed'
    """
    root: str
    steps: tuple = ()

    def __post_init__(self):
        if not clean_token(self.root):
            raise ValueError("Idempotency root cannot be empty")
        if SEPARATOR in self.root:
            raise ValueError(f"Idempotency root cannot contain {SEPARATOR!r}")
        for step in self.steps:
            if not clean_token(step) or SEPARATOR in step:
                raise ValueError(f"Invalid idempotency step: {step!r}")

    @classmethod
    def from_value(cls, value) -> 'IdempotencyKey':
        """
        Build a key from a caller supplied string

        Strings already produced by `str(IdempotencyKey)` are parsed back so
        a key passed through a queue or a payload keeps its structure.
        """
        raw = clean_token(value)
        prefix = f'{KEY_VERSION}{SEPARATOR}'
        if raw.startswith(prefix):
            parts = raw[len(prefix):].split(SEPARATOR)
            return cls(root=parts[0], steps=tuple(parts[1:]))
        return cls(root=raw.replace(SEPARATOR, "/"))

    def child(self, step: str) -> 'IdempotencyKey':
        """Derive the key of a chained step"""
        return IdempotencyKey(root=self.root, steps=self.steps + (clean_token(step),))

    def __str__(self):
        return SEPARATOR.join((KEY_VERSION, self.root) + tuple(self.steps))
