"""Supplier integration errors."""


class SupplierError(Exception):
    """Base class for supplier integration errors."""


class SupplierGatewayError(SupplierError):
    """The supplier API call failed or returned an unusable answer."""


class SupplierTimeoutError(SupplierGatewayError):
    """The supplier API did not answer in time."""


class SupplierLockError(SupplierError):
    """An operator action on a supplier lock is not allowed."""


class SupplierLockNotFound(SupplierLockError):
    """No active lock exists for the idempotency key."""
