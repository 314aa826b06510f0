"""
Shared Kernel

This module contains base classes and utilities shared across all domain contexts:
value objects, idempotency keys and small helpers used by every app.
"""
