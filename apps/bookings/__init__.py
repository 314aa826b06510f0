"""Bookings app package.

Holds the booking record the fulfillment core mutates and the lifecycle
engine: a forward-only state machine whose transitions are idempotent per
(booking, target state) and audited once per applied step.
"""
