"""Suppliers app package.

Wraps non-idempotent supplier API calls (create flight order, book hotel)
in idempotency locks so duplicate webhooks, admin retries and cron replays
collapse into a single real execution per booking, supplier, action and
provider reference.
"""
