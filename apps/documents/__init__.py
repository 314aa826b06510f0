"""Booking documents (invoice, voucher) generated during fulfillment."""
