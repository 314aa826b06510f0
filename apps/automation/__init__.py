"""Fulfillment automation app.

Routes booking events (payment confirmed, supplier confirmed, documents)
through the lifecycle, records failed runs in a retry queue and replays
them from a periodic scheduler with backoff and compare-and-swap claims.
"""
