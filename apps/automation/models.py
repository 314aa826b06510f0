"""Retry queue and scheduler bookkeeping models."""

from __future__ import annotations

from django.core.serializers.json import DjangoJSONEncoder  # type: ignore
from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class AutomationFailure(models.Model):
    """A failed automation run waiting for a retry or an operator.

    Status changes only through conditional updates on the fields read
    beforehand, so the scheduler, manual retries and operators never
    both act on the same item.
    """

    class Status(models.TextChoices):
        FAILED = "failed", _("Failed")
        RETRYING = "retrying", _("Retrying")
        RESOLVED = "resolved", _("Resolved")

    booking_id = models.CharField(max_length=64, db_index=True)
    event = models.CharField(max_length=64)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.FAILED)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)
    payload = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    meta = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    retryable = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = _("Automation failure")
        verbose_name_plural = _("Automation failures")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "attempts", "updated_at"]),
            models.Index(fields=["event"]),
        ]

    def __str__(self) -> str:
        return f"#{self.pk} {self.event} for {self.booking_id} ({self.status}, {self.attempts} attempts)"

    @property
    def retry_history(self) -> list:
        return list((self.meta or {}).get("retry_history", []))


class AutomationHeartbeat(models.Model):
    """Last run of a periodic automation job."""

    name = models.CharField(max_length=64, unique=True)
    last_run_at = models.DateTimeField()
    last_summary = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)

    class Meta:
        verbose_name = _("Automation heartbeat")
        verbose_name_plural = _("Automation heartbeats")

    def __str__(self) -> str:
        return f"{self.name} @ {self.last_run_at:%Y-%m-%d %H:%M}"
