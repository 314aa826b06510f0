"""Supplier action lock model."""

from __future__ import annotations

from django.core.serializers.json import DjangoJSONEncoder  # type: ignore
from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class SupplierActionLockQuerySet(models.QuerySet):
    def active(self):
        return self.exclude(status=SupplierActionLock.Status.RELEASED)

    def stale(self, older_than):
        return self.filter(status=SupplierActionLock.Status.PENDING, updated_at__lt=older_than)


class SupplierActionLock(models.Model):
    """Idempotency lock for one external supplier action.

    The row is inserted before the supplier is called. The unique key is the
    distributed mutex: exactly one writer wins the insert, everyone else
    reads the winner's outcome.
    """

    class Status(models.TextChoices):
        PENDING = "pending", _("In flight")
        SUCCESS = "success", _("Succeeded")
        FAILED = "failed", _("Failed")
        RELEASED = "released", _("Released by operator")

    booking_id = models.CharField(max_length=64, db_index=True)
    supplier = models.CharField(max_length=64)
    action = models.CharField(max_length=64)
    provider_ref = models.CharField(max_length=255)
    request_id = models.CharField(max_length=128, blank=True)
    idempotency_key = models.CharField(max_length=512)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    result = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    error = models.TextField(blank=True)
    meta = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    released_at = models.DateTimeField(null=True, blank=True)
    released_by = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(default=timezone.now)

    objects = SupplierActionLockQuerySet.as_manager()

    class Meta:
        verbose_name = _("Supplier action lock")
        verbose_name_plural = _("Supplier action locks")
        ordering = ["-created_at"]
        constraints = [
            # Released rows stay for audit but no longer hold the key.
            models.UniqueConstraint(
                fields=["idempotency_key"],
                condition=~models.Q(status="released"),
                name="supplier_lock_active_key_unique",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "updated_at"]),
            models.Index(fields=["supplier", "action"]),
        ]

    def __str__(self) -> str:
        return f"{self.idempotency_key} ({self.status})"
