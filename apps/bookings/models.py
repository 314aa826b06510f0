"""Booking lifecycle models for the fulfillment core."""

from __future__ import annotations

import secrets
import uuid

from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from .domain.lifecycle import ActorType, LifecycleStatus

LIFECYCLE_CHOICES = [(status.value, status.label) for status in LifecycleStatus]
ACTOR_CHOICES = [(actor.value, actor.value.capitalize()) for actor in ActorType]


class Booking(models.Model):
    """Travel booking driven through the fulfillment lifecycle.

    Catalog, pricing and customer data live elsewhere; this record only holds
    the fields the automation core reads and mutates.
    """

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", _("Awaiting payment")
        CAPTURED = "captured", _("Captured")

    class SupplierStatus(models.TextChoices):
        PENDING = "pending", _("Awaiting supplier")
        CONFIRMED = "confirmed", _("Confirmed by supplier")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    booking_code = models.CharField(max_length=24, unique=True, editable=False)
    lifecycle_status = models.CharField(
        max_length=32,
        choices=LIFECYCLE_CHOICES,
        default=LifecycleStatus.CREATED.value,
        help_text=_("Position in the fulfillment sequence. Never moves backwards."),
    )
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    supplier_status = models.CharField(
        max_length=20,
        choices=SupplierStatus.choices,
        default=SupplierStatus.PENDING,
    )
    supplier_confirmation_reference = models.CharField(
        max_length=128,
        blank=True,
        help_text=_("Supplier PNR / order id. Present once the supplier step happened."),
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = _("Booking")
        verbose_name_plural = _("Bookings")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["lifecycle_status"]),
        ]

    def __str__(self) -> str:
        return f"Booking #{self.booking_code} ({self.lifecycle_status})"

    def save(self, *args, **kwargs):  # type: ignore
        if self._state.adding and not self.booking_code:
            self.booking_code = self.generate_booking_code()
        self.updated_at = timezone.now()
        super().save(*args, **kwargs)

    @staticmethod
    def generate_booking_code() -> str:
        return f"BK-{secrets.token_hex(4).upper()}"

    @property
    def lifecycle(self) -> LifecycleStatus:
        return LifecycleStatus.parse(self.lifecycle_status)


class BookingLifecycleEvent(models.Model):
    """Audit row written once per applied lifecycle transition."""

    booking = models.ForeignKey(
        Booking,
        on_delete=models.CASCADE,
        related_name="lifecycle_events",
    )
    from_status = models.CharField(max_length=32, choices=LIFECYCLE_CHOICES)
    to_status = models.CharField(max_length=32, choices=LIFECYCLE_CHOICES)
    actor_type = models.CharField(max_length=16, choices=ACTOR_CHOICES)
    actor_id = models.CharField(max_length=64, blank=True)
    idempotency_key = models.CharField(max_length=255)
    note = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Lifecycle event")
        verbose_name_plural = _("Lifecycle events")
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["booking", "created_at"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["booking", "idempotency_key"],
                name="lifecycle_event_booking_key_unique",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.booking_id}: {self.from_status} -> {self.to_status}"
