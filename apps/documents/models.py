"""Generated booking documents."""

from __future__ import annotations

from django.core.serializers.json import DjangoJSONEncoder  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class BookingDocument(models.Model):
    """One generated document per booking and document type."""

    class DocType(models.TextChoices):
        INVOICE = "invoice", _("Invoice")
        VOUCHER = "voucher", _("Voucher")

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.CASCADE,
        related_name="documents",
    )
    doc_type = models.CharField(max_length=32, choices=DocType.choices)
    trigger = models.CharField(max_length=64, blank=True)
    content = models.JSONField(default=dict, encoder=DjangoJSONEncoder)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Booking document")
        verbose_name_plural = _("Booking documents")
        ordering = ["booking", "doc_type"]
        constraints = [
            models.UniqueConstraint(fields=["booking", "doc_type"], name="booking_document_unique_type"),
        ]

    def __str__(self) -> str:
        return f"{self.doc_type} for {self.booking_id}"
