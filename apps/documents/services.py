"""Document generation for fulfilled bookings."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog
from django.conf import settings  # type: ignore
from django.db import transaction  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.models import Booking

from .models import BookingDocument

logger = structlog.get_logger(__name__)


@dataclass
class DocumentGenerationSummary:
    generated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[dict[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {"generated": self.generated, "skipped": self.skipped, "failed": self.failed}


def build_document_content(booking: Booking, doc_type: str) -> dict:
    return {
        "doc_type": doc_type,
        "booking_id": str(booking.pk),
        "booking_code": booking.booking_code,
        "supplier_confirmation_reference": booking.supplier_confirmation_reference,
        "issued_at": timezone.now(),
    }


def generate_docs_for_booking(booking_id, trigger: str) -> DocumentGenerationSummary:
    """
    Create every configured document type the booking does not have yet.

    Each type is generated independently: one failing type is reported in
    `failed` and does not stop the others. Calling again only retries the
    missing types.
    """
    booking = Booking.objects.get(pk=booking_id)
    doc_types = getattr(settings, "AUTOMATION_DOCUMENT_TYPES", ("invoice", "voucher"))
    summary = DocumentGenerationSummary()

    for doc_type in doc_types:
        try:
            with transaction.atomic():
                _, created = BookingDocument.objects.get_or_create(
                    booking=booking,
                    doc_type=doc_type,
                    defaults={
                        "trigger": trigger,
                        "content": build_document_content(booking, doc_type),
                    },
                )
        except Exception as exc:
            logger.warning(
                "documents.generation.failed",
                booking_id=str(booking.pk),
                doc_type=doc_type,
                error=str(exc),
            )
            summary.failed.append({"type": doc_type, "error": str(exc)[:500]})
            continue

        (summary.generated if created else summary.skipped).append(doc_type)

    logger.info(
        "documents.generation.finished",
        booking_id=str(booking.pk),
        trigger=trigger,
        **summary.to_dict(),
    )
    return summary
