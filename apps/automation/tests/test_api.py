"""Integration tests for the automation API endpoints."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.test import override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.automation.models import AutomationFailure
from apps.bookings.domain.lifecycle import LifecycleStatus
from apps.bookings.models import Booking, BookingLifecycleEvent
from apps.suppliers.guard import guard
from apps.suppliers.models import SupplierActionLock

SECRET = "test-internal-secret"


class AutomationEventAPITests(APITestCase):
    """Covers the event entry point for admins and secret-holding webhooks."""

    def setUp(self) -> None:
        user_model = get_user_model()
        self.admin = user_model.objects.create_user(username="ops", password="OpsPass123", is_staff=True)
        self.booking = Booking.objects.create()
        self.url = reverse("automation-event")

    def test_admin_confirms_payment(self) -> None:
        self.client.force_authenticate(self.admin)

        response = self.client.post(
            self.url,
            {"event": "booking.payment_confirmed", "booking_id": self.booking.booking_code},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.lifecycle, LifecycleStatus.PAYMENT_CONFIRMED)
        audit = BookingLifecycleEvent.objects.get()
        self.assertEqual(audit.actor_type, "admin")
        self.assertEqual(audit.actor_id, str(self.admin.pk))

    def test_webhook_with_internal_secret(self) -> None:
        response = self.client.post(
            self.url,
            {"event": "payment.confirmed", "payload": {"booking_id": str(self.booking.pk)}},
            format="json",
            HTTP_X_INTERNAL_SECRET=SECRET,
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(BookingLifecycleEvent.objects.get().actor_type, "webhook")

    def test_anonymous_caller_is_rejected(self) -> None:
        response = self.client.post(
            self.url,
            {"event": "payment.confirmed", "booking_id": self.booking.booking_code},
            format="json",
            HTTP_X_INTERNAL_SECRET="wrong",
        )

        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))
        self.assertEqual(BookingLifecycleEvent.objects.count(), 0)

    def test_unknown_booking_returns_404(self) -> None:
        self.client.force_authenticate(self.admin)

        response = self.client.post(self.url, {"event": "payment.confirmed", "booking_id": "BK-NOPE"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(AutomationFailure.objects.count(), 0)

    def test_unsupported_event_and_missing_reference_return_400(self) -> None:
        self.client.force_authenticate(self.admin)

        unsupported = self.client.post(
            self.url, {"event": "payment.refunded", "booking_id": self.booking.booking_code}, format="json"
        )
        missing = self.client.post(self.url, {"event": "payment.confirmed"}, format="json")

        self.assertEqual(unsupported.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(missing.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(AutomationFailure.objects.count(), 0)

    def test_malformed_idempotency_key_returns_400(self) -> None:
        self.client.force_authenticate(self.admin)

        for key in ("v1|", "v1|evt-1|"):
            response = self.client.post(
                self.url,
                {"event": "payment.confirmed", "booking_id": self.booking.booking_code, "idempotency_key": key},
                format="json",
            )
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
            self.assertIn("idempotency_key", response.data)

        self.assertEqual(AutomationFailure.objects.count(), 0)
        self.assertEqual(BookingLifecycleEvent.objects.count(), 0)

    def test_retryable_failure_is_queued(self) -> None:
        self.client.force_authenticate(self.admin)

        with patch("apps.documents.services.build_document_content", side_effect=RuntimeError("renderer offline")):
            response = self.client.post(
                self.url, {"event": "payment.confirmed", "booking_id": self.booking.booking_code}, format="json"
            )

        self.assertEqual(response.status_code, status.HTTP_202_ACCEPTED, response.data)
        failure = AutomationFailure.objects.get()
        self.assertEqual(response.data["failure_id"], failure.pk)
        self.assertEqual(failure.meta["source"], "api")
        # The lifecycle step before the failing documents step stays applied.
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.lifecycle, LifecycleStatus.PAYMENT_CONFIRMED)


class InternalRetryAPITests(APITestCase):
    def setUp(self) -> None:
        self.url = reverse("automation-internal-retry")

    def test_requires_secret(self) -> None:
        self.assertEqual(self.client.post(self.url).status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(
            self.client.get(self.url, HTTP_X_INTERNAL_SECRET="nope").status_code,
            status.HTTP_403_FORBIDDEN,
        )

    @override_settings(AUTOMATION_INTERNAL_SECRET="")
    def test_disabled_without_configured_secret(self) -> None:
        response = self.client.post(self.url, HTTP_X_INTERNAL_SECRET="")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_runs_scheduler(self) -> None:
        booking = Booking.objects.create(lifecycle_status=LifecycleStatus.SUPPLIER_CONFIRMED.value)
        failure = AutomationFailure.objects.create(booking_id=booking.booking_code, event="documents.generate")
        AutomationFailure.objects.filter(pk=failure.pk).update(updated_at=timezone.now() - timedelta(minutes=10))

        response = self.client.get(self.url, HTTP_X_INTERNAL_SECRET=SECRET)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {"processed": 1, "resolved": 1, "still_failed": 0, "unfinalized": 0})
        failure.refresh_from_db()
        self.assertEqual(failure.status, AutomationFailure.Status.RESOLVED)


class AutomationOperatorAPITests(APITestCase):
    """Failure queue and supplier lock views for operators."""

    def setUp(self) -> None:
        user_model = get_user_model()
        self.admin = user_model.objects.create_user(username="ops", password="OpsPass123", is_staff=True)
        self.customer = user_model.objects.create_user(username="guest", password="GuestPass123")
        self.booking = Booking.objects.create(lifecycle_status=LifecycleStatus.SUPPLIER_CONFIRMED.value)
        self.failed = AutomationFailure.objects.create(
            booking_id=self.booking.booking_code,
            event="documents.generate",
            last_error="renderer offline",
            meta={"retry_history": []},
        )
        self.resolved = AutomationFailure.objects.create(
            booking_id="BK-OTHER",
            event="payment.confirmed",
            status=AutomationFailure.Status.RESOLVED,
        )
        self.client.force_authenticate(self.admin)

    def test_list_filters(self) -> None:
        url = reverse("automation-failure-list")

        by_status = self.client.get(url, {"status": "failed"})
        by_booking = self.client.get(url, {"booking_id": "BK-OTHER"})
        by_alias = self.client.get(url, {"event": "booking.payment_confirmed"})

        self.assertEqual(by_status.status_code, status.HTTP_200_OK)
        self.assertEqual([row["id"] for row in by_status.data["results"]], [self.failed.pk])
        self.assertEqual([row["id"] for row in by_booking.data["results"]], [self.resolved.pk])
        self.assertEqual([row["id"] for row in by_alias.data["results"]], [self.resolved.pk])

    def test_detail_includes_history(self) -> None:
        response = self.client.get(reverse("automation-failure-detail", args=[self.failed.pk]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["retry_history"], [])
        self.assertIn("meta", response.data)

    def test_mark_resolved_once(self) -> None:
        url = reverse("automation-failure-mark-resolved", args=[self.failed.pk])

        first = self.client.post(url, {"note": "handled by phone"}, format="json")
        second = self.client.post(url, {}, format="json")

        self.assertEqual(first.status_code, status.HTTP_200_OK, first.data)
        self.assertEqual(first.data["status"], "resolved")
        self.assertEqual(first.data["meta"]["resolved_by"], "ops")
        self.assertEqual(second.status_code, status.HTTP_409_CONFLICT)

    def test_manual_retry(self) -> None:
        response = self.client.post(reverse("automation-failure-retry", args=[self.failed.pk]))

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["outcome"], "resolved")
        self.assertEqual(response.data["item"]["attempts"], 1)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.lifecycle, LifecycleStatus.DOCUMENTS_GENERATED)

        again = self.client.post(reverse("automation-failure-retry", args=[self.failed.pk]))
        self.assertEqual(again.status_code, status.HTTP_409_CONFLICT)

    def test_locks_are_readable(self) -> None:
        guard(self.booking.pk, "amadeus", "book", "offer-42", lambda: {"pnr": "PNR42"})

        response = self.client.get(reverse("supplier-lock-list"), {"supplier": "AMADEUS"})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["results"]), 1)
        self.assertEqual(response.data["results"][0]["status"], SupplierActionLock.Status.SUCCESS)

    def test_non_admin_is_forbidden(self) -> None:
        self.client.force_authenticate(self.customer)

        self.assertEqual(self.client.get(reverse("automation-failure-list")).status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(self.client.get(reverse("supplier-lock-list")).status_code, status.HTTP_403_FORBIDDEN)
