"""Automation API views."""

from __future__ import annotations

import hmac

import structlog
from django.conf import settings  # type: ignore
from django.shortcuts import get_object_or_404  # type: ignore
from django_filters.rest_framework import DjangoFilterBackend  # type: ignore
from rest_framework import permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from apps.bookings.domain.lifecycle import ActorType
from apps.suppliers.models import SupplierActionLock

from .exceptions import BookingNotFoundError, is_retryable
from .filters import AutomationFailureFilterSet, SupplierActionLockFilterSet
from .models import AutomationFailure
from .scheduler import RetryScheduler
from .serializers import (
    AutomationEventSerializer,
    AutomationFailureDetailSerializer,
    AutomationFailureSerializer,
    MarkResolvedSerializer,
    SupplierActionLockSerializer,
)
from .services import dispatch_automation_event, mark_failure_resolved

logger = structlog.get_logger(__name__)

INTERNAL_SECRET_HEADER = "X-Internal-Secret"


class HasInternalSecret(permissions.BasePermission):
    """Caller presents the shared internal secret header."""

    message = "Missing or invalid internal secret."

    def has_permission(self, request, view):  # type: ignore
        expected = getattr(settings, "AUTOMATION_INTERNAL_SECRET", "")
        provided = request.headers.get(INTERNAL_SECRET_HEADER, "")
        if not expected or not provided:
            return False
        return hmac.compare_digest(provided.encode(), expected.encode())


class AutomationEventView(APIView):
    """Entry point for payment webhooks, supplier callbacks and admin buttons."""

    permission_classes = [permissions.IsAdminUser | HasInternalSecret]

    def post(self, request):  # type: ignore
        serializer = AutomationEventSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        is_admin = bool(getattr(request.user, "is_staff", False))
        actor_type = data.get("actor_type") or (ActorType.ADMIN if is_admin else ActorType.WEBHOOK)
        actor_id = data.get("actor_id") or (str(request.user.pk) if is_admin else "")

        try:
            dispatch_automation_event(
                data["event"],
                booking_id=data.get("booking_id"),
                payload=data.get("payload") or {},
                actor_type=actor_type,
                actor_id=actor_id,
                idempotency_key=data.get("idempotency_key"),
                source="api",
            )
        except BookingNotFoundError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
        except Exception as exc:
            if not is_retryable(exc):
                return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
            failure_id = getattr(exc, "failure_id", None)
            if failure_id is None:
                raise
            return Response(
                {"status": "queued", "failure_id": failure_id, "detail": str(exc)[:500]},
                status=status.HTTP_202_ACCEPTED,
            )

        return Response({"status": "ok", "event": data["event"]}, status=status.HTTP_200_OK)


class InternalRetryView(APIView):
    """Cron hook running one retry scheduler pass."""

    authentication_classes: list = []
    permission_classes = [HasInternalSecret]

    def get(self, request):  # type: ignore
        return self._run()

    def post(self, request):  # type: ignore
        return self._run()

    def _run(self):
        summary = RetryScheduler().run()
        return Response(summary, status=status.HTTP_200_OK)


class AutomationFailureViewSet(viewsets.ReadOnlyModelViewSet):
    """Retry queue for operators."""

    queryset = AutomationFailure.objects.all().order_by("-created_at")
    permission_classes = [permissions.IsAdminUser]
    filter_backends = [DjangoFilterBackend]
    filterset_class = AutomationFailureFilterSet

    def get_serializer_class(self):  # type: ignore
        if self.action == "retrieve":
            return AutomationFailureDetailSerializer
        return AutomationFailureSerializer

    @action(detail=True, methods=["post"], url_path="mark-resolved")
    def mark_resolved(self, request, pk=None):  # type: ignore
        failure = get_object_or_404(AutomationFailure, pk=pk)
        serializer = MarkResolvedSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        changed = mark_failure_resolved(
            failure.pk,
            resolved_by=request.user.get_username(),
            note=serializer.validated_data["note"],
        )
        failure.refresh_from_db()
        if not changed:
            return Response(
                {"detail": "Item is already resolved or changed meanwhile.", "status": failure.status},
                status=status.HTTP_409_CONFLICT,
            )
        return Response(AutomationFailureDetailSerializer(failure).data)

    @action(detail=True, methods=["post"])
    def retry(self, request, pk=None):  # type: ignore
        failure = get_object_or_404(AutomationFailure, pk=pk)
        outcome = RetryScheduler().retry_item(failure.pk)
        failure.refresh_from_db()
        if outcome is None:
            return Response(
                {"detail": "Only failed items can be retried.", "status": failure.status},
                status=status.HTTP_409_CONFLICT,
            )

        logger.info(
            "automation.retry.manual",
            failure_id=failure.pk,
            outcome=outcome.status,
            admin=request.user.get_username(),
        )
        return Response(
            {
                "outcome": outcome.status,
                "error": outcome.error,
                "item": AutomationFailureDetailSerializer(failure).data,
            }
        )


class SupplierActionLockViewSet(viewsets.ReadOnlyModelViewSet):
    """Supplier action locks, read only."""

    queryset = SupplierActionLock.objects.all().order_by("-created_at")
    serializer_class = SupplierActionLockSerializer
    permission_classes = [permissions.IsAdminUser]
    filter_backends = [DjangoFilterBackend]
    filterset_class = SupplierActionLockFilterSet
