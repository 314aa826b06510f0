"""URL routing for the automation API."""

from __future__ import annotations

from django.urls import include, path  # type: ignore
from rest_framework.routers import DefaultRouter  # type: ignore

from .views import AutomationEventView, AutomationFailureViewSet, SupplierActionLockViewSet

router = DefaultRouter()
router.register(r"failures", AutomationFailureViewSet, basename="automation-failure")
router.register(r"locks", SupplierActionLockViewSet, basename="supplier-lock")

urlpatterns = [
    path("events/", AutomationEventView.as_view(), name="automation-event"),
    path("", include(router.urls)),
]
