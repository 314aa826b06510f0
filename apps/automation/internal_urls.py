"""Internal (cron) endpoints protected by the shared secret header."""

from __future__ import annotations

from django.urls import path  # type: ignore

from .views import InternalRetryView

urlpatterns = [
    path("retry/", InternalRetryView.as_view(), name="automation-internal-retry"),
]
