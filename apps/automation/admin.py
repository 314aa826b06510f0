"""Admin registrations for the automation retry queue."""

from __future__ import annotations

from django.contrib import admin, messages

from .models import AutomationFailure, AutomationHeartbeat
from .scheduler import RetryScheduler
from .services import mark_failure_resolved


@admin.register(AutomationFailure)
class AutomationFailureAdmin(admin.ModelAdmin):
    list_display = ("id", "event", "booking_id", "status", "attempts", "retryable", "updated_at")
    list_filter = ("status", "event", "retryable")
    search_fields = ("booking_id", "last_error")
    readonly_fields = (
        "booking_id",
        "event",
        "status",
        "attempts",
        "retryable",
        "last_error",
        "payload",
        "meta",
        "created_at",
        "updated_at",
    )
    actions = ("retry_selected", "resolve_selected")

    def has_add_permission(self, request):  # type: ignore
        return False

    @admin.action(description="Retry selected failed items now")
    def retry_selected(self, request, queryset):  # type: ignore
        scheduler = RetryScheduler()
        for failure in queryset:
            outcome = scheduler.retry_item(failure.pk)
            if outcome is None:
                self.message_user(request, f"#{failure.pk}: not retryable in status {failure.status}", messages.WARNING)
            else:
                level = messages.SUCCESS if outcome.status == "resolved" else messages.ERROR
                self.message_user(request, f"#{failure.pk}: {outcome.status} {outcome.error or ''}", level)

    @admin.action(description="Mark selected items resolved")
    def resolve_selected(self, request, queryset):  # type: ignore
        resolved = sum(
            mark_failure_resolved(failure.pk, resolved_by=request.user.get_username(), note="admin action")
            for failure in queryset
        )
        self.message_user(request, f"Resolved {resolved} item(s)", messages.SUCCESS)


@admin.register(AutomationHeartbeat)
class AutomationHeartbeatAdmin(admin.ModelAdmin):
    list_display = ("name", "last_run_at", "last_summary")
    readonly_fields = ("name", "last_run_at", "last_summary")
