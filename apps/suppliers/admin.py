"""Admin registrations for supplier action locks."""

from __future__ import annotations

from django.contrib import admin, messages

from .exceptions import SupplierLockError
from .models import SupplierActionLock
from .services import release_lock


@admin.register(SupplierActionLock)
class SupplierActionLockAdmin(admin.ModelAdmin):
    list_display = ("idempotency_key", "booking_id", "supplier", "action", "status", "updated_at")
    list_filter = ("status", "supplier", "action")
    search_fields = ("idempotency_key", "booking_id", "provider_ref", "request_id")
    readonly_fields = (
        "booking_id",
        "supplier",
        "action",
        "provider_ref",
        "request_id",
        "idempotency_key",
        "status",
        "result",
        "error",
        "meta",
        "released_at",
        "released_by",
        "created_at",
        "updated_at",
    )
    actions = ("release_selected",)

    def has_add_permission(self, request):  # type: ignore
        return False

    def has_delete_permission(self, request, obj=None):  # type: ignore
        return False

    @admin.action(description="Release selected stale or failed locks")
    def release_selected(self, request, queryset):  # type: ignore
        released = 0
        for lock in queryset:
            try:
                release_lock(lock.idempotency_key, released_by=request.user.get_username(), reason="admin action")
            except SupplierLockError as exc:
                self.message_user(request, f"{lock.idempotency_key}: {exc}", level=messages.WARNING)
            else:
                released += 1
        if released:
            self.message_user(request, f"Released {released} lock(s)", level=messages.SUCCESS)
