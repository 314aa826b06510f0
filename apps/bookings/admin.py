"""Admin registration for bookings."""

from __future__ import annotations

from django.contrib import admin

from .models import Booking, BookingLifecycleEvent


class BookingLifecycleEventInline(admin.TabularInline):
    model = BookingLifecycleEvent
    extra = 0
    can_delete = False
    readonly_fields = (
        "from_status",
        "to_status",
        "actor_type",
        "actor_id",
        "idempotency_key",
        "note",
        "created_at",
    )

    def has_add_permission(self, request, obj=None):  # type: ignore
        return False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "booking_code",
        "lifecycle_status",
        "payment_status",
        "supplier_status",
        "supplier_confirmation_reference",
        "updated_at",
    )
    list_filter = ("lifecycle_status", "payment_status", "supplier_status")
    search_fields = ("booking_code", "id", "supplier_confirmation_reference")
    # Lifecycle moves only through the engine; never edited by hand.
    readonly_fields = (
        "id",
        "booking_code",
        "lifecycle_status",
        "created_at",
        "updated_at",
    )
    inlines = [BookingLifecycleEventInline]
