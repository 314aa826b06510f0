"""Admin registrations for booking documents."""

from __future__ import annotations

from django.contrib import admin

from .models import BookingDocument


@admin.register(BookingDocument)
class BookingDocumentAdmin(admin.ModelAdmin):
    list_display = ("booking", "doc_type", "trigger", "created_at")
    list_filter = ("doc_type", "trigger")
    search_fields = ("booking__booking_code",)
    readonly_fields = ("booking", "doc_type", "trigger", "content", "created_at")
