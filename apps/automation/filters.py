"""FilterSet definitions for the automation operator views."""

from __future__ import annotations

import django_filters  # type: ignore

from apps.suppliers.models import SupplierActionLock

from .models import AutomationFailure
from .services import canonical_event_name


class AutomationFailureFilterSet(django_filters.FilterSet):
    booking_id = django_filters.CharFilter(field_name="booking_id", lookup_expr="exact")
    # Accepts any alias spelling, e.g. booking.payment_confirmed
    event = django_filters.CharFilter(method="filter_event")
    status = django_filters.ChoiceFilter(choices=AutomationFailure.Status.choices)
    retryable = django_filters.BooleanFilter()

    class Meta:
        model = AutomationFailure
        fields = ["booking_id", "event", "status", "retryable"]

    def filter_event(self, queryset, name, value):  # type: ignore
        if not value:
            return queryset
        return queryset.filter(event=canonical_event_name(value))


class SupplierActionLockFilterSet(django_filters.FilterSet):
    booking_id = django_filters.CharFilter(field_name="booking_id", lookup_expr="exact")
    supplier = django_filters.CharFilter(field_name="supplier", lookup_expr="iexact")
    action = django_filters.CharFilter(field_name="action", lookup_expr="iexact")
    status = django_filters.ChoiceFilter(choices=SupplierActionLock.Status.choices)

    class Meta:
        model = SupplierActionLock
        fields = ["booking_id", "supplier", "action", "status"]
