"""Serializers for the automation API."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from apps.bookings.domain.lifecycle import ActorType
from apps.suppliers.models import SupplierActionLock
from shared.domain.value_objects import IdempotencyKey, clean_token

from .models import AutomationFailure


class AutomationEventSerializer(serializers.Serializer):
    """Inbound event from a webhook, an admin button or another service."""

    event = serializers.CharField(max_length=64)
    booking_id = serializers.CharField(max_length=64, required=False, allow_blank=True)
    payload = serializers.JSONField(required=False, default=dict)
    actor_type = serializers.ChoiceField(choices=[actor.value for actor in ActorType], required=False)
    actor_id = serializers.CharField(max_length=64, required=False, allow_blank=True)
    idempotency_key = serializers.CharField(max_length=200, required=False, allow_blank=True)

    def validate_payload(self, value):  # type: ignore
        if value in (None, ""):
            return {}
        if not isinstance(value, dict):
            raise serializers.ValidationError("payload must be a JSON object")
        return value

    def validate_idempotency_key(self, value):  # type: ignore
        if clean_token(value):
            try:
                IdempotencyKey.from_value(value)
            except ValueError as exc:
                raise serializers.ValidationError(str(exc))
        return value


class AutomationFailureSerializer(serializers.ModelSerializer):
    retry_history = serializers.ListField(read_only=True)

    class Meta:
        model = AutomationFailure
        fields = (
            "id",
            "booking_id",
            "event",
            "status",
            "attempts",
            "retryable",
            "last_error",
            "retry_history",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class AutomationFailureDetailSerializer(AutomationFailureSerializer):
    class Meta(AutomationFailureSerializer.Meta):
        fields = AutomationFailureSerializer.Meta.fields + ("payload", "meta")
        read_only_fields = fields


class MarkResolvedSerializer(serializers.Serializer):
    note = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class SupplierActionLockSerializer(serializers.ModelSerializer):
    class Meta:
        model = SupplierActionLock
        fields = (
            "id",
            "idempotency_key",
            "booking_id",
            "supplier",
            "action",
            "provider_ref",
            "request_id",
            "status",
            "result",
            "error",
            "meta",
            "released_at",
            "released_by",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields
