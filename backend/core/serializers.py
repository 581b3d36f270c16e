"""Serializer helpers for strictly validated request payloads."""

from __future__ import annotations

from rest_framework import serializers


class StrictSerializer(serializers.Serializer):
    """
    Plain serializer that rejects keys it does not declare.

    DRF silently drops unknown input keys; request payloads that drive ledger
    mutations are validated in full instead.
    """

    def to_internal_value(self, data):
        if hasattr(data, "keys"):
            unknown = sorted(set(data.keys()) - set(self.fields.keys()))
            if unknown:
                raise serializers.ValidationError(
                    {key: ["Unknown field."] for key in unknown}
                )
        return super().to_internal_value(data)


class DateOnlyField(serializers.Field):
    """Accept ``YYYY-MM-DD`` or an ISO timestamp; normalize to a UTC calendar date."""

    default_error_messages = {"invalid": "Enter a valid date (YYYY-MM-DD)."}

    def to_internal_value(self, data):
        from core.dates import parse_date_only

        if not isinstance(data, str):
            self.fail("invalid")
        try:
            return parse_date_only(data)
        except ValueError:
            self.fail("invalid")

    def to_representation(self, value):
        return value.isoformat()
