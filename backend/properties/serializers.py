"""Serializers for villa booking periods."""

from __future__ import annotations

from rest_framework import serializers

from core.serializers import DateOnlyField, StrictSerializer

from .models import BookingPeriod
from .periods import UNSET, PeriodInput, PeriodPatch


class BookingPeriodSerializer(serializers.ModelSerializer):
    """Read-only representation of a period."""

    start_date = DateOnlyField(read_only=True)
    end_date = DateOnlyField(read_only=True)

    class Meta:
        model = BookingPeriod
        fields = [
            "id",
            "property",
            "start_date",
            "end_date",
            "is_open",
            "standard_nightly_price",
            "weekly_discount_percent_bps",
            "weekly_threshold_nights",
            "min_nights",
            "max_guests",
            "name",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class BookingPeriodCreateSerializer(StrictSerializer):
    property_id = serializers.IntegerField(min_value=1)
    start_date = DateOnlyField()
    end_date = DateOnlyField()
    is_open = serializers.BooleanField(required=False, default=True)
    standard_nightly_price = serializers.IntegerField(min_value=0)
    weekly_discount_percent_bps = serializers.IntegerField(
        min_value=0,
        max_value=10_000,
        required=False,
        allow_null=True,
        default=None,
    )
    weekly_threshold_nights = serializers.IntegerField(min_value=1, required=False, default=7)
    min_nights = serializers.IntegerField(min_value=1, required=False, default=1)
    max_guests = serializers.IntegerField(min_value=1)
    name = serializers.CharField(max_length=120, required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_null=True, allow_blank=True, default=None)

    def validate(self, attrs):
        if attrs["end_date"] <= attrs["start_date"]:
            raise serializers.ValidationError({"end_date": ["End date must be after start date."]})
        return attrs

    def to_period_input(self) -> PeriodInput:
        return PeriodInput(**self.validated_data)


class BookingPeriodPatchSerializer(StrictSerializer):
    """
    Partial period update.

    Omitted keys stay out of ``validated_data`` and become ``UNSET`` on the
    patch; an explicit ``null`` is passed through as ``None``.
    """

    start_date = DateOnlyField(required=False)
    end_date = DateOnlyField(required=False)
    is_open = serializers.BooleanField(required=False, allow_null=True)
    standard_nightly_price = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    weekly_discount_percent_bps = serializers.IntegerField(
        min_value=0,
        max_value=10_000,
        required=False,
        allow_null=True,
    )
    weekly_threshold_nights = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    min_nights = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    max_guests = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    name = serializers.CharField(max_length=120, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_null=True, allow_blank=True)

    def to_patch(self) -> PeriodPatch:
        values = {name: self.validated_data.get(name, UNSET) for name in self.fields}
        return PeriodPatch(**values)
