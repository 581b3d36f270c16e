import django_filters as filters

from .models import RefundRequest


class RefundRequestFilter(filters.FilterSet):
    status = filters.ChoiceFilter(field_name="status", choices=RefundRequest.Status.choices)
    booking_id = filters.NumberFilter(field_name="booking_id")
    created_at_after = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_at_before = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = RefundRequest
        fields = ["status", "booking_id"]
