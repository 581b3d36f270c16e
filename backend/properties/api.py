"""Admin endpoints for managing booking periods."""

from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework import permissions, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from core.permissions import IsVillaAdmin

from .models import BookingPeriod, Property
from .periods import create_period, delete_period, update_period
from .serializers import (
    BookingPeriodCreateSerializer,
    BookingPeriodPatchSerializer,
    BookingPeriodSerializer,
)


@api_view(["GET"])
@permission_classes([permissions.IsAuthenticated, IsVillaAdmin])
def property_periods(request, property_id: int):
    """List every period of a property in calendar order."""
    villa = get_object_or_404(Property, pk=property_id)
    periods = BookingPeriod.objects.filter(property=villa).order_by("start_date", "id")
    return Response(BookingPeriodSerializer(periods, many=True).data)


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated, IsVillaAdmin])
def period_create(request):
    serializer = BookingPeriodCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    period = create_period(serializer.to_period_input())
    return Response(BookingPeriodSerializer(period).data, status=status.HTTP_201_CREATED)


@api_view(["PATCH", "DELETE"])
@permission_classes([permissions.IsAuthenticated, IsVillaAdmin])
def period_detail(request, period_id: int):
    if request.method == "DELETE":
        delete_period(period_id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = BookingPeriodPatchSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    period = update_period(period_id, serializer.to_patch())
    return Response(BookingPeriodSerializer(period).data)
