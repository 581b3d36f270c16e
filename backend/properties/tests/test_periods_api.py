from __future__ import annotations

from datetime import date, timedelta

import pytest

from bookings.models import Booking
from bookings.tests.conftest import auth
from properties.models import BookingPeriod

pytestmark = pytest.mark.django_db


def period_payload(villa, start: date, end: date, **overrides):
    payload = {
        "property_id": villa.id,
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "standard_nightly_price": 250,
        "max_guests": 6,
    }
    payload.update(overrides)
    return payload


def test_admin_creates_period(admin_user, villa):
    client = auth(admin_user)

    resp = client.post(
        "/api/properties/periods/",
        period_payload(villa, date(2026, 6, 1), date(2026, 7, 1), weekly_discount_percent_bps=500),
        format="json",
    )

    assert resp.status_code == 201, resp.data
    assert resp.data["start_date"] == "2026-06-01"
    assert resp.data["weekly_discount_percent_bps"] == 500
    assert resp.data["weekly_threshold_nights"] == 7
    assert BookingPeriod.objects.filter(property=villa).count() == 1


def test_customer_cannot_manage_periods(customer_user, villa):
    client = auth(customer_user)

    resp = client.post(
        "/api/properties/periods/",
        period_payload(villa, date(2026, 6, 1), date(2026, 7, 1)),
        format="json",
    )

    assert resp.status_code == 403


def test_overlapping_period_is_conflict(admin_user, villa):
    client = auth(admin_user)
    client.post(
        "/api/properties/periods/",
        period_payload(villa, date(2026, 6, 1), date(2026, 7, 1)),
        format="json",
    )

    resp = client.post(
        "/api/properties/periods/",
        period_payload(villa, date(2026, 6, 30), date(2026, 7, 15)),
        format="json",
    )

    assert resp.status_code == 409
    assert BookingPeriod.objects.filter(property=villa).count() == 1


def test_adjacent_period_is_allowed(admin_user, villa):
    client = auth(admin_user)
    client.post(
        "/api/properties/periods/",
        period_payload(villa, date(2026, 6, 1), date(2026, 7, 1)),
        format="json",
    )

    resp = client.post(
        "/api/properties/periods/",
        period_payload(villa, date(2026, 7, 1), date(2026, 8, 1)),
        format="json",
    )

    assert resp.status_code == 201, resp.data


def test_unknown_field_is_rejected(admin_user, villa):
    client = auth(admin_user)

    resp = client.post(
        "/api/properties/periods/",
        period_payload(villa, date(2026, 6, 1), date(2026, 7, 1), colour="blue"),
        format="json",
    )

    assert resp.status_code == 400
    assert "colour" in resp.data


def test_patch_distinguishes_omitted_and_null(admin_user, villa):
    period = BookingPeriod.objects.create(
        property=villa,
        start_date=date(2026, 6, 1),
        end_date=date(2026, 7, 1),
        standard_nightly_price=250,
        weekly_discount_percent_bps=800,
        max_guests=6,
        name="June",
    )
    client = auth(admin_user)

    resp = client.patch(
        f"/api/properties/periods/{period.id}/",
        {"weekly_discount_percent_bps": None, "standard_nightly_price": 275},
        format="json",
    )

    assert resp.status_code == 200, resp.data
    period.refresh_from_db()
    assert period.weekly_discount_percent_bps is None
    assert period.standard_nightly_price == 275
    assert period.name == "June"


def test_patch_null_on_required_field_is_rejected(admin_user, villa):
    period = BookingPeriod.objects.create(
        property=villa,
        start_date=date(2026, 6, 1),
        end_date=date(2026, 7, 1),
        standard_nightly_price=250,
        max_guests=6,
    )
    client = auth(admin_user)

    resp = client.patch(
        f"/api/properties/periods/{period.id}/",
        {"max_guests": None},
        format="json",
    )

    assert resp.status_code == 400
    period.refresh_from_db()
    assert period.max_guests == 6


def test_patch_moving_dates_into_neighbour_is_conflict(admin_user, villa):
    june = BookingPeriod.objects.create(
        property=villa,
        start_date=date(2026, 6, 1),
        end_date=date(2026, 7, 1),
        standard_nightly_price=250,
        max_guests=6,
    )
    BookingPeriod.objects.create(
        property=villa,
        start_date=date(2026, 7, 1),
        end_date=date(2026, 8, 1),
        standard_nightly_price=300,
        max_guests=6,
    )
    client = auth(admin_user)

    resp = client.patch(
        f"/api/properties/periods/{june.id}/",
        {"end_date": "2026-07-05"},
        format="json",
    )

    assert resp.status_code == 409
    june.refresh_from_db()
    assert june.end_date == date(2026, 7, 1)


def test_list_periods_in_calendar_order(admin_user, villa):
    for start in (date(2026, 8, 1), date(2026, 6, 1)):
        BookingPeriod.objects.create(
            property=villa,
            start_date=start,
            end_date=start + timedelta(days=30),
            standard_nightly_price=200,
            max_guests=4,
        )
    client = auth(admin_user)

    resp = client.get(f"/api/properties/{villa.id}/periods/")

    assert resp.status_code == 200
    assert [row["start_date"] for row in resp.data] == ["2026-06-01", "2026-08-01"]


def test_delete_unused_period(admin_user, villa):
    period = BookingPeriod.objects.create(
        property=villa,
        start_date=date(2026, 6, 1),
        end_date=date(2026, 7, 1),
        standard_nightly_price=250,
        max_guests=6,
    )
    client = auth(admin_user)

    resp = client.delete(f"/api/properties/periods/{period.id}/")

    assert resp.status_code == 204
    assert not BookingPeriod.objects.filter(pk=period.id).exists()


def test_delete_period_with_bookings_is_conflict(admin_user, make_booking, open_period):
    make_booking(status=Booking.Status.CONFIRMED)
    client = auth(admin_user)

    resp = client.delete(f"/api/properties/periods/{open_period.id}/")

    assert resp.status_code == 409
    assert BookingPeriod.objects.filter(pk=open_period.id).exists()
