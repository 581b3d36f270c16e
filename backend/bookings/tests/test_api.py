"""Integration tests for the bookings API endpoints."""

from __future__ import annotations

from datetime import timedelta

import pytest
from django.utils import timezone

from bookings.models import Booking
from bookings.tests.conftest import auth
from payments.gateway import GatewayRequestError, GatewayTransientError
from payments.models import Payment
from properties.periods import NO_PERIOD

pytestmark = pytest.mark.django_db


def booking_payload(villa, start_in_days: int, nights: int, **overrides):
    start = timezone.localdate() + timedelta(days=start_in_days)
    payload = {
        "property_id": villa.id,
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=nights)).isoformat(),
        "adults": 2,
    }
    payload.update(overrides)
    return payload


def test_quote_is_public_and_includes_refund_policy(api_client, villa, open_period):
    resp = api_client.post(
        "/api/bookings/quote/",
        booking_payload(villa, 70, 3, children=1, babies=1),
        format="json",
    )

    assert resp.status_code == 200, resp.data
    assert resp.data["guests"] == 3
    assert resp.data["price"]["total"] == 600
    assert resp.data["refund_policy"]["days_before"] == 70
    assert resp.data["refund_policy"]["tier"]["key"] == "60_plus"
    assert len(resp.data["refund_policy"]["tiers"]) == 4


def test_quote_rejects_unknown_fields(api_client, villa, open_period):
    resp = api_client.post(
        "/api/bookings/quote/",
        booking_payload(villa, 30, 3, coupon="FREE"),
        format="json",
    )

    assert resp.status_code == 400
    assert "coupon" in resp.data


def test_quote_requires_an_adult(api_client, villa, open_period):
    resp = api_client.post(
        "/api/bookings/quote/",
        booking_payload(villa, 30, 3, adults=0),
        format="json",
    )

    assert resp.status_code == 400


def test_quote_outside_periods_is_conflict(api_client, villa, open_period):
    resp = api_client.post(
        "/api/bookings/quote/",
        booking_payload(villa, 399, 3),
        format="json",
    )

    assert resp.status_code == 409
    assert resp.data["code"] == NO_PERIOD


def test_customer_booking_is_pending_with_checkout(customer_user, villa, open_period, fake_gateway):
    client = auth(customer_user)

    resp = client.post("/api/bookings/", booking_payload(villa, 30, 3), format="json")

    assert resp.status_code == 201, resp.data
    assert resp.data["checkout_url"] == "https://checkout.test/cs_test_1"
    assert resp.data["booking"]["status"] == Booking.Status.PENDING
    assert resp.data["price"]["total"] == 600

    booking = Booking.objects.get(pk=resp.data["booking"]["id"])
    assert booking.user == customer_user
    assert booking.booking_period == open_period
    assert booking.guests_count == 2
    payment = booking.payment
    assert payment.provider == Payment.Provider.GATEWAY
    assert payment.status == Payment.Status.PENDING
    assert payment.amount_cents == 60_000
    assert payment.gateway_session_id == "cs_test_1"

    (call,) = fake_gateway.checkout_calls
    assert call["amount_cents"] == 60_000
    assert call["metadata"]["bookingId"] == str(booking.pk)
    assert call["customer_email"] == "guest@example.com"


def test_babies_do_not_count_against_guest_limit(customer_user, villa, open_period, fake_gateway):
    client = auth(customer_user)

    resp = client.post(
        "/api/bookings/",
        booking_payload(villa, 30, 3, adults=4, children=2, babies=2),
        format="json",
    )

    assert resp.status_code == 201, resp.data
    booking = Booking.objects.get(pk=resp.data["booking"]["id"])
    assert booking.guests_count == 6
    assert booking.babies == 2


def test_admin_booking_is_confirmed_without_checkout(admin_user, villa, open_period, fake_gateway):
    client = auth(admin_user)

    resp = client.post("/api/bookings/", booking_payload(villa, 30, 3), format="json")

    assert resp.status_code == 201, resp.data
    assert resp.data["checkout_url"] is None
    booking = Booking.objects.get(pk=resp.data["booking"]["id"])
    assert booking.status == Booking.Status.CONFIRMED
    assert booking.payment.provider == Payment.Provider.ADMIN
    assert booking.payment.status == Payment.Status.PAID
    assert booking.payment.amount_cents == 0
    assert fake_gateway.checkout_calls == []


def test_overlapping_booking_is_conflict(customer_user, other_user, villa, open_period, fake_gateway):
    auth(customer_user).post("/api/bookings/", booking_payload(villa, 30, 4), format="json")

    resp = auth(other_user).post("/api/bookings/", booking_payload(villa, 32, 4), format="json")

    assert resp.status_code == 409
    assert Booking.objects.count() == 1


def test_checkout_transient_failure_is_503(customer_user, villa, open_period, fake_gateway):
    fake_gateway.checkout_error = GatewayTransientError("Temporary Stripe error, please retry.")

    resp = auth(customer_user).post("/api/bookings/", booking_payload(villa, 30, 3), format="json")

    assert resp.status_code == 503


def test_checkout_rejection_is_502(customer_user, villa, open_period, fake_gateway):
    fake_gateway.checkout_error = GatewayRequestError("Invalid payment request.")

    resp = auth(customer_user).post("/api/bookings/", booking_payload(villa, 30, 3), format="json")

    assert resp.status_code == 502


def test_anonymous_cannot_create_booking(api_client, villa, open_period, fake_gateway):
    resp = api_client.post("/api/bookings/", booking_payload(villa, 30, 3), format="json")

    assert resp.status_code == 401


def test_customer_lists_only_own_bookings(customer_user, other_user, make_booking):
    mine = make_booking()
    make_booking(user=other_user, start_in_days=120)
    client = auth(customer_user)

    list_resp = client.get("/api/bookings/")
    detail_resp = client.get(f"/api/bookings/{mine.id}/")

    assert list_resp.status_code == 200
    ids = [row["id"] for row in list_resp.data]
    assert ids == [mine.id]
    assert detail_resp.data["payment_status"] == Payment.Status.PAID


def test_customer_cannot_read_other_booking(other_user, make_booking):
    booking = make_booking()

    resp = auth(other_user).get(f"/api/bookings/{booking.id}/")

    assert resp.status_code == 404


def test_admin_confirms_pending_booking(admin_user, make_booking):
    booking = make_booking(status=Booking.Status.PENDING, payment_status=Payment.Status.PENDING)

    resp = auth(admin_user).post(f"/api/bookings/{booking.id}/confirm/")

    assert resp.status_code == 200, resp.data
    booking.refresh_from_db()
    assert booking.status == Booking.Status.CONFIRMED
    payment = Payment.objects.get(booking=booking)
    assert payment.provider == Payment.Provider.ADMIN
    assert payment.status == Payment.Status.PAID
    assert payment.amount_cents == 0


def test_cancelling_admin_confirmed_booking_moves_no_money(
    admin_user, customer_user, make_booking, fake_gateway, fake_notifier
):
    booking = make_booking(status=Booking.Status.PENDING, payment_status=Payment.Status.PENDING)
    auth(admin_user).post(f"/api/bookings/{booking.id}/confirm/")

    resp = auth(customer_user).post(f"/api/payments/cancel/{booking.id}/", {}, format="json")

    assert resp.status_code == 200, resp.data
    assert resp.data["refund"]["refund_type"] == "none"
    assert fake_gateway.refund_calls == []


def test_confirming_non_pending_booking_is_conflict(admin_user, make_booking):
    booking = make_booking(status=Booking.Status.CANCELLED)

    resp = auth(admin_user).post(f"/api/bookings/{booking.id}/confirm/")

    assert resp.status_code == 409


def test_customer_cannot_confirm(customer_user, make_booking):
    booking = make_booking(status=Booking.Status.PENDING, payment_status=Payment.Status.PENDING)

    resp = auth(customer_user).post(f"/api/bookings/{booking.id}/confirm/")

    assert resp.status_code == 403
