"""Shared fixtures for booking, period and payment tests."""

from __future__ import annotations

import json
from datetime import timedelta
from typing import Callable

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from bookings.models import Booking
from notifications.notifier import set_notifier
from payments.gateway import CheckoutSession, GatewayRefund, WebhookSignatureError, set_gateway
from payments.models import Payment
from properties.models import BookingPeriod, Property

User = get_user_model()

VALID_SIGNATURE = "t=1,v1=valid"


class FakeGateway:
    """In-memory ``PaymentGateway`` recording every call."""

    def __init__(self):
        self.checkout_calls: list[dict] = []
        self.refund_calls: list[dict] = []
        self.checkout_error: Exception | None = None
        self.refund_error: Exception | None = None
        self.refund_status = "pending"

    def create_checkout_session(self, **kwargs):
        if self.checkout_error is not None:
            raise self.checkout_error
        self.checkout_calls.append(kwargs)
        session_id = f"cs_test_{len(self.checkout_calls)}"
        return CheckoutSession(id=session_id, url=f"https://checkout.test/{session_id}")

    def create_refund(self, **kwargs):
        self.refund_calls.append(kwargs)
        if self.refund_error is not None:
            raise self.refund_error
        return GatewayRefund(
            id=f"re_test_{len(self.refund_calls)}",
            status=self.refund_status,
            amount_cents=kwargs["amount_cents"],
        )

    def construct_event(self, payload, signature, secret):
        if signature != VALID_SIGNATURE:
            raise WebhookSignatureError("Invalid signature.")
        return json.loads(payload)


class FakeNotifier:
    def __init__(self):
        self.sent: list[tuple[str, str, dict]] = []
        self.succeed = True

    def notify(self, template_key, recipient, variables, *, user_id=None, booking_id=None):
        self.sent.append((template_key, recipient, dict(variables)))
        return self.succeed

    def keys(self) -> list[str]:
        return [template_key for template_key, _, _ in self.sent]


def auth(user) -> APIClient:
    client = APIClient()
    token_resp = client.post(
        "/api/users/token/",
        {"username": user.username, "password": "testpass"},
        format="json",
    )
    token = token_resp.data["access"]
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
    return client


@pytest.fixture
def fake_gateway():
    gateway = FakeGateway()
    set_gateway(gateway)
    yield gateway
    set_gateway(None)


@pytest.fixture
def fake_notifier():
    notifier = FakeNotifier()
    set_notifier(notifier)
    yield notifier
    set_notifier(None)


@pytest.fixture
def customer_user():
    return User.objects.create_user(
        username="guest",
        password="testpass",
        email="guest@example.com",
        first_name="Ana",
        last_name="Guest",
    )


@pytest.fixture
def other_user():
    return User.objects.create_user(
        username="other",
        password="testpass",
        email="other@example.com",
    )


@pytest.fixture
def admin_user():
    return User.objects.create_user(
        username="villa-admin",
        password="testpass",
        email="admin@example.com",
        is_staff=True,
    )


@pytest.fixture
def villa():
    return Property.objects.create(
        title="Villa Azzurra",
        price_per_night=180,
        max_guests=8,
        min_nights=1,
    )


@pytest.fixture
def open_period(villa):
    """A long open period starting today: 200/night, 10% off from 7 nights."""
    today = timezone.localdate()
    return BookingPeriod.objects.create(
        property=villa,
        start_date=today,
        end_date=today + timedelta(days=400),
        is_open=True,
        standard_nightly_price=200,
        weekly_discount_percent_bps=1_000,
        weekly_threshold_nights=7,
        min_nights=2,
        max_guests=6,
        name="Season",
    )


@pytest.fixture
def make_booking(villa, open_period, customer_user) -> Callable[..., Booking]:
    """
    Create a booking with its payment row directly, bypassing pricing.

    Gateway payments get a payment intent id unless ``with_intent=False``.
    """

    def _make(
        *,
        user=None,
        start_in_days: int = 90,
        nights: int = 4,
        total_price: int = 800,
        status: str = Booking.Status.CONFIRMED,
        provider: str | None = Payment.Provider.GATEWAY,
        payment_status: str = Payment.Status.PAID,
        with_intent: bool = True,
        refunded_cents: int = 0,
    ) -> Booking:
        start = timezone.localdate() + timedelta(days=start_in_days)
        booking = Booking.objects.create(
            property=villa,
            user=user or customer_user,
            booking_period=open_period,
            start_date=start,
            end_date=start + timedelta(days=nights),
            status=status,
            total_price=total_price,
            adults=2,
            guests_count=2,
        )
        if provider is None:
            return booking
        is_gateway = provider == Payment.Provider.GATEWAY
        Payment.objects.create(
            booking=booking,
            provider=provider,
            status=payment_status,
            amount_cents=total_price * 100 if is_gateway else 0,
            refunded_cents=refunded_cents,
            gateway_session_id=f"cs_seed_{booking.pk}" if is_gateway else None,
            gateway_payment_intent_id=(
                f"pi_seed_{booking.pk}" if is_gateway and with_intent else None
            ),
        )
        return booking

    return _make
