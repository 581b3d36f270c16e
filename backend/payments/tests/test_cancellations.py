from __future__ import annotations

import pytest
from django.utils import timezone

from bookings.models import Booking
from bookings.tests.conftest import auth
from core.exceptions import ConflictError
from payments.cancellations import cancel_booking, preview_cancellation
from payments.gateway import GatewayTransientError
from payments.models import Cancellation, CreditVoucher, Payment, Refund
from payments.refunds import MISSING_PAYMENT_INTENT

pytestmark = pytest.mark.django_db


def cancel_url(booking) -> str:
    return f"/api/payments/cancel/{booking.id}/"


def test_early_gateway_cancellation_submits_full_refund(
    customer_user, make_booking, fake_gateway, fake_notifier
):
    booking = make_booking(start_in_days=90, total_price=800)

    resp = auth(customer_user).post(cancel_url(booking), {"reason": "plans changed"}, format="json")

    assert resp.status_code == 200, resp.data
    assert resp.data["status"] == Booking.Status.CANCELLED
    assert resp.data["refund"]["refund_type"] == "gateway_refund"
    assert resp.data["refund"]["refunded_cents"] == 80_000
    assert resp.data["refund"]["refund_status"] == Refund.Status.PENDING

    refund = Refund.objects.get(booking=booking)
    assert refund.source == Refund.Source.POLICY_CANCEL
    assert refund.gateway_refund_id == "re_test_1"
    assert refund.cancellation == booking.cancellation
    assert booking.cancellation.reason == "plans changed"
    assert booking.cancellation.policy_refund_cents == 80_000

    (call,) = fake_gateway.refund_calls
    assert call["payment_intent_id"] == f"pi_seed_{booking.pk}"
    assert call["amount_cents"] == 80_000
    assert call["idempotency_key"] == f"refund:policy_cancel:booking:{booking.pk}:refund:{refund.pk}"
    assert call["metadata"]["localRefundId"] == str(refund.pk)
    assert fake_notifier.keys() == ["booking_cancelled"]

    # Money moves only when the refund webhook reports success.
    payment = Payment.objects.get(booking=booking)
    assert payment.refunded_cents == 0


def test_mid_tier_cancellation_refunds_half(customer_user, make_booking, fake_gateway, fake_notifier):
    booking = make_booking(start_in_days=45, total_price=801)

    result = cancel_booking(booking.id, customer_user)

    assert result.refunded_cents == 40_050
    assert result.voucher_cents == 0


def test_late_cancellation_issues_voucher(customer_user, make_booking, fake_gateway, fake_notifier):
    booking = make_booking(start_in_days=5, total_price=800)

    resp = auth(customer_user).post(cancel_url(booking), {}, format="json")

    assert resp.status_code == 200, resp.data
    assert resp.data["refund"]["refund_type"] == "voucher"
    assert resp.data["refund"]["voucher_cents"] == 64_000
    assert resp.data["refund"]["refund_status"] == "not_applicable"
    assert fake_gateway.refund_calls == []
    assert not Refund.objects.filter(booking=booking).exists()

    voucher = CreditVoucher.objects.get(original_booking=booking)
    assert voucher.user == customer_user
    assert voucher.issued_cents == voucher.remaining_cents == 64_000
    assert voucher.status == CreditVoucher.Status.ACTIVE
    assert voucher.cancellation == booking.cancellation
    assert voucher.expires_at > timezone.now()
    assert voucher.is_usable()


def test_refund_capped_by_remaining_refundable(customer_user, make_booking, fake_gateway, fake_notifier):
    booking = make_booking(
        start_in_days=90,
        total_price=800,
        payment_status=Payment.Status.PARTIALLY_REFUNDED,
        refunded_cents=40_000,
    )

    result = cancel_booking(booking.id, customer_user)

    assert result.refunded_cents == 40_000
    assert fake_gateway.refund_calls[0]["amount_cents"] == 40_000


def test_admin_booking_cancels_without_money(customer_user, make_booking, fake_gateway, fake_notifier):
    booking = make_booking(start_in_days=90, provider=Payment.Provider.ADMIN)

    resp = auth(customer_user).post(cancel_url(booking), {}, format="json")

    assert resp.status_code == 200, resp.data
    assert resp.data["refund"]["refund_type"] == "none"
    assert resp.data["refund"]["refunded_cents"] == 0
    assert resp.data["refund"]["voucher_cents"] == 0
    assert fake_gateway.refund_calls == []
    assert not CreditVoucher.objects.exists()
    assert Cancellation.objects.get(booking=booking).policy_refund_cents == 0


def test_booking_without_payment_row_is_treated_like_admin(
    customer_user, make_booking, fake_gateway, fake_notifier
):
    booking = make_booking(start_in_days=5, provider=None)

    result = cancel_booking(booking.id, customer_user)

    assert result.refund_type == "none"
    assert not CreditVoucher.objects.exists()


def test_second_cancellation_is_conflict(customer_user, make_booking, fake_gateway, fake_notifier):
    booking = make_booking(start_in_days=90)
    client = auth(customer_user)
    client.post(cancel_url(booking), {}, format="json")

    resp = client.post(cancel_url(booking), {}, format="json")

    assert resp.status_code == 409
    assert Refund.objects.filter(booking=booking).count() == 1
    assert len(fake_gateway.refund_calls) == 1


def test_gateway_failure_keeps_cancellation(customer_user, make_booking, fake_gateway, fake_notifier):
    fake_gateway.refund_error = GatewayTransientError("Temporary Stripe error, please retry.")
    booking = make_booking(start_in_days=90)

    resp = auth(customer_user).post(cancel_url(booking), {}, format="json")

    assert resp.status_code == 502
    assert resp.data["status"] == Booking.Status.CANCELLED
    assert resp.data["refund"]["refund_status"] == Refund.Status.FAILED
    booking.refresh_from_db()
    assert booking.status == Booking.Status.CANCELLED
    refund = Refund.objects.get(booking=booking)
    assert refund.status == Refund.Status.FAILED
    assert refund.gateway_refund_id is None
    assert "Temporary Stripe error" in refund.failure_reason


def test_missing_payment_intent_records_failed_refund(
    customer_user, make_booking, fake_gateway, fake_notifier
):
    booking = make_booking(start_in_days=90, with_intent=False)

    resp = auth(customer_user).post(cancel_url(booking), {}, format="json")

    assert resp.status_code == 409
    assert resp.data["status"] == Booking.Status.CANCELLED
    refund = Refund.objects.get(booking=booking)
    assert refund.status == Refund.Status.FAILED
    assert refund.failure_reason == MISSING_PAYMENT_INTENT
    assert fake_gateway.refund_calls == []


def test_cannot_cancel_someone_elses_booking(other_user, make_booking, fake_gateway, fake_notifier):
    booking = make_booking(start_in_days=90)

    resp = auth(other_user).post(cancel_url(booking), {}, format="json")

    assert resp.status_code == 404
    booking.refresh_from_db()
    assert booking.status == Booking.Status.CONFIRMED


def test_cancel_rejects_unknown_fields(customer_user, make_booking, fake_gateway):
    booking = make_booking(start_in_days=90)

    resp = auth(customer_user).post(cancel_url(booking), {"refund_all": True}, format="json")

    assert resp.status_code == 400
    booking.refresh_from_db()
    assert booking.status == Booking.Status.CONFIRMED


def test_preview_matches_commit(customer_user, make_booking, fake_gateway, fake_notifier):
    booking = make_booking(start_in_days=20, total_price=999)

    preview_resp = auth(customer_user).get(f"/api/payments/cancel-preview/{booking.id}/")
    result = cancel_booking(booking.id, customer_user)

    assert preview_resp.status_code == 200, preview_resp.data
    assert preview_resp.data["days_before"] == 20
    assert preview_resp.data["tier"]["key"] == "15_to_29"
    assert preview_resp.data["gateway_refund_cents"] == result.refunded_cents == 24_975
    assert preview_resp.data["voucher_cents"] == result.voucher_cents == 0


def test_preview_of_cancelled_booking_is_conflict(customer_user, make_booking):
    booking = make_booking(status=Booking.Status.CANCELLED)

    with pytest.raises(ConflictError):
        preview_cancellation(booking.id, customer_user)


def test_cancellation_policy_is_public(api_client):
    resp = api_client.get("/api/payments/cancellation-policy/")

    assert resp.status_code == 200
    assert len(resp.data["tiers"]) == 4
