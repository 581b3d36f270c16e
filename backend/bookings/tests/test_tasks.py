from __future__ import annotations

from datetime import timedelta

import pytest
from django.utils import timezone

from bookings import tasks
from bookings.models import Booking
from payments.models import Cancellation, Payment

pytestmark = pytest.mark.django_db


def _age(booking: Booking, minutes: int) -> None:
    Booking.objects.filter(pk=booking.pk).update(
        created_at=timezone.now() - timedelta(minutes=minutes)
    )


def _pending(make_booking, **kwargs) -> Booking:
    return make_booking(
        status=Booking.Status.PENDING,
        payment_status=Payment.Status.PENDING,
        **kwargs,
    )


def test_expires_stale_pending_bookings(make_booking, fake_notifier, settings):
    settings.BOOKING_PENDING_HOLD_MINUTES = 30
    stale = _pending(make_booking, start_in_days=30)
    fresh = _pending(make_booking, start_in_days=60)
    _age(stale, 45)
    _age(fresh, 5)

    expired = tasks.expire_pending_bookings()

    assert expired == 1
    stale.refresh_from_db()
    fresh.refresh_from_db()
    assert stale.status == Booking.Status.CANCELLED
    assert fresh.status == Booking.Status.PENDING
    cancellation = Cancellation.objects.get(booking=stale)
    assert cancellation.reason == tasks.EXPIRED_REASON
    assert cancellation.policy_refund_cents == 0
    assert cancellation.voucher_issued_cents == 0
    assert fake_notifier.keys() == ["booking_expired"]


def test_confirmed_bookings_are_never_expired(make_booking, fake_notifier):
    booking = make_booking(start_in_days=30)
    _age(booking, 600)

    assert tasks.expire_pending_bookings() == 0
    booking.refresh_from_db()
    assert booking.status == Booking.Status.CONFIRMED


def test_expiry_is_idempotent(make_booking, fake_notifier):
    booking = _pending(make_booking, start_in_days=30)
    _age(booking, 600)

    assert tasks.expire_pending_bookings() == 1
    assert tasks.expire_pending_bookings() == 0
    assert Cancellation.objects.filter(booking=booking).count() == 1
    assert fake_notifier.keys() == ["booking_expired"]


def test_batch_size_caps_one_run(make_booking, fake_notifier, settings):
    settings.BOOKING_EXPIRY_BATCH_SIZE = 2
    for offset in (20, 40, 60):
        _age(_pending(make_booking, start_in_days=offset), 600)

    assert tasks.expire_pending_bookings() == 2
    assert tasks.expire_pending_bookings() == 1


def test_failure_on_one_booking_does_not_stop_batch(make_booking, fake_notifier, monkeypatch):
    first = _pending(make_booking, start_in_days=20)
    second = _pending(make_booking, start_in_days=40)
    _age(first, 700)
    _age(second, 600)

    real_expire = tasks._expire_one

    def _flaky(booking_id, cutoff):
        if booking_id == first.pk:
            raise RuntimeError("boom")
        return real_expire(booking_id, cutoff)

    monkeypatch.setattr(tasks, "_expire_one", _flaky)

    assert tasks.expire_pending_bookings() == 1
    first.refresh_from_db()
    second.refresh_from_db()
    assert first.status == Booking.Status.PENDING
    assert second.status == Booking.Status.CANCELLED


def test_notification_failure_is_not_fatal(make_booking, fake_notifier):
    fake_notifier.succeed = False
    booking = _pending(make_booking, start_in_days=30)
    _age(booking, 600)

    assert tasks.expire_pending_bookings() == 1


def test_booking_confirmed_after_selection_is_left_alone(make_booking, fake_notifier, monkeypatch):
    booking = _pending(make_booking, start_in_days=30)
    _age(booking, 600)

    real_expire = tasks._expire_one

    def _paid_meanwhile(booking_id, cutoff):
        Booking.objects.filter(pk=booking_id).update(status=Booking.Status.CONFIRMED)
        Payment.objects.filter(booking_id=booking_id).update(status=Payment.Status.PAID)
        return real_expire(booking_id, cutoff)

    monkeypatch.setattr(tasks, "_expire_one", _paid_meanwhile)

    assert tasks.expire_pending_bookings() == 0
    booking.refresh_from_db()
    assert booking.status == Booking.Status.CONFIRMED
    assert not Cancellation.objects.filter(booking=booking).exists()
    assert fake_notifier.sent == []
