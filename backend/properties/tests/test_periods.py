from __future__ import annotations

from datetime import date

import pytest

from properties.models import BookingPeriod
from properties.periods import (
    CLOSED,
    NO_PERIOD,
    apply_weekly_discount,
    build_segments,
)


def _period(start: date, end: date, *, price: int = 100, is_open: bool = True) -> BookingPeriod:
    return BookingPeriod(
        start_date=start,
        end_date=end,
        is_open=is_open,
        standard_nightly_price=price,
        max_guests=4,
    )


def test_single_period_covers_range():
    season = _period(date(2026, 6, 1), date(2026, 7, 1))

    result = build_segments([season], date(2026, 6, 10), date(2026, 6, 14))

    assert result.ok
    assert len(result.segments) == 1
    assert result.segments[0].nights == 4
    assert result.arrival_period is season


def test_range_split_across_adjacent_periods():
    june = _period(date(2026, 6, 1), date(2026, 7, 1), price=100)
    july = _period(date(2026, 7, 1), date(2026, 8, 1), price=150)

    result = build_segments([june, july], date(2026, 6, 28), date(2026, 7, 3))

    assert result.ok
    assert [(s.start, s.end, s.nights) for s in result.segments] == [
        (date(2026, 6, 28), date(2026, 7, 1), 3),
        (date(2026, 7, 1), date(2026, 7, 3), 2),
    ]
    assert sum(s.nights for s in result.segments) == 5


def test_gap_between_periods_is_no_period():
    june = _period(date(2026, 6, 1), date(2026, 6, 20))
    july = _period(date(2026, 6, 21), date(2026, 8, 1))

    result = build_segments([june, july], date(2026, 6, 18), date(2026, 6, 23))

    assert not result.ok
    assert result.reason == NO_PERIOD
    assert result.segments == ()


def test_closed_period_rejects_whole_range():
    open_part = _period(date(2026, 6, 1), date(2026, 6, 10))
    closed_part = _period(date(2026, 6, 10), date(2026, 6, 20), is_open=False)

    result = build_segments([open_part, closed_part], date(2026, 6, 8), date(2026, 6, 12))

    assert not result.ok
    assert result.reason == CLOSED


def test_range_ending_on_period_end_needs_no_following_period():
    season = _period(date(2026, 6, 1), date(2026, 6, 10))

    result = build_segments([season], date(2026, 6, 5), date(2026, 6, 10))

    assert result.ok
    assert result.segments[-1].end == date(2026, 6, 10)


def test_first_covering_period_in_sort_order_wins():
    early = _period(date(2026, 6, 1), date(2026, 6, 15), price=100)
    late = _period(date(2026, 6, 5), date(2026, 6, 30), price=300)

    result = build_segments([early, late], date(2026, 6, 10), date(2026, 6, 12))

    assert result.segments[0].period is early


def test_empty_range_is_rejected():
    with pytest.raises(ValueError):
        build_segments([], date(2026, 6, 10), date(2026, 6, 10))


def test_weekly_discount_applies_to_whole_stay():
    discount = apply_weekly_discount(
        base_total=1_400,
        nights=7,
        weekly_threshold_nights=7,
        weekly_discount_percent_bps=1_000,
    )

    assert discount.total == 1_260
    assert discount.applied_bps == 1_000


def test_weekly_discount_below_threshold_is_not_applied():
    discount = apply_weekly_discount(
        base_total=1_200,
        nights=6,
        weekly_threshold_nights=7,
        weekly_discount_percent_bps=1_000,
    )

    assert discount.total == 1_200
    assert discount.applied_bps is None


def test_weekly_discount_rounds_half_up():
    # 1005 * 0.85 = 854.25 -> 854 ; 1010 * 0.85 = 858.5 -> 859
    assert apply_weekly_discount(
        base_total=1_005, nights=7, weekly_threshold_nights=7, weekly_discount_percent_bps=1_500
    ).total == 854
    assert apply_weekly_discount(
        base_total=1_010, nights=7, weekly_threshold_nights=7, weekly_discount_percent_bps=1_500
    ).total == 859


def test_missing_discount_bps_leaves_total_unchanged():
    discount = apply_weekly_discount(
        base_total=2_000,
        nights=14,
        weekly_threshold_nights=7,
        weekly_discount_percent_bps=None,
    )

    assert discount.total == 2_000
    assert discount.applied_bps is None
