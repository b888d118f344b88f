from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from bookings.pricing import billable_hours, calculate_cost

T0 = datetime(2030, 5, 1, 10, 0, tzinfo=timezone.utc)


def test_seventy_minutes_bills_an_hour_and_a_quarter():
    end = T0 + timedelta(hours=1, minutes=10)
    assert billable_hours(T0, end) == Decimal('1.25')
    assert calculate_cost(T0, end, Decimal('4.00')) == Decimal('5.00')


def test_whole_hours_are_not_rounded():
    assert calculate_cost(T0, T0 + timedelta(hours=2), Decimal('4.00')) == Decimal('8.00')


@pytest.mark.parametrize('minutes, hours', [
    (1, '0.25'),
    (15, '0.25'),
    (16, '0.50'),
    (44, '0.75'),
    (61, '1.25'),
])
def test_duration_rounds_up_to_quarter_hour(minutes, hours):
    assert billable_hours(T0, T0 + timedelta(minutes=minutes)) == Decimal(hours)


def test_even_a_second_over_starts_a_new_quarter():
    assert billable_hours(T0, T0 + timedelta(minutes=15, seconds=1)) == Decimal('0.50')


def test_cost_rounds_half_up_to_the_cent():
    # 0.25h * 0.50 = 0.125
    assert calculate_cost(T0, T0 + timedelta(minutes=15), Decimal('0.50')) == Decimal('0.13')


def test_extension_is_priced_over_the_increment_only():
    old_end = T0 + timedelta(hours=1)
    new_end = T0 + timedelta(hours=1, minutes=30)
    assert calculate_cost(old_end, new_end, Decimal('4.00')) == Decimal('2.00')


def test_negative_rate_is_rejected():
    with pytest.raises(ValueError):
        calculate_cost(T0, T0 + timedelta(hours=1), Decimal('-1'))


def test_accepts_float_rates():
    assert calculate_cost(T0, T0 + timedelta(hours=3), 2.5) == Decimal('7.50')
