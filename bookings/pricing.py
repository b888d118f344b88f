"""Booking cost calculation.

Duration is billed in quarter-hour steps, always rounded up, and the money
amount is rounded half-up to the cent. Extensions are priced by calling
`calculate_cost` over the added range only, never as a difference of totals.
"""
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from .time_range import TimeRange

BILLING_STEP = timedelta(minutes=15)
BILLING_STEP_HOURS = Decimal('0.25')
CENT = Decimal('0.01')


def billable_hours(start, end) -> Decimal:
    """Duration of [start, end) in hours, rounded up to the next quarter hour"""
    duration = TimeRange(start, end).duration
    steps = -(-duration // BILLING_STEP)  # ceiling division on timedeltas
    return steps * BILLING_STEP_HOURS


def calculate_cost(start, end, hourly_rate) -> Decimal:
    rate = Decimal(str(hourly_rate))
    if rate < 0:
        raise ValueError('Hourly rate cannot be negative')
    cost = billable_hours(start, end) * rate
    return cost.quantize(CENT, rounding=ROUND_HALF_UP)
