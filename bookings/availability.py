"""Availability checks against existing bookings.

Only bookings in a blocking status take a space. The ORM query prefilters
with the same half-open predicate that `TimeRange.overlaps` implements, and the
final decision is made by `TimeRange.overlaps` on the loaded rows.

Callers that turn a booking into a blocking one must hold the space row lock
(`lock_space`) inside a transaction and call `is_available` again at write time.
"""
import logging

from parking.models import ParkingSpace

from .models import Booking, BookingStatus
from .time_range import TimeRange

logger = logging.getLogger(__name__)

BLOCKING_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.ACTIVE)


def conflicting_bookings(space_id, time_range, exclude_booking_id=None):
    queryset = Booking.objects.filter(
        parking_space_id=space_id,
        status__in=BLOCKING_STATUSES,
        start_time__lt=time_range.end,
        end_time__gt=time_range.start,
    )
    if exclude_booking_id is not None:
        queryset = queryset.exclude(pk=exclude_booking_id)
    return queryset


def is_available(space_id, time_range, exclude_booking_id=None):
    for booking in conflicting_bookings(space_id, time_range, exclude_booking_id):
        if booking.time_range.overlaps(time_range):
            logger.info(f"Space {space_id} unavailable for {time_range}: overlaps booking {booking.id}")
            return False
    return True


def lock_space(space_id):
    """Row-lock the space for the rest of the current transaction."""
    return ParkingSpace.objects.select_for_update().get(pk=space_id)


def free_windows(space, window):
    """Gaps inside `window` not covered by blocking bookings, in order"""
    bookings = Booking.objects.filter(
        parking_space=space,
        status__in=BLOCKING_STATUSES,
        start_time__lt=window.end,
        end_time__gt=window.start,
    ).order_by('start_time')

    windows = []
    current = window.start
    for booking in bookings:
        if current < booking.start_time:
            windows.append(TimeRange(current, booking.start_time))
        current = max(current, booking.end_time)

    if current < window.end:
        windows.append(TimeRange(current, window.end))
    return windows
