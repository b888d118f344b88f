"""Booking status state machine.

Every status change of a Booking goes through `transition`. It checks the
transition table, the ownership guard and the time guards, and only then
assigns the new status; callers save. A rejected transition leaves the
booking untouched.

    pending -> confirmed -> active -> completed
    pending | confirmed -> cancelled
    confirmed | completed -> refunded
"""
import logging
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from django.db import models
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied

from utils.exceptions import InvalidTransition

from .models import BookingStatus

logger = logging.getLogger(__name__)

EARLY_START_WINDOW = timedelta(minutes=15)
FULL_REFUND_LEAD_TIME = timedelta(hours=1)
LATE_CANCELLATION_REFUND_RATE = Decimal('0.5')


class BookingEvent(models.TextChoices):
    CREATE = 'create', 'Create'
    PAYMENT_SUCCEEDED = 'payment_succeeded', 'Payment succeeded'
    PAYMENT_FAILED = 'payment_failed', 'Payment failed'
    UPDATE = 'update', 'Update details'
    EXTEND = 'extend', 'Extend'
    START = 'start', 'Start session'
    STOP = 'stop', 'Stop session'
    CANCEL = 'cancel', 'Cancel'
    REFUND = 'refund', 'Refund'


TRANSITIONS = {
    (None, BookingEvent.CREATE): BookingStatus.PENDING,
    (BookingStatus.PENDING, BookingEvent.PAYMENT_SUCCEEDED): BookingStatus.CONFIRMED,
    (BookingStatus.PENDING, BookingEvent.PAYMENT_FAILED): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingEvent.UPDATE): BookingStatus.CONFIRMED,
    (BookingStatus.CONFIRMED, BookingEvent.EXTEND): BookingStatus.CONFIRMED,
    (BookingStatus.ACTIVE, BookingEvent.EXTEND): BookingStatus.ACTIVE,
    (BookingStatus.CONFIRMED, BookingEvent.START): BookingStatus.ACTIVE,
    (BookingStatus.ACTIVE, BookingEvent.STOP): BookingStatus.COMPLETED,
    (BookingStatus.PENDING, BookingEvent.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingEvent.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingEvent.REFUND): BookingStatus.REFUNDED,
    (BookingStatus.COMPLETED, BookingEvent.REFUND): BookingStatus.REFUNDED,
}

# Events only the booking's driver may trigger
DRIVER_EVENTS = frozenset({
    BookingEvent.UPDATE,
    BookingEvent.EXTEND,
    BookingEvent.START,
    BookingEvent.STOP,
    BookingEvent.CANCEL,
})


def allowed_events(status):
    return [event for (source, event) in TRANSITIONS if source == status]


def next_status(status, event):
    """Target status for `event` from `status`, or InvalidTransition"""
    try:
        return TRANSITIONS[(status, event)]
    except KeyError:
        label = BookingStatus(status).label.lower() if status else 'new'
        raise InvalidTransition(f"Cannot {BookingEvent(event).label.lower()} a {label} booking")


def check_guards(booking, event, actor=None, now=None):
    now = now or timezone.now()

    if event in DRIVER_EVENTS and (actor is None or actor.pk != booking.driver_id):
        raise PermissionDenied(f"You can only {BookingEvent(event).label.lower()} your own bookings")

    if event == BookingEvent.UPDATE and now >= booking.start_time:
        raise InvalidTransition('Cannot update booking that has already started', code='booking_already_started')

    if event == BookingEvent.START:
        if now < booking.start_time - EARLY_START_WINDOW:
            raise InvalidTransition('Cannot start parking session more than 15 minutes early', code='too_early')
        if now > booking.end_time:
            raise InvalidTransition('Booking has expired', code='booking_expired')


def transition(booking, event, actor=None, now=None):
    """Validate and apply one lifecycle event; returns the new status. Does not save."""
    source = booking.status if booking.pk else None
    target = next_status(source, event)
    check_guards(booking, event, actor=actor, now=now)

    if target != source:
        logger.info(f"Booking {booking.pk}: {source} -> {target} ({event})")
    booking.status = target
    return target


def refund_for_cancellation(booking, now=None):
    """Full refund with at least an hour's notice, half otherwise."""
    now = now or timezone.now()
    lead_time = booking.start_time - now
    if lead_time >= FULL_REFUND_LEAD_TIME:
        return booking.total_cost, 'Full refund'
    amount = (booking.total_cost * LATE_CANCELLATION_REFUND_RATE).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    return amount, '50% refund (late cancellation)'
