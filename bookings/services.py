# ==================== BOOKINGS/SERVICES.PY ====================
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied, ValidationError

from parking.models import ParkingSpace
from payments.models import Payment
from payments.services import PaymentService
from utils.exceptions import (
    BookingConflict, BookingNotFound, DependencyUnavailable, ParkingUnavailable,
    PaymentFailed, SpaceInactive, SpaceNotFound,
)

from .availability import is_available, lock_space
from .lifecycle import BookingEvent, check_guards, next_status, refund_for_cancellation, transition
from .models import Booking, BookingStatus
from .pricing import calculate_cost
from .time_range import TimeRange

logger = logging.getLogger(__name__)

# Outcomes of applying a captured payment
APPLIED = 'applied'
DUPLICATE = 'duplicate'
CONFLICT = 'conflict'
REFUNDED = 'refunded'

UPDATABLE_FIELDS = ('vehicle_reg', 'vehicle_make', 'vehicle_model', 'vehicle_color', 'special_requests')


@dataclass
class VehicleDetails:
    registration: str
    make: str = ''
    model: str = ''
    color: str = ''

    def __post_init__(self):
        self.registration = self.registration.strip().upper()


@dataclass
class BookingResult:
    booking: Booking
    payment: Optional[Payment] = None
    requires_action: bool = False
    next_action: Any = None
    additional_cost: Optional[Decimal] = None


@dataclass
class CancellationResult:
    booking: Booking
    refund_amount: Decimal = Decimal('0.00')
    policy: str = ''
    refunds: list = field(default_factory=list)


def notify(booking, template_name, **extra):
    """Queue a booking email once the surrounding transaction commits"""
    from .tasks import send_booking_notification

    def enqueue():
        try:
            send_booking_notification.delay(booking.id, template_name, extra or None)
        except Exception as e:
            logger.error(f"Could not queue {template_name} for booking {booking.id}: {str(e)}")

    transaction.on_commit(enqueue)


class BookingService:
    """Booking lifecycle operations. Status changes go through bookings.lifecycle."""

    def __init__(self, gateway=None, payments=None):
        self.payments = payments or PaymentService(gateway)

    # ---- lookups ----
    # Row locks are always taken space, then booking, then payment.

    @staticmethod
    def _locked_booking(booking_id):
        try:
            return Booking.objects.select_for_update().select_related('parking_space').get(pk=booking_id)
        except Booking.DoesNotExist:
            raise BookingNotFound()

    @staticmethod
    def _locked_payment(payment_id):
        return Payment.objects.select_for_update().get(pk=payment_id)

    def _lock_booking_with_space(self, booking_id):
        space_id = Booking.objects.filter(pk=booking_id).values_list('parking_space_id', flat=True).first()
        if space_id is None:
            raise BookingNotFound()
        lock_space(space_id)
        return self._locked_booking(booking_id)

    def _lock_payment_with_booking(self, payment_id):
        booking_id = Payment.objects.filter(pk=payment_id).values_list('booking_id', flat=True).get()
        booking = self._lock_booking_with_space(booking_id)
        return booking, self._locked_payment(payment_id)

    # ---- create ----

    def create_booking(self, user, space_id, time_range, vehicle, payment_method_id,
                       special_requests='', now=None):
        now = now or timezone.now()
        if time_range.start < now:
            raise ValidationError({'start_time': 'Start time cannot be in the past'})

        with transaction.atomic():
            try:
                space = lock_space(space_id)
            except ParkingSpace.DoesNotExist:
                raise SpaceNotFound()

            if not space.is_active:
                raise SpaceInactive()
            if space.owner_id == user.id:
                raise PermissionDenied('You cannot book your own parking space', code='cannot_book_own_space')
            if not is_available(space.id, time_range):
                raise ParkingUnavailable()

            booking = Booking(
                driver=user,
                parking_space=space,
                start_time=time_range.start,
                end_time=time_range.end,
                total_cost=calculate_cost(time_range.start, time_range.end, space.hourly_price),
                vehicle_reg=vehicle.registration,
                vehicle_make=vehicle.make,
                vehicle_model=vehicle.model,
                vehicle_color=vehicle.color,
                special_requests=special_requests,
            )
            transition(booking, BookingEvent.CREATE, actor=user, now=now)
            booking.save()

        logger.info(f"Booking {booking.id} created for space {space.id} by user {user.id}: {booking.total_cost}")

        try:
            customer_ref = self.payments.ensure_customer(user)
            payment = self.payments.open_payment(booking, booking.total_cost)
        except (PaymentFailed, DependencyUnavailable):
            self._abandon(booking)
            raise

        result = self._charge(payment, payment_method_id, customer_ref)
        booking.refresh_from_db()
        payment.refresh_from_db()
        return BookingResult(
            booking=booking,
            payment=payment,
            requires_action=result['requires_action'],
            next_action=result.get('next_action'),
        )

    def _abandon(self, booking):
        """Cancel a pending booking whose payment could not be opened"""
        with transaction.atomic():
            booking = self._locked_booking(booking.id)
            if booking.status == BookingStatus.PENDING:
                transition(booking, BookingEvent.PAYMENT_FAILED)
                booking.save(update_fields=['status', 'updated_at'])

    def _charge(self, payment, payment_method_id, customer_ref):
        try:
            result = self.payments.charge(payment, payment_method_id, customer_ref)
        except PaymentFailed as e:
            self.apply_payment_failed(payment, reason=str(e.detail))
            raise
        except DependencyUnavailable:
            logger.warning(f"Payment {payment.id} left processing, gateway unavailable during charge")
            raise

        status = result['status']
        if status == 'succeeded':
            if self.apply_payment_succeeded(payment, result['id'], result.get('method')) == CONFLICT:
                raise BookingConflict()
        elif status == 'failed':
            reason = result.get('error') or 'Payment was declined'
            self.apply_payment_failed(payment, reason=reason)
            raise PaymentFailed(reason)
        elif result.get('id'):
            Payment.objects.filter(pk=payment.pk).update(razorpay_payment_id=result['id'])
        return result

    # ---- payment outcomes ----

    def apply_payment_succeeded(self, payment, gateway_payment_id, method=None):
        """Apply a captured payment to its booking.

        Safe to call repeatedly: only the first call for a payment changes
        anything or queues email.
        """
        with transaction.atomic():
            booking, payment = self._lock_payment_with_booking(payment.pk)
            if not payment.mark_succeeded(gateway_payment_id, method):
                logger.info(f"Payment {payment.id} already succeeded, nothing to apply")
                return DUPLICATE

            if payment.kind == Payment.KIND_EXTENSION:
                return self._apply_extension(booking, payment)
            return self._confirm(booking, payment)

    def _confirm(self, booking, payment):
        if booking.status != BookingStatus.PENDING:
            # Cancelled while the charge was in flight
            logger.warning(f"Payment {payment.id} captured for {booking.status} booking {booking.id}, refunding")
            self.payments.refund(payment, payment.refundable_amount, 'booking_cancelled')
            return REFUNDED

        if not is_available(booking.parking_space_id, booking.time_range, exclude_booking_id=booking.id):
            logger.warning(f"Booking {booking.id} lost its slot before confirmation, cancelling and refunding")
            transition(booking, BookingEvent.CANCEL, actor=booking.driver)
            booking.save(update_fields=['status', 'updated_at'])
            self.payments.refund(payment, payment.refundable_amount, 'booking_conflict')
            return CONFLICT

        transition(booking, BookingEvent.PAYMENT_SUCCEEDED)
        booking.save(update_fields=['status', 'updated_at'])
        notify(booking, 'booking_confirmed')
        notify(booking, 'new_space_booking')
        return APPLIED

    def _apply_extension(self, booking, payment):
        extendable = booking.status in (BookingStatus.CONFIRMED, BookingStatus.ACTIVE)
        if not extendable or payment.extension_end <= booking.end_time:
            logger.warning(f"Extension payment {payment.id} no longer applies to booking {booking.id}, refunding")
            self.payments.refund(payment, payment.refundable_amount, 'booking_cancelled')
            return REFUNDED

        increment = TimeRange(booking.end_time, payment.extension_end)
        if not is_available(booking.parking_space_id, increment, exclude_booking_id=booking.id):
            self.payments.refund(payment, payment.refundable_amount, 'booking_conflict')
            return CONFLICT

        # Only the part past the current end is charged; another extension may have covered the rest
        cost = calculate_cost(booking.end_time, payment.extension_end, booking.parking_space.hourly_price)
        transition(booking, BookingEvent.EXTEND, actor=booking.driver)
        booking.end_time = payment.extension_end
        booking.total_cost += cost
        booking.save()

        overpaid = payment.amount - cost
        if overpaid > 0:
            logger.info(f"Extension payment {payment.id} overlapped an earlier extension, refunding {overpaid}")
            self.payments.refund(payment, overpaid, 'duplicate')
        notify(booking, 'booking_extended')
        return APPLIED

    def apply_payment_failed(self, payment, reason=''):
        with transaction.atomic():
            booking, payment = self._lock_payment_with_booking(payment.pk)
            if not payment.mark_failed(reason):
                return False
            logger.info(f"Payment {payment.id} failed: {reason}")

            if payment.kind != Payment.KIND_BOOKING:
                return True

            if booking.status == BookingStatus.PENDING:
                transition(booking, BookingEvent.PAYMENT_FAILED)
                booking.save(update_fields=['status', 'updated_at'])
                notify(booking, 'payment_failed')
        return True

    # ---- driver operations ----

    def update_booking(self, booking_id, requester, changes, now=None):
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError({name: 'This field cannot be changed' for name in sorted(unknown)})

        with transaction.atomic():
            booking = self._locked_booking(booking_id)
            transition(booking, BookingEvent.UPDATE, actor=requester, now=now)
            for name, value in changes.items():
                if name == 'vehicle_reg':
                    value = value.strip().upper()
                setattr(booking, name, value)
            booking.save()
        return booking

    def extend_booking(self, booking_id, requester, new_end, payment_method_id, now=None):
        now = now or timezone.now()
        with transaction.atomic():
            booking = self._lock_booking_with_space(booking_id)
            next_status(booking.status, BookingEvent.EXTEND)
            check_guards(booking, BookingEvent.EXTEND, actor=requester, now=now)

            if new_end <= booking.end_time:
                raise ValidationError({'end_time': 'New end time must be after current end time'})

            increment = TimeRange(booking.end_time, new_end)
            if not is_available(booking.parking_space_id, increment, exclude_booking_id=booking.id):
                raise BookingConflict('Extension conflicts with existing bookings')

            additional_cost = calculate_cost(booking.end_time, new_end, booking.parking_space.hourly_price)

        customer_ref = self.payments.ensure_customer(requester)
        payment = self.payments.open_payment(
            booking, additional_cost, kind=Payment.KIND_EXTENSION, extension_end=new_end
        )
        logger.info(f"Extension of booking {booking.id} to {new_end.isoformat()} opened: {additional_cost}")

        result = self._charge(payment, payment_method_id, customer_ref)
        booking.refresh_from_db()
        payment.refresh_from_db()
        return BookingResult(
            booking=booking,
            payment=payment,
            requires_action=result['requires_action'],
            next_action=result.get('next_action'),
            additional_cost=additional_cost,
        )

    def cancel_booking(self, booking_id, requester, now=None):
        now = now or timezone.now()
        with transaction.atomic():
            booking = self._lock_booking_with_space(booking_id)
            was_pending = booking.status == BookingStatus.PENDING
            transition(booking, BookingEvent.CANCEL, actor=requester, now=now)
            booking.save(update_fields=['status', 'updated_at'])

            booking.payments.filter(status__in=Payment.OPEN_STATUSES).update(status=Payment.STATUS_CANCELLED)

            if was_pending:
                target, policy = Decimal('0.00'), 'No payment taken'
            else:
                target, policy = refund_for_cancellation(booking, now)

            refunds = []
            remaining = target
            succeeded = booking.payments.filter(status=Payment.STATUS_SUCCEEDED).order_by('created_at')
            for payment in succeeded:
                if remaining <= 0:
                    break
                part = min(remaining, payment.refundable_amount)
                refunds.append(self.payments.refund(payment, part, 'booking_cancelled'))
                remaining -= part

            refund_amount = target - remaining
            notify(booking, 'booking_cancelled', refund_amount=str(refund_amount))

        logger.info(f"Booking {booking.id} cancelled by user {requester.id}, refund {refund_amount} ({policy})")
        return CancellationResult(booking=booking, refund_amount=refund_amount, policy=policy, refunds=refunds)

    def start_session(self, booking_id, requester, now=None):
        with transaction.atomic():
            booking = self._locked_booking(booking_id)
            transition(booking, BookingEvent.START, actor=requester, now=now)
            booking.save(update_fields=['status', 'updated_at'])
        return booking

    def stop_session(self, booking_id, requester, now=None):
        with transaction.atomic():
            booking = self._locked_booking(booking_id)
            transition(booking, BookingEvent.STOP, actor=requester, now=now)
            booking.save(update_fields=['status', 'updated_at'])
        return booking
