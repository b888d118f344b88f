# ==================== PAYMENTS/SERVICES.PY ====================
import razorpay
import requests
import logging
from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone
from decimal import Decimal
from rest_framework.exceptions import PermissionDenied, ValidationError

from utils.exceptions import (
    DependencyUnavailable, InvalidTransition, PaymentFailed, PaymentMethodNotFound, PaymentNotFound,
)
from .models import Payment, Refund

logger = logging.getLogger(__name__)

# Razorpay payment status -> local outcome
CHARGE_OUTCOMES = {
    'captured': 'succeeded',
    'authorized': 'processing',
    'created': 'requires_action',
    'failed': 'failed',
}

GATEWAY_ERRORS = (razorpay.errors.ServerError, razorpay.errors.GatewayError, requests.exceptions.RequestException)


def to_minor_units(amount):
    return int((Decimal(amount) * 100).quantize(Decimal('1')))


def from_minor_units(amount):
    return (Decimal(amount or 0) / 100).quantize(Decimal('0.01'))


class RazorpayService:
    """Razorpay payment gateway integration"""

    def __init__(self, client=None):
        self.client = client or razorpay.Client(
            auth=(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)
        )

    def _call(self, description, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except razorpay.errors.BadRequestError as e:
            logger.error(f"Razorpay rejected {description}: {str(e)}")
            raise PaymentFailed(str(e) or 'Payment was declined')
        except GATEWAY_ERRORS as e:
            logger.error(f"Razorpay unavailable during {description}: {str(e)}")
            raise DependencyUnavailable()

    def create_customer(self, user):
        customer = self._call('customer creation', self.client.customer.create, {
            'name': user.get_full_name() or user.username,
            'email': user.email,
            'fail_existing': '0',
            'notes': {'user_id': str(user.id), 'role': user.role},
        })
        logger.info(f"Razorpay customer created: {customer['id']} for user {user.id}")
        return customer['id']

    def create_order(self, amount, currency, receipt, notes=None):
        """Create Razorpay order"""
        order = self._call('order creation', self.client.order.create, {
            'amount': to_minor_units(amount),
            'currency': currency,
            'receipt': receipt,
            'payment_capture': 1,
            'notes': notes or {},
        })
        logger.info(f"Razorpay order created: {order['id']} ({receipt})")
        return order

    def charge(self, order_id, amount, currency, method_ref, customer_ref, metadata=None):
        """Charge a saved method (token) against an existing order.

        Returns {'id', 'status', 'requires_action', 'next_action', 'method'} where
        status is one of succeeded / processing / requires_action / failed.
        """
        response = self._call('charge', self.client.payment.createRecurring, {
            'order_id': order_id,
            'amount': to_minor_units(amount),
            'currency': currency,
            'customer_id': customer_ref,
            'token': method_ref,
            'recurring': '1',
            'notes': metadata or {},
        })
        payment_id = response.get('razorpay_payment_id')
        if not payment_id:
            # Gateway wants the customer to complete an action (e.g. 3-D Secure)
            return {
                'id': None,
                'status': 'requires_action',
                'requires_action': True,
                'next_action': response.get('next'),
                'method': None,
            }

        details = self.fetch_payment(payment_id)
        status = CHARGE_OUTCOMES.get(details.get('status'), 'processing')
        logger.info(f"Razorpay charge {payment_id} for order {order_id}: {details.get('status')}")
        return {
            'id': payment_id,
            'status': status,
            'requires_action': status == 'requires_action',
            'next_action': None,
            'method': self.describe_method(details),
            'error': details.get('error_description'),
        }

    def fetch_payment(self, razorpay_payment_id):
        """Fetch payment details from Razorpay"""
        return self._call('payment fetch', self.client.payment.fetch, razorpay_payment_id, {'expand[]': 'card'})

    def fetch_order_payments(self, order_id):
        response = self._call('order payments fetch', self.client.order.payments, order_id)
        return response.get('items', [])

    def refund(self, razorpay_payment_id, amount, reason, notes=None):
        """Create refund for a payment"""
        refund = self._call('refund', self.client.payment.refund, razorpay_payment_id, {
            'amount': to_minor_units(amount),
            'notes': {'reason': reason, **(notes or {})},
        })
        logger.info(f"Refund created: {refund['id']} for payment {razorpay_payment_id}")
        return refund

    def create_setup_order(self, customer_ref, currency):
        """Order the customer authorises at checkout to save a card as a recurring token"""
        order = self._call('setup order creation', self.client.order.create, {
            'amount': to_minor_units(settings.PAYMENT_METHOD_SETUP_AMOUNT),
            'currency': currency,
            'customer_id': customer_ref,
            'method': 'card',
            'payment_capture': 1,
            'token': {
                'max_amount': to_minor_units(settings.PAYMENT_TOKEN_MAX_AMOUNT),
                'frequency': 'as_presented',
            },
            'notes': {'purpose': 'save_payment_method'},
        })
        logger.info(f"Razorpay setup order created: {order['id']} for customer {customer_ref}")
        return order

    def list_methods(self, customer_ref):
        """Saved cards (recurring tokens) of a customer"""
        response = self._call('token list', self.client.token.all, customer_ref)
        methods = []
        for token in response.get('items', []):
            card = token.get('card') or {}
            methods.append({
                'id': token['id'],
                'method': token.get('method') or 'card',
                'brand': card.get('network') or '',
                'last4': card.get('last4') or '',
                'expiry_month': card.get('expiry_month'),
                'expiry_year': card.get('expiry_year'),
                'created_at': token.get('created_at'),
            })
        return methods

    def delete_method(self, customer_ref, token_id):
        self._call('token deletion', self.client.token.delete, customer_ref, token_id)
        logger.info(f"Razorpay token {token_id} deleted for customer {customer_ref}")

    def verify_payment_signature(self, order_id, payment_id, signature):
        """Verify the signature returned by client-side checkout"""
        try:
            self.client.utility.verify_payment_signature({
                'razorpay_order_id': order_id,
                'razorpay_payment_id': payment_id,
                'razorpay_signature': signature
            })
            return True
        except razorpay.errors.SignatureVerificationError:
            logger.warning(f"Signature verification failed for payment: {payment_id}")
            return False

    def verify_webhook_signature(self, body, signature):
        if not signature or not settings.RAZORPAY_WEBHOOK_SECRET:
            return False
        try:
            self.client.utility.verify_webhook_signature(body, signature, settings.RAZORPAY_WEBHOOK_SECRET)
            return True
        except razorpay.errors.SignatureVerificationError:
            return False

    @staticmethod
    def describe_method(details):
        card = details.get('card') or {}
        return {
            'brand': card.get('network') or details.get('method') or '',
            'last4': card.get('last4') or '',
        }


def get_payment_gateway():
    return RazorpayService()


class PaymentService:
    """Payment rows, charges and refunds for bookings"""

    def __init__(self, gateway=None):
        self.gateway = gateway or get_payment_gateway()

    @property
    def currency(self):
        return settings.PAYMENT_CURRENCY

    def ensure_customer(self, user):
        if not user.razorpay_customer_id:
            user.razorpay_customer_id = self.gateway.create_customer(user)
            user.save(update_fields=['razorpay_customer_id'])
        return user.razorpay_customer_id

    # ---- saved payment methods ----

    def list_methods(self, user):
        return self.gateway.list_methods(self.ensure_customer(user))

    def setup_method(self, user):
        """Open a checkout order that saves the card it is paid with"""
        customer_ref = self.ensure_customer(user)
        order = self.gateway.create_setup_order(customer_ref, self.currency)
        return {
            'order_id': order['id'],
            'amount': from_minor_units(order.get('amount')),
            'currency': self.currency,
            'customer_id': customer_ref,
            'key_id': settings.RAZORPAY_KEY_ID,
        }

    def delete_method(self, user, method_id):
        customer_ref = self.ensure_customer(user)
        if method_id not in {method['id'] for method in self.gateway.list_methods(customer_ref)}:
            raise PaymentMethodNotFound()
        self.gateway.delete_method(customer_ref, method_id)

    def open_payment(self, booking, amount, kind=Payment.KIND_BOOKING, extension_end=None):
        """Create the gateway order and commit a Payment row carrying its id before any charge."""
        order = self.gateway.create_order(
            amount,
            self.currency,
            receipt=f'booking_{booking.id}_{kind}_{int(timezone.now().timestamp())}',
            notes={'booking_id': str(booking.id), 'kind': kind},
        )
        with transaction.atomic():
            payment = Payment.objects.create(
                booking=booking,
                kind=kind,
                amount=amount,
                currency=self.currency,
                status=Payment.STATUS_PROCESSING,
                razorpay_order_id=order['id'],
                extension_end=extension_end,
            )
        return payment

    def charge(self, payment, payment_method_id, customer_ref):
        return self.gateway.charge(
            payment.razorpay_order_id,
            payment.amount,
            payment.currency,
            payment_method_id,
            customer_ref,
            metadata={'booking_id': str(payment.booking_id), 'kind': payment.kind},
        )

    def refund(self, payment, amount, reason, refunded_by=None, best_effort=True):
        """Record a Refund row, then ask the gateway.

        With best_effort the gateway failure is recorded on the Refund and left
        for `retry_failed_refunds`; otherwise it propagates and nothing is kept.
        """
        amount = Decimal(amount)
        if amount <= 0:
            return None
        if amount > payment.refundable_amount:
            raise ValidationError({'amount': 'Refund amount cannot exceed payment amount'})

        refund = Refund.objects.create(
            payment=payment,
            amount=amount,
            reason=reason,
            refunded_by=refunded_by,
            status=Refund.STATUS_INITIATED,
        )
        try:
            self.submit_refund(refund)
        except (PaymentFailed, DependencyUnavailable):
            if not best_effort:
                raise
            logger.error(f"Refund {refund.id} for payment {payment.id} failed, queued for retry")
        payment.record_refund(amount)
        return refund

    def submit_refund(self, refund):
        refund.attempts += 1
        try:
            response = self.gateway.refund(
                refund.payment.razorpay_payment_id,
                refund.amount,
                refund.reason,
                notes={'refund_id': str(refund.id)},
            )
        except (PaymentFailed, DependencyUnavailable) as e:
            refund.status = Refund.STATUS_FAILED
            refund.last_error = str(e.detail)
            refund.save()
            raise
        refund.razorpay_refund_id = response['id']
        refund.status = Refund.STATUS_COMPLETED if response.get('status') == 'processed' else Refund.STATUS_PROCESSING
        refund.last_error = ''
        if refund.status == Refund.STATUS_COMPLETED:
            refund.completed_at = timezone.now()
        refund.save()
        return refund

    def admin_refund(self, payment_id, actor, amount=None, reason='requested_by_customer'):
        """Admin refund of a succeeded payment.

        The booking moves to refunded only once everything paid for it, across
        the booking payment and any extensions, has been given back.
        """
        from bookings.lifecycle import BookingEvent, next_status
        from bookings.models import Booking

        if not actor.is_admin:
            raise PermissionDenied('Only admins can issue refunds')

        booking_id = Payment.objects.filter(pk=payment_id).values_list('booking_id', flat=True).first()
        if booking_id is None:
            raise PaymentNotFound()

        with transaction.atomic():
            # booking before payment, the order booking writes take
            booking = Booking.objects.select_for_update().get(pk=booking_id)
            payment = Payment.objects.select_for_update().get(pk=payment_id)

            if payment.status != Payment.STATUS_SUCCEEDED:
                raise InvalidTransition('Only successful payments can be refunded', code='invalid_payment_status')

            refund_amount = Decimal(amount) if amount is not None else payment.refundable_amount
            if refund_amount > payment.refundable_amount:
                raise ValidationError({'amount': 'Refund amount cannot exceed payment amount'})

            full_refund = refund_amount >= self.outstanding_for_booking(booking)
            if full_refund:
                next_status(booking.status, BookingEvent.REFUND)

            refund = self.refund(payment, refund_amount, reason, refunded_by=actor, best_effort=False)

            if full_refund:
                booking.status = next_status(booking.status, BookingEvent.REFUND)
                booking.save(update_fields=['status', 'updated_at'])

        logger.info(f"Admin {actor.id} refunded {refund_amount} of payment {payment.id}")
        return payment, refund

    @staticmethod
    def outstanding_for_booking(booking):
        """Money taken for a booking and not yet refunded"""
        totals = booking.payments.filter(
            status__in=[Payment.STATUS_SUCCEEDED, Payment.STATUS_REFUNDED]
        ).aggregate(paid=Sum('amount'), refunded=Sum('refund_amount'))
        return (totals['paid'] or Decimal('0.00')) - (totals['refunded'] or Decimal('0.00'))

    @staticmethod
    def stats(since=None):
        """Totals over all payments, or those created after `since`"""
        payments = Payment.objects.all()
        if since is not None:
            payments = payments.filter(created_at__gte=since)

        totals = payments.aggregate(
            total_payments=Count('id'),
            successful_payments=Count('id', filter=Q(status=Payment.STATUS_SUCCEEDED)),
            failed_payments=Count('id', filter=Q(status=Payment.STATUS_FAILED)),
            refunded_payments=Count('id', filter=Q(status=Payment.STATUS_REFUNDED)),
            total_revenue=Sum('amount', filter=Q(status__in=[Payment.STATUS_SUCCEEDED, Payment.STATUS_REFUNDED])),
            total_refunded=Sum('refund_amount'),
        )
        totals['total_revenue'] = totals['total_revenue'] or Decimal('0.00')
        totals['total_refunded'] = totals['total_refunded'] or Decimal('0.00')
        totals['net_revenue'] = totals['total_revenue'] - totals['total_refunded']

        settled = totals['successful_payments'] + totals['refunded_payments']
        attempted = settled + totals['failed_payments']
        totals['success_rate'] = round(settled / attempted * 100, 2) if attempted else 0
        return totals
