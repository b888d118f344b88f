# ==================== PAYMENTS/WEBHOOKS.PY ====================
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST
from django.db import transaction
from django.utils import timezone
import json
import logging

from bookings.models import Booking
from utils.exceptions import DependencyUnavailable, PaymentRecordNotReady, SignatureInvalid
from .models import Payment, PaymentDispute, Refund
from .services import RazorpayService, from_minor_units, get_payment_gateway

logger = logging.getLogger(__name__)

MALFORMED_BODY = 'Notification body is malformed.'


@csrf_exempt
@require_POST
def razorpay_webhook(request):
    """Handle Razorpay payment webhooks"""
    signature = request.META.get('HTTP_X_RAZORPAY_SIGNATURE')
    try:
        outcome = reconcile_payment_event(request.body, signature)
    except SignatureInvalid as e:
        return JsonResponse({'status': 'invalid_signature', 'message': str(e.detail)}, status=400)
    except DependencyUnavailable as e:
        # Razorpay redelivers on any non-2xx response
        return JsonResponse({'status': 'retry', 'code': e.default_code}, status=503)
    return JsonResponse({'status': 'success', 'outcome': outcome})


def reconcile_payment_event(raw_body, signature, gateway=None):
    """Verify and apply one payment processor notification; returns the outcome."""
    from bookings.services import BookingService

    gateway = gateway or get_payment_gateway()
    try:
        body = raw_body.decode('utf-8') if isinstance(raw_body, bytes) else raw_body
    except UnicodeDecodeError:
        logger.warning("Webhook body is not valid UTF-8")
        raise SignatureInvalid(MALFORMED_BODY)

    if not gateway.verify_webhook_signature(body, signature):
        logger.warning(f"Invalid webhook signature: {signature}")
        raise SignatureInvalid()

    try:
        webhook_data = json.loads(body)
        event = webhook_data.get('event')
        payload = webhook_data.get('payload') or {}
        if not isinstance(payload, dict):
            raise ValueError('payload is not an object')
    except (ValueError, AttributeError):
        logger.warning("Malformed webhook body")
        raise SignatureInvalid(MALFORMED_BODY)

    handler = EVENT_HANDLERS.get(event)
    if handler is None:
        logger.info(f"Ignoring webhook event: {event}")
        return 'ignored'

    outcome = handler(payload, BookingService(gateway=gateway))
    logger.info(f"Webhook {event} handled: {outcome}")
    return outcome


def _entity(payload, name):
    wrapper = payload.get(name) or {}
    entity = (wrapper.get('entity') or {}) if isinstance(wrapper, dict) else None
    if not isinstance(entity, dict):
        logger.warning(f"Malformed {name} entity in webhook")
        raise SignatureInvalid(MALFORMED_BODY)
    return entity


def _notes(entity):
    # Razorpay sends an empty list when there are no notes
    notes = entity.get('notes')
    return notes if isinstance(notes, dict) else {}


def _find_payment(entity):
    order_id = entity.get('order_id')
    payment = Payment.objects.filter(razorpay_order_id=order_id).first() if order_id else None
    if payment is not None:
        return payment

    booking_id = str(_notes(entity).get('booking_id', ''))
    if booking_id.isdigit() and Booking.objects.filter(pk=int(booking_id)).exists():
        logger.warning(f"Payment for order {order_id} (booking {booking_id}) not recorded yet, deferring")
        raise PaymentRecordNotReady()

    logger.warning(f"Payment not found for order: {order_id}")
    return None


def handle_payment_captured(payload, service):
    payment_data = _entity(payload, 'payment')
    payment = _find_payment(payment_data)
    if payment is None:
        return 'ignored'
    return service.apply_payment_succeeded(
        payment,
        payment_data.get('id'),
        RazorpayService.describe_method(payment_data),
    )


def handle_payment_failed(payload, service):
    payment_data = _entity(payload, 'payment')
    payment = _find_payment(payment_data)
    if payment is None:
        return 'ignored'
    error_description = payment_data.get('error_description') or 'Unknown error'
    if service.apply_payment_failed(payment, reason=error_description):
        logger.warning(f"Payment failed for order {payment.razorpay_order_id}: {error_description}")
        return 'applied'
    return 'duplicate'


def handle_dispute_created(payload, service):
    """Record the chargeback; the booking is left as it is."""
    dispute_data = _entity(payload, 'dispute')
    dispute_id = dispute_data.get('id')
    if not dispute_id:
        logger.warning("Dispute notification without a dispute id")
        raise SignatureInvalid(MALFORMED_BODY)

    payment_id = dispute_data.get('payment_id') or ''
    dispute, created = PaymentDispute.objects.get_or_create(
        razorpay_dispute_id=dispute_id,
        defaults={
            'payment': Payment.objects.filter(razorpay_payment_id=payment_id).first() if payment_id else None,
            'razorpay_payment_id': payment_id,
            'amount': from_minor_units(dispute_data.get('amount')),
            'reason_code': dispute_data.get('reason_code') or '',
            'status': dispute_data.get('status') or 'open',
            'payload': dispute_data,
        }
    )
    if not created:
        return 'duplicate'
    logger.warning(f"Dispute {dispute.razorpay_dispute_id} opened for payment {payment_id}")
    return 'recorded'


def handle_refund_event(payload, service):
    refund_data = _entity(payload, 'refund')
    refund_id = refund_data.get('id')
    status = refund_data.get('status')

    with transaction.atomic():
        refund = Refund.objects.select_for_update().filter(razorpay_refund_id=refund_id).first()
        if refund is None:
            local_id = str(_notes(refund_data).get('refund_id', ''))
            if local_id.isdigit():
                refund = Refund.objects.select_for_update().filter(pk=int(local_id)).first()
        if refund is None:
            logger.warning(f"Refund not found: {refund_id}")
            return 'ignored'

        new_status = Refund.STATUS_COMPLETED if status == 'processed' else Refund.STATUS_FAILED
        if refund.status == new_status:
            return 'duplicate'

        refund.razorpay_refund_id = refund_id
        refund.status = new_status
        if new_status == Refund.STATUS_COMPLETED:
            refund.completed_at = timezone.now()
        else:
            refund.last_error = refund_data.get('error_description') or 'Refund failed at gateway'
        refund.save()

    logger.info(f"Refund processed: {refund_id} - Status: {status}")
    return 'applied'


EVENT_HANDLERS = {
    'payment.captured': handle_payment_captured,
    'payment.failed': handle_payment_failed,
    'payment.dispute.created': handle_dispute_created,
    'refund.processed': handle_refund_event,
    'refund.failed': handle_refund_event,
}
