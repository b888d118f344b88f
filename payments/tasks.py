# ==================== PAYMENTS/TASKS.PY (CELERY TASKS) ====================
from celery import shared_task
from django.db.models import Q
from django.utils import timezone
from datetime import timedelta
import logging

from utils.exceptions import DependencyUnavailable, PaymentFailed

logger = logging.getLogger(__name__)

PROCESSING_GRACE = timedelta(minutes=15)
MAX_REFUND_ATTEMPTS = 5


@shared_task
def reconcile_processing_payments():
    """Ask Razorpay about payments stuck in processing and apply what it reports"""
    from bookings.services import BookingService
    from .models import Payment
    from .services import RazorpayService

    service = BookingService()
    stale = Payment.objects.filter(
        status=Payment.STATUS_PROCESSING,
        razorpay_order_id__isnull=False,
        created_at__lte=timezone.now() - PROCESSING_GRACE,
    )

    reconciled = 0
    for payment in stale:
        try:
            attempts = service.payments.gateway.fetch_order_payments(payment.razorpay_order_id)
        except (PaymentFailed, DependencyUnavailable) as e:
            logger.warning(f"Could not reconcile payment {payment.id}: {str(e)}")
            continue

        captured = [item for item in attempts if item.get('status') == 'captured']
        if captured:
            service.apply_payment_succeeded(payment, captured[0]['id'], RazorpayService.describe_method(captured[0]))
            reconciled += 1
        elif attempts and all(item.get('status') == 'failed' for item in attempts):
            service.apply_payment_failed(payment, reason=attempts[-1].get('error_description') or 'Payment failed')
            reconciled += 1

    logger.info(f"Reconciled {reconciled} of {len(stale)} processing payments")
    return reconciled


@shared_task
def retry_failed_refunds():
    """Re-submit refunds the gateway rejected or never answered"""
    from .models import Refund
    from .services import PaymentService

    service = PaymentService()
    pending = Refund.objects.select_related('payment').filter(
        Q(status=Refund.STATUS_FAILED) |
        Q(status=Refund.STATUS_INITIATED, created_at__lte=timezone.now() - PROCESSING_GRACE),
        attempts__lt=MAX_REFUND_ATTEMPTS,
    )

    retried = 0
    for refund in pending:
        try:
            service.submit_refund(refund)
            retried += 1
        except (PaymentFailed, DependencyUnavailable) as e:
            logger.error(f"Refund {refund.id} retry {refund.attempts} failed: {str(e)}")
            if refund.attempts >= MAX_REFUND_ATTEMPTS:
                logger.error(f"Refund {refund.id} gave up after {refund.attempts} attempts, needs manual action")

    logger.info(f"Retried {retried} refunds")
    return retried
