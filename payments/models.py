# ==================== PAYMENTS/MODELS.PY ====================
from decimal import Decimal
import logging

from django.db import models
from django.db.models import F, Q
from django.utils import timezone

logger = logging.getLogger(__name__)


class Payment(models.Model):
    """One charge against the payment gateway for a booking or a booking extension"""
    STATUS_PENDING = 'pending'
    STATUS_PROCESSING = 'processing'
    STATUS_SUCCEEDED = 'succeeded'
    STATUS_FAILED = 'failed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_REFUNDED = 'refunded'
    STATUS_CHOICES = (
        (STATUS_PENDING, 'Pending'),
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_SUCCEEDED, 'Succeeded'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_REFUNDED, 'Refunded'),
    )
    OPEN_STATUSES = (STATUS_PENDING, STATUS_PROCESSING)

    KIND_BOOKING = 'booking'
    KIND_EXTENSION = 'extension'
    KIND_CHOICES = (
        (KIND_BOOKING, 'Booking'),
        (KIND_EXTENSION, 'Extension'),
    )

    booking = models.ForeignKey(
        'bookings.Booking',
        on_delete=models.PROTECT,
        related_name='payments'
    )
    kind = models.CharField(max_length=20, choices=KIND_CHOICES, default=KIND_BOOKING)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default='GBP')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)

    # Razorpay; the order id is the external transaction identifier, known before the charge
    razorpay_order_id = models.CharField(max_length=100, null=True, blank=True, unique=True, db_index=True)
    razorpay_payment_id = models.CharField(max_length=100, null=True, blank=True, unique=True, db_index=True)

    refund_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    # Payment method descriptor
    method_brand = models.CharField(max_length=30, blank=True)
    method_last4 = models.CharField(max_length=4, blank=True)

    # Extension payments carry the end time they pay for
    extension_end = models.DateTimeField(null=True, blank=True)

    gateway_response = models.JSONField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    succeeded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['booking', 'kind']),
            models.Index(fields=['status', 'created_at']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['booking'],
                condition=Q(kind='booking'),
                name='one_booking_payment_per_booking'
            ),
            models.CheckConstraint(
                condition=Q(refund_amount__isnull=True) | Q(refund_amount__lte=F('amount')),
                name='refund_not_above_amount'
            ),
        ]

    def __str__(self):
        return f"Payment {self.id} - {self.booking_id} - {self.status}"

    @property
    def refundable_amount(self):
        return self.amount - (self.refund_amount or Decimal('0'))

    def mark_succeeded(self, razorpay_payment_id, method=None):
        """Returns False when the payment had already succeeded (redelivery)."""
        if self.status in (self.STATUS_SUCCEEDED, self.STATUS_REFUNDED):
            return False
        self.status = self.STATUS_SUCCEEDED
        self.razorpay_payment_id = razorpay_payment_id or self.razorpay_payment_id
        if method:
            self.method_brand = method.get('brand') or ''
            self.method_last4 = method.get('last4') or ''
        self.succeeded_at = timezone.now()
        self.save()
        return True

    def mark_failed(self, reason=''):
        if self.status not in self.OPEN_STATUSES:
            return False
        self.status = self.STATUS_FAILED
        self.gateway_response = {**(self.gateway_response or {}), 'error': reason}
        self.save()
        return True

    def record_refund(self, amount):
        """A payment stays succeeded until its whole amount has been refunded."""
        self.refund_amount = (self.refund_amount or Decimal('0')) + Decimal(amount)
        if self.refund_amount >= self.amount:
            self.status = self.STATUS_REFUNDED
        self.save()


class Refund(models.Model):
    """One refund attempt against a succeeded payment"""
    REASON_CHOICES = (
        ('booking_cancelled', 'Booking Cancelled'),
        ('requested_by_customer', 'Customer Request'),
        ('duplicate', 'Duplicate'),
        ('fraudulent', 'Fraudulent'),
        ('booking_conflict', 'Space Already Taken'),
    )

    STATUS_INITIATED = 'initiated'
    STATUS_PROCESSING = 'processing'
    STATUS_COMPLETED = 'completed'
    STATUS_FAILED = 'failed'
    REFUND_STATUS_CHOICES = (
        (STATUS_INITIATED, 'Initiated'),
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_FAILED, 'Failed'),
    )

    payment = models.ForeignKey(Payment, on_delete=models.PROTECT, related_name='refunds')
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    reason = models.CharField(max_length=50, choices=REASON_CHOICES)
    status = models.CharField(max_length=20, choices=REFUND_STATUS_CHOICES, default=STATUS_INITIATED)

    # Gateway
    razorpay_refund_id = models.CharField(max_length=100, null=True, blank=True, unique=True)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)

    refunded_by = models.ForeignKey(
        'users.CustomUser',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='refunds_issued'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status']),
        ]

    def __str__(self):
        return f"Refund for Payment {self.payment_id} - {self.amount} - {self.status}"


class PaymentDispute(models.Model):
    """Chargeback opened at the gateway, kept for manual follow-up"""
    payment = models.ForeignKey(
        Payment,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='disputes'
    )
    razorpay_dispute_id = models.CharField(max_length=100, unique=True)
    razorpay_payment_id = models.CharField(max_length=100, blank=True)
    amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    reason_code = models.CharField(max_length=100, blank=True)
    status = models.CharField(max_length=30, default='open')
    payload = models.JSONField(default=dict)
    resolved = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Dispute {self.razorpay_dispute_id} - {self.status}"
