# ==================== PAYMENTS/SERIALIZERS.PY ====================
from decimal import Decimal

from rest_framework import serializers
from .models import Payment, Refund, PaymentDispute


class RefundSerializer(serializers.ModelSerializer):
    class Meta:
        model = Refund
        fields = ['id', 'amount', 'reason', 'status', 'attempts', 'created_at', 'completed_at']


class PaymentSerializer(serializers.ModelSerializer):
    booking_id = serializers.IntegerField(source='booking.id', read_only=True)
    parking_space = serializers.CharField(source='booking.parking_space.title', read_only=True)
    refunds = RefundSerializer(many=True, read_only=True)

    class Meta:
        model = Payment
        fields = [
            'id', 'booking_id', 'parking_space', 'kind', 'amount', 'currency', 'status',
            'method_brand', 'method_last4', 'refund_amount', 'refunds',
            'razorpay_order_id', 'created_at', 'succeeded_at'
        ]
        read_only_fields = fields


class PaymentVerifySerializer(serializers.Serializer):
    razorpay_order_id = serializers.CharField()
    razorpay_payment_id = serializers.CharField()
    razorpay_signature = serializers.CharField()


class AdminRefundSerializer(serializers.Serializer):
    payment_id = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'), required=False)
    reason = serializers.ChoiceField(choices=Refund.REASON_CHOICES, default='requested_by_customer')


class PaymentDisputeSerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentDispute
        fields = ['id', 'payment', 'razorpay_dispute_id', 'amount', 'reason_code', 'status', 'resolved', 'created_at']


class PaymentMethodSerializer(serializers.Serializer):
    id = serializers.CharField(read_only=True)
    method = serializers.CharField(read_only=True)
    brand = serializers.CharField(read_only=True)
    last4 = serializers.CharField(read_only=True)
    expiry_month = serializers.IntegerField(read_only=True, allow_null=True)
    expiry_year = serializers.IntegerField(read_only=True, allow_null=True)
    created_at = serializers.IntegerField(read_only=True, allow_null=True)
