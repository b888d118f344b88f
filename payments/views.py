# ==================== PAYMENTS/VIEWS.PY ====================
from rest_framework import viewsets, mixins, status, permissions, filters
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend
from django.utils import timezone
from datetime import timedelta
import logging

from bookings.services import CONFLICT, BookingService
from utils.exceptions import BookingConflict, PaymentNotFound, SignatureInvalid
from utils.permissions import IsAdminRole
from .models import Payment, PaymentDispute
from .serializers import (
    PaymentSerializer, PaymentVerifySerializer, AdminRefundSerializer, RefundSerializer, PaymentDisputeSerializer,
    PaymentMethodSerializer,
)
from .services import PaymentService, get_payment_gateway

logger = logging.getLogger(__name__)


class PaymentViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """Payment history, checkout verification, refunds and statistics"""
    serializer_class = PaymentSerializer
    permission_classes = [permissions.IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['status', 'kind', 'booking']
    ordering_fields = ['created_at', 'amount']
    ordering = ['-created_at']

    def get_queryset(self):
        queryset = Payment.objects.select_related('booking', 'booking__parking_space').prefetch_related('refunds')
        if self.request.user.is_admin:
            return queryset
        return queryset.filter(booking__driver=self.request.user)

    @action(detail=False, methods=['post'])
    def verify(self, request):
        """Verify Razorpay checkout payment

        Body: {
            "razorpay_order_id": "order_xxx",
            "razorpay_payment_id": "pay_xxx",
            "razorpay_signature": "sig_xxx"
        }
        """
        serializer = PaymentVerifySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            payment = self.get_queryset().get(razorpay_order_id=data['razorpay_order_id'])
        except Payment.DoesNotExist:
            raise PaymentNotFound()

        gateway = get_payment_gateway()
        if not gateway.verify_payment_signature(
            data['razorpay_order_id'], data['razorpay_payment_id'], data['razorpay_signature']
        ):
            raise SignatureInvalid('Payment verification failed')

        outcome = BookingService(gateway=gateway).apply_payment_succeeded(payment, data['razorpay_payment_id'])
        if outcome == CONFLICT:
            raise BookingConflict()

        payment.refresh_from_db()
        return Response({
            'message': 'Payment verified successfully',
            'booking_id': payment.booking_id,
            'status': payment.booking.status,
            'payment': PaymentSerializer(payment).data,
        })

    @action(detail=False, methods=['get'], url_path='methods')
    def payment_methods(self, request):
        """Saved cards of the current user"""
        methods = PaymentService(get_payment_gateway()).list_methods(request.user)
        return Response({'payment_methods': PaymentMethodSerializer(methods, many=True).data})

    @action(detail=False, methods=['post'], url_path='methods/setup')
    def setup_method(self, request):
        """Start saving a card: returns the checkout order the user pays to save it"""
        setup = PaymentService(get_payment_gateway()).setup_method(request.user)
        return Response({'setup': setup}, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['delete'], url_path=r'methods/(?P<method_id>token_[^/.]+)')
    def delete_method(self, request, method_id=None):
        PaymentService(get_payment_gateway()).delete_method(request.user, method_id)
        logger.info(f"User {request.user.id} removed payment method {method_id}")
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=['post'], permission_classes=[IsAdminRole])
    def refund(self, request):
        """Refund a payment (admin)

        Body: { "payment_id": 1, "amount": "2.50" (optional, default full), "reason": "..." }
        """
        serializer = AdminRefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        payment, refund = PaymentService(get_payment_gateway()).admin_refund(
            data['payment_id'],
            request.user,
            amount=data.get('amount'),
            reason=data['reason'],
        )
        payment.refresh_from_db()
        return Response({
            'message': 'Refund processed successfully',
            'payment': PaymentSerializer(payment).data,
            'refund': RefundSerializer(refund).data,
            'booking_status': payment.booking.status,
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'], permission_classes=[IsAdminRole])
    def stats(self, request):
        """Payment statistics (admin)

        Query params: days (optional, only payments created in the last N days)
        """
        days = request.query_params.get('days')
        since = None
        if days:
            try:
                since = timezone.now() - timedelta(days=int(days))
            except ValueError:
                return Response({'days': ['Must be a whole number']}, status=status.HTTP_400_BAD_REQUEST)
        return Response(PaymentService.stats(since=since))

    @action(detail=False, methods=['get'], permission_classes=[IsAdminRole])
    def disputes(self, request):
        """Chargebacks opened at Razorpay (admin)"""
        queryset = PaymentDispute.objects.select_related('payment').filter(
            resolved=request.query_params.get('resolved') == 'true'
        )
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(PaymentDisputeSerializer(page, many=True).data)
        return Response(PaymentDisputeSerializer(queryset, many=True).data)
