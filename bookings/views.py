# ============================= BOOKINGS/VIEWS.PY =============================
from django.db.models import Q
from rest_framework import viewsets, mixins, status, permissions, filters
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from payments.services import get_payment_gateway
from utils.permissions import CanViewBooking, IsHostOrAdmin
from .filters import BookingFilter
from .models import Booking
from .serializers import (
    BookingCreateSerializer,
    BookingUpdateSerializer,
    BookingExtendSerializer,
    BookingListSerializer,
    BookingDetailSerializer,
    BookingPaymentSerializer,
)
from .services import BookingService


def _payment_result(result, request):
    data = {
        'booking': BookingDetailSerializer(result.booking, context={'request': request}).data,
        'payment': BookingPaymentSerializer(result.payment).data if result.payment else None,
        'requires_action': result.requires_action,
        'next_action': result.next_action,
    }
    if result.additional_cost is not None:
        data['additional_cost'] = result.additional_cost
    return data


class BookingViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """Booking creation, management, and parking sessions"""

    permission_classes = [permissions.IsAuthenticated, CanViewBooking]
    filter_backends = [
        DjangoFilterBackend,
        filters.OrderingFilter
    ]
    filterset_class = BookingFilter
    ordering_fields = ['created_at', 'start_time', 'total_cost']
    ordering = ['-created_at']

    def get_serializer_class(self):
        if self.action == 'create':
            return BookingCreateSerializer
        elif self.action == 'partial_update':
            return BookingUpdateSerializer
        elif self.action == 'extend':
            return BookingExtendSerializer
        elif self.action in ['list', 'space_bookings']:
            return BookingListSerializer
        return BookingDetailSerializer

    def get_queryset(self):
        user = self.request.user
        queryset = Booking.objects.select_related('parking_space', 'parking_space__owner', 'driver')
        if self.action == 'list':
            # Drivers see their own bookings
            return queryset.filter(driver=user)
        if self.action == 'space_bookings':
            return queryset.filter(parking_space__owner=user)
        if user.is_admin:
            return queryset
        return queryset.filter(Q(driver=user) | Q(parking_space__owner=user))

    def get_service(self):
        return BookingService(gateway=get_payment_gateway())

    def create(self, request):
        """Create a booking and charge the saved payment method

        Body: { parking_space, start_time, end_time, vehicle_reg, vehicle_make?, vehicle_model?,
                vehicle_color?, special_requests?, payment_method_id }
        """
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = self.get_service().create_booking(
            request.user,
            serializer.validated_data['parking_space'],
            serializer.time_range,
            serializer.vehicle,
            serializer.validated_data['payment_method_id'],
            special_requests=serializer.validated_data['special_requests'],
        )
        return Response(_payment_result(result, request), status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        booking = self.get_object()
        serializer = self.get_serializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        booking = self.get_service().update_booking(booking.id, request.user, serializer.validated_data)
        return Response(BookingDetailSerializer(booking, context={'request': request}).data)

    @action(detail=True, methods=['post'])
    def extend(self, request, pk=None):
        """Extend a confirmed or active booking

        Body: { "end_time": "...", "payment_method_id": "..." }
        """
        booking = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = self.get_service().extend_booking(
            booking.id,
            request.user,
            serializer.validated_data['end_time'],
            serializer.validated_data['payment_method_id'],
        )
        return Response(_payment_result(result, request))

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        """Cancel a booking"""
        booking = self.get_object()
        result = self.get_service().cancel_booking(booking.id, request.user)
        return Response({
            'message': 'Booking cancelled successfully',
            'booking': BookingDetailSerializer(result.booking, context={'request': request}).data,
            'refund_amount': result.refund_amount,
            'refund_policy': result.policy,
        })

    @action(detail=True, methods=['post'])
    def start(self, request, pk=None):
        """Start parking session"""
        booking = self.get_object()
        booking = self.get_service().start_session(booking.id, request.user)
        return Response({
            'message': 'Parking session started',
            'booking': BookingDetailSerializer(booking, context={'request': request}).data,
        })

    @action(detail=True, methods=['post'])
    def stop(self, request, pk=None):
        """End parking session"""
        booking = self.get_object()
        booking = self.get_service().stop_session(booking.id, request.user)
        return Response({
            'message': 'Parking session completed',
            'booking': BookingDetailSerializer(booking, context={'request': request}).data,
        })

    @action(detail=False, methods=['get'], permission_classes=[IsHostOrAdmin])
    def space_bookings(self, request):
        """Get all bookings for the current host's parking spaces"""
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        if page is not None:
            serializer = self.get_serializer(page, many=True)
            return self.get_paginated_response(serializer.data)
        serializer = self.get_serializer(queryset, many=True)
        return Response(serializer.data)
