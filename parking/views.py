# ============================= PARKINGSPACE VIEWS =============================
from datetime import timedelta

from django.db import transaction
from django.db.models import Count, Q, Sum
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import viewsets, status, permissions, filters, serializers
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from bookings.availability import BLOCKING_STATUSES, free_windows
from bookings.models import Booking, BookingStatus
from bookings.time_range import TimeRange
from utils.distance_calculator import DistanceCalculator
from utils.exceptions import SpaceHasBookings
from utils.permissions import IsHostOrAdmin, IsOwnerOrAdmin
from .models import ParkingSpace, ParkingSpaceImage, AvailabilitySlot
from .serializers import (
    ParkingSpaceListSerializer,
    ParkingSpaceDetailSerializer,
    ParkingSpaceCreateUpdateSerializer,
    ParkingSpaceImageSerializer,
    AvailabilitySlotSerializer,
    SpaceSearchSerializer,
)
from .filters import ParkingSpaceFilter
import logging

logger = logging.getLogger(__name__)

PUBLIC_ACTIONS = ['list', 'retrieve', 'search', 'free_windows']
OWNER_ACTIONS = ['update', 'partial_update', 'destroy', 'owner_stats', 'images', 'delete_image']
DEFAULT_WINDOW = timedelta(hours=24)


class FreeWindowQuerySerializer(serializers.Serializer):
    start_time = serializers.DateTimeField(required=False)
    end_time = serializers.DateTimeField(required=False)


class ParkingSpaceViewSet(viewsets.ModelViewSet):
    """Parking space listing, creation, and management"""

    filter_backends = [
        DjangoFilterBackend,  # For custom filters
        filters.SearchFilter,  # For search
        filters.OrderingFilter  # For sorting
    ]
    filterset_class = ParkingSpaceFilter
    search_fields = ['title', 'address', 'city', 'postcode', 'description']
    ordering_fields = ['created_at', 'hourly_price']
    ordering = ['-created_at']

    def get_queryset(self):
        queryset = ParkingSpace.objects.select_related('owner').prefetch_related('images')
        if self.action in ['list', 'search']:
            return queryset.filter(is_active=True)
        return queryset

    def get_serializer_class(self):
        if self.action in ['list', 'search', 'my_spaces']:
            return ParkingSpaceListSerializer
        elif self.action in ['create', 'update', 'partial_update']:
            return ParkingSpaceCreateUpdateSerializer
        return ParkingSpaceDetailSerializer

    def get_permissions(self):
        if self.action in PUBLIC_ACTIONS or (self.action == 'availability' and self.request.method == 'GET'):
            permission_classes = [permissions.AllowAny]
        elif self.action == 'create':
            permission_classes = [IsHostOrAdmin]
        elif self.action in OWNER_ACTIONS or self.action == 'availability':
            permission_classes = [permissions.IsAuthenticated, IsOwnerOrAdmin]
        else:
            permission_classes = [permissions.IsAuthenticated]
        return [permission() for permission in permission_classes]

    def perform_create(self, serializer):
        space = serializer.save()
        logger.info(f"Parking space {space.id} listed by user {self.request.user.id}")

    def perform_destroy(self, instance):
        """Soft delete: deactivate unless confirmed or active bookings are still ahead"""
        with transaction.atomic():
            space = ParkingSpace.objects.select_for_update().get(pk=instance.pk)
            upcoming = space.bookings.filter(status__in=BLOCKING_STATUSES, end_time__gt=timezone.now())
            if upcoming.exists():
                raise SpaceHasBookings()
            space.is_active = False
            space.save(update_fields=['is_active', 'updated_at'])
        logger.info(f"Parking space {space.id} deactivated by user {self.request.user.id}")

    @action(detail=False, methods=['get'])
    def search(self, request):
        """Search active spaces

        Query params: lat, lng, radius (km, 0.1-50, default 5), start_time, end_time,
                      plus the filters of ParkingSpaceFilter

        Example: /api/v1/parking-spaces/search/?lat=51.5074&lng=-0.1278&radius=2&has_ev=true
        """
        params = SpaceSearchSerializer(data=request.query_params)
        params.is_valid(raise_exception=True)
        query = params.validated_data

        queryset = self.filter_queryset(self.get_queryset())

        if 'start_time' in query:
            busy = Booking.objects.filter(
                status__in=BLOCKING_STATUSES,
                start_time__lt=query['end_time'],
                end_time__gt=query['start_time'],
            ).values('parking_space_id')
            queryset = queryset.exclude(id__in=busy)

        if 'lat' in query:
            queryset = queryset.filter(**DistanceCalculator.bounding_box(query['lat'], query['lng'], query['radius']))
            spaces = DistanceCalculator.within_radius(queryset, query['lat'], query['lng'], query['radius'])
        else:
            spaces = list(queryset)

        serializer = self.get_serializer(spaces, many=True)
        return Response({'count': len(spaces), 'results': serializer.data})

    @action(detail=False, methods=['get'])
    def my_spaces(self, request):
        """Get all parking spaces owned by current user"""
        spaces = ParkingSpace.objects.filter(owner=request.user).prefetch_related('images')
        serializer = self.get_serializer(spaces, many=True)
        return Response(serializer.data)

    @action(detail=True, methods=['get', 'put'])
    def availability(self, request, pk=None):
        """Weekly availability schedule; PUT replaces it

        Body (PUT): [{ "day_of_week": 1, "start_time": "08:00", "end_time": "18:00" }, ...]
        """
        space = self.get_object()
        if request.method == 'GET':
            slots = space.availability.filter(is_active=True)
            return Response(AvailabilitySlotSerializer(slots, many=True).data)

        serializer = AvailabilitySlotSerializer(data=request.data, many=True)
        serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            space.availability.all().delete()
            slots = [AvailabilitySlot(parking_space=space, **slot) for slot in serializer.validated_data]
            AvailabilitySlot.objects.bulk_create(slots)
        logger.info(f"Availability of space {space.id} replaced with {len(slots)} slots")
        return Response(AvailabilitySlotSerializer(space.availability.all(), many=True).data)

    @action(detail=True, methods=['get'])
    def free_windows(self, request, pk=None):
        """Free time windows of a space

        Query params: start_time, end_time (default: the next 24 hours)
        """
        space = self.get_object()
        params = FreeWindowQuerySerializer(data=request.query_params)
        params.is_valid(raise_exception=True)
        start = params.validated_data.get('start_time') or timezone.now()
        end = params.validated_data.get('end_time') or start + DEFAULT_WINDOW
        try:
            window = TimeRange(start, end)
        except ValueError as e:
            raise serializers.ValidationError({'end_time': str(e)})

        return Response([
            {'start': gap.start.isoformat(), 'end': gap.end.isoformat()}
            for gap in free_windows(space, window)
        ])

    @action(detail=True, methods=['get'])
    def owner_stats(self, request, pk=None):
        """Get parking space statistics (owner only)"""
        space = self.get_object()
        earning = [BookingStatus.CONFIRMED, BookingStatus.ACTIVE, BookingStatus.COMPLETED]
        stats = space.bookings.aggregate(
            total_bookings=Count('id'),
            completed_bookings=Count('id', filter=Q(status=BookingStatus.COMPLETED)),
            active_bookings=Count('id', filter=Q(status=BookingStatus.ACTIVE)),
            upcoming_bookings=Count('id', filter=Q(status=BookingStatus.CONFIRMED, start_time__gt=timezone.now())),
            cancelled_bookings=Count('id', filter=Q(status=BookingStatus.CANCELLED)),
            total_revenue=Sum('total_cost', filter=Q(status__in=earning)),
        )
        stats['total_revenue'] = stats['total_revenue'] or 0
        return Response(stats)

    @action(detail=True, methods=['post'])
    def images(self, request, pk=None):
        """Upload images

        Body (multipart): images (one or more files), caption (optional)
        """
        space = self.get_object()
        files = request.FILES.getlist('images') or request.FILES.getlist('image')
        if not files:
            raise serializers.ValidationError({'images': 'At least one image is required'})

        start_order = space.images.count()
        created = []
        for offset, upload in enumerate(files):
            serializer = ParkingSpaceImageSerializer(data={
                'image': upload,
                'caption': request.data.get('caption', ''),
                'order': start_order + offset,
            })
            serializer.is_valid(raise_exception=True)
            created.append(serializer.save(parking_space=space))

        return Response(
            ParkingSpaceImageSerializer(created, many=True, context={'request': request}).data,
            status=status.HTTP_201_CREATED
        )

    @action(detail=True, methods=['delete'], url_path=r'images/(?P<image_id>\d+)')
    def delete_image(self, request, pk=None, image_id=None):
        space = self.get_object()
        image = get_object_or_404(ParkingSpaceImage, pk=image_id, parking_space=space)
        image.image.delete(save=False)
        image.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
