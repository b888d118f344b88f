# ==================== BOOKINGS/SERIALIZERS.PY ====================
from django.utils import timezone
from rest_framework import serializers

from parking.serializers import ParkingSpaceListSerializer
from payments.models import Payment
from users.serializers import UserSummarySerializer
from .models import Booking
from .services import UPDATABLE_FIELDS, VehicleDetails
from .time_range import TimeRange


class VehicleDetailsSerializer(serializers.Serializer):
    vehicle_reg = serializers.CharField(min_length=2, max_length=15)
    vehicle_make = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    vehicle_model = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    vehicle_color = serializers.CharField(max_length=30, required=False, allow_blank=True, default='')
    special_requests = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')

    def validate_vehicle_reg(self, value):
        value = value.strip().upper()
        if len(value) < 2:
            raise serializers.ValidationError("Vehicle registration must be 2-15 characters")
        return value


class BookingCreateSerializer(VehicleDetailsSerializer):
    parking_space = serializers.IntegerField()
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    payment_method_id = serializers.CharField(max_length=100)

    def validate(self, data):
        if data['start_time'] < timezone.now():
            raise serializers.ValidationError({'start_time': "Start time cannot be in the past"})
        if data['end_time'] <= data['start_time']:
            raise serializers.ValidationError({'end_time': "End time must be after start time"})
        return data

    @property
    def time_range(self):
        return TimeRange(self.validated_data['start_time'], self.validated_data['end_time'])

    @property
    def vehicle(self):
        data = self.validated_data
        return VehicleDetails(
            registration=data['vehicle_reg'],
            make=data['vehicle_make'],
            model=data['vehicle_model'],
            color=data['vehicle_color'],
        )


class BookingUpdateSerializer(VehicleDetailsSerializer):
    """Partial updates of vehicle details and special requests only"""

    def to_internal_value(self, data):
        unknown = set(data) - set(UPDATABLE_FIELDS)
        if unknown:
            raise serializers.ValidationError({name: "This field cannot be changed" for name in sorted(unknown)})
        return super().to_internal_value(data)


class BookingExtendSerializer(serializers.Serializer):
    end_time = serializers.DateTimeField()
    payment_method_id = serializers.CharField(max_length=100)


class BookingPaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = ['id', 'kind', 'amount', 'currency', 'status', 'method_brand', 'method_last4',
                  'refund_amount', 'created_at']


class BookingListSerializer(serializers.ModelSerializer):
    parking_space_title = serializers.CharField(source='parking_space.title', read_only=True)
    parking_space_address = serializers.CharField(source='parking_space.address', read_only=True)

    class Meta:
        model = Booking
        fields = ['id', 'parking_space', 'parking_space_title', 'parking_space_address', 'start_time',
                  'end_time', 'status', 'total_cost', 'vehicle_reg', 'created_at']


class BookingDetailSerializer(serializers.ModelSerializer):
    parking_space = ParkingSpaceListSerializer(read_only=True)
    driver = UserSummarySerializer(read_only=True)
    payments = BookingPaymentSerializer(many=True, read_only=True)

    class Meta:
        model = Booking
        fields = ['id', 'driver', 'parking_space', 'start_time', 'end_time', 'status', 'total_cost',
                  'vehicle_reg', 'vehicle_make', 'vehicle_model', 'vehicle_color', 'special_requests',
                  'payments', 'created_at', 'updated_at']
        read_only_fields = fields
