# ==================== PARKING/SERIALIZERS.PY ====================
from rest_framework import serializers
from .models import ParkingSpace, ParkingSpaceImage, AvailabilitySlot, PRICE_MIN, PRICE_MAX
from users.serializers import UserSummarySerializer


class ParkingSpaceImageSerializer(serializers.ModelSerializer):
    class Meta:
        model = ParkingSpaceImage
        fields = ['id', 'image', 'caption', 'order', 'uploaded_at']
        read_only_fields = ['uploaded_at']


class AvailabilitySlotSerializer(serializers.ModelSerializer):
    class Meta:
        model = AvailabilitySlot
        fields = ['id', 'day_of_week', 'start_time', 'end_time', 'is_active']

    def validate(self, data):
        # HH:MM strings compare correctly once zero padded
        start = data['start_time'].zfill(5)
        end = data['end_time'].zfill(5)
        if end <= start:
            raise serializers.ValidationError("End time must be after start time")
        data['start_time'], data['end_time'] = start, end
        return data


class ParkingSpaceListSerializer(serializers.ModelSerializer):
    """Simplified serializer for listing parking spaces"""
    owner_name = serializers.CharField(source='owner.get_full_name', read_only=True)
    distance = serializers.SerializerMethodField()
    images = ParkingSpaceImageSerializer(many=True, read_only=True)

    class Meta:
        model = ParkingSpace
        fields = ['id', 'title', 'address', 'city', 'postcode', 'latitude', 'longitude', 'space_type',
                  'hourly_price', 'is_covered', 'has_ev_charging', 'has_cctv', 'has_24_access',
                  'has_disabled_access', 'owner_name', 'images', 'distance']

    def get_distance(self, obj):
        # Set by DistanceCalculator.within_radius on search results
        return getattr(obj, 'distance', None)


class ParkingSpaceDetailSerializer(serializers.ModelSerializer):
    """Detailed serializer for parking space with all info"""
    owner = UserSummarySerializer(read_only=True)
    images = ParkingSpaceImageSerializer(many=True, read_only=True)
    availability = AvailabilitySlotSerializer(many=True, read_only=True)

    class Meta:
        model = ParkingSpace
        fields = ['id', 'owner', 'title', 'description', 'address', 'city', 'postcode', 'latitude',
                  'longitude', 'space_type', 'hourly_price', 'is_covered', 'has_ev_charging', 'has_cctv',
                  'has_24_access', 'has_disabled_access', 'access_instructions', 'is_active',
                  'images', 'availability', 'created_at', 'updated_at']


class ParkingSpaceCreateUpdateSerializer(serializers.ModelSerializer):
    """For creating/updating parking spaces"""
    images = serializers.ListField(
        child=serializers.ImageField(),
        write_only=True,
        required=False
    )
    availability = AvailabilitySlotSerializer(many=True, required=False)
    hourly_price = serializers.DecimalField(
        max_digits=6, decimal_places=2, min_value=PRICE_MIN, max_value=PRICE_MAX
    )

    class Meta:
        model = ParkingSpace
        fields = ['id', 'title', 'description', 'address', 'city', 'postcode', 'latitude', 'longitude',
                  'space_type', 'hourly_price', 'is_covered', 'has_ev_charging', 'has_cctv', 'has_24_access',
                  'has_disabled_access', 'access_instructions', 'images', 'availability']
        read_only_fields = ['id']

    def validate_title(self, value):
        if len(value.strip()) < 5:
            raise serializers.ValidationError("Title must be at least 5 characters")
        return value.strip()

    def create(self, validated_data):
        images = validated_data.pop('images', [])
        availability = validated_data.pop('availability', [])
        space = ParkingSpace.objects.create(owner=self.context['request'].user, **validated_data)

        for order, image in enumerate(images):
            ParkingSpaceImage.objects.create(parking_space=space, image=image, order=order)
        for slot in availability:
            AvailabilitySlot.objects.create(parking_space=space, **slot)

        return space

    def update(self, instance, validated_data):
        # Schedule and images have their own endpoints
        validated_data.pop('images', None)
        validated_data.pop('availability', None)
        return super().update(instance, validated_data)


class SpaceSearchSerializer(serializers.Serializer):
    """Query parameters for space search"""
    lat = serializers.FloatField(required=False, min_value=-90, max_value=90)
    lng = serializers.FloatField(required=False, min_value=-180, max_value=180)
    radius = serializers.FloatField(required=False, default=5, min_value=0.1, max_value=50)
    start_time = serializers.DateTimeField(required=False)
    end_time = serializers.DateTimeField(required=False)

    def validate(self, data):
        if ('lat' in data) != ('lng' in data):
            raise serializers.ValidationError("lat and lng must be given together")
        if ('start_time' in data) != ('end_time' in data):
            raise serializers.ValidationError("start_time and end_time must be given together")
        if 'start_time' in data and data['end_time'] <= data['start_time']:
            raise serializers.ValidationError("End time must be after start time")
        return data
