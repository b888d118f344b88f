# parking/models.py

from decimal import Decimal

from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator, RegexValidator
from users.models import CustomUser

PRICE_MIN = Decimal('0.50')
PRICE_MAX = Decimal('50.00')

hhmm_validator = RegexValidator(
    regex=r'^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$',
    message='Time must be in HH:MM format'
)


class ParkingSpace(models.Model):
    SPACE_TYPE_CHOICES = (
        ('driveway', 'Driveway'),
        ('garage', 'Garage'),
        ('car_park', 'Car Park'),
        ('street_parking', 'Street Parking'),
        ('commercial_lot', 'Commercial Lot'),
    )

    owner = models.ForeignKey(CustomUser, on_delete=models.CASCADE, related_name='owned_parking_spaces')

    # Location info
    title = models.CharField(max_length=100)
    description = models.TextField(max_length=500, blank=True)
    address = models.CharField(max_length=500)
    city = models.CharField(max_length=100, db_index=True)
    postcode = models.CharField(max_length=20)
    latitude = models.FloatField(validators=[MinValueValidator(-90), MaxValueValidator(90)])
    longitude = models.FloatField(validators=[MinValueValidator(-180), MaxValueValidator(180)])

    # Space details
    space_type = models.CharField(max_length=20, choices=SPACE_TYPE_CHOICES)
    hourly_price = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        validators=[MinValueValidator(PRICE_MIN), MaxValueValidator(PRICE_MAX)]
    )

    # Features
    is_covered = models.BooleanField(default=False)
    has_ev_charging = models.BooleanField(default=False)
    has_cctv = models.BooleanField(default=False)
    has_24_access = models.BooleanField(default=False)
    has_disabled_access = models.BooleanField(default=False)
    access_instructions = models.TextField(max_length=1000, blank=True)

    # Soft-delete marker
    is_active = models.BooleanField(default=True, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['latitude', 'longitude']),
            models.Index(fields=['created_at']),
        ]

    def __str__(self):
        return f"{self.title} - {self.address}"


class ParkingSpaceImage(models.Model):
    """Images for parking space, kept in the configured Django storage"""
    parking_space = models.ForeignKey(ParkingSpace, on_delete=models.CASCADE, related_name='images')
    image = models.ImageField(upload_to='parking_space_images/')
    caption = models.CharField(max_length=200, blank=True)
    order = models.PositiveIntegerField(default=0)
    uploaded_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['order', '-uploaded_at']

    def __str__(self):
        return f"Image for {self.parking_space.title}"


class AvailabilitySlot(models.Model):
    """Recurring weekly open window. 0 = Sunday."""
    parking_space = models.ForeignKey(ParkingSpace, on_delete=models.CASCADE, related_name='availability')
    day_of_week = models.PositiveSmallIntegerField(validators=[MinValueValidator(0), MaxValueValidator(6)])
    start_time = models.CharField(max_length=5, validators=[hhmm_validator])
    end_time = models.CharField(max_length=5, validators=[hhmm_validator])
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['day_of_week', 'start_time']

    def __str__(self):
        return f"{self.parking_space.title}: day {self.day_of_week} {self.start_time}-{self.end_time}"
