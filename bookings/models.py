from django.db import models
from django.db.models import F, Q
from users.models import CustomUser
from parking.models import ParkingSpace

from .time_range import TimeRange


class BookingStatus(models.TextChoices):
    PENDING = 'pending', 'Pending Payment'
    CONFIRMED = 'confirmed', 'Confirmed'
    ACTIVE = 'active', 'Active - Vehicle Parked'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'
    REFUNDED = 'refunded', 'Refunded'


class Booking(models.Model):
    # Relations, fixed at creation
    driver = models.ForeignKey(CustomUser, on_delete=models.PROTECT, related_name='driver_bookings')
    parking_space = models.ForeignKey(ParkingSpace, on_delete=models.PROTECT, related_name='bookings')

    # Booking details
    start_time = models.DateTimeField(db_index=True)
    end_time = models.DateTimeField()
    status = models.CharField(max_length=20, choices=BookingStatus.choices, default=BookingStatus.PENDING, db_index=True)

    # Pricing
    total_cost = models.DecimalField(max_digits=10, decimal_places=2)

    # Vehicle
    vehicle_reg = models.CharField(max_length=15)
    vehicle_make = models.CharField(max_length=50, blank=True)
    vehicle_model = models.CharField(max_length=50, blank=True)
    vehicle_color = models.CharField(max_length=30, blank=True)

    special_requests = models.TextField(max_length=500, blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    IMMUTABLE_FIELDS = ('driver', 'parking_space')

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['driver', 'status']),
            models.Index(fields=['parking_space', 'status']),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(end_time__gt=F('start_time')), name='booking_end_after_start'),
            models.CheckConstraint(condition=Q(total_cost__gte=0), name='booking_cost_non_negative'),
        ]

    def __str__(self):
        return f"Booking {self.id} - {self.driver.username} at {self.parking_space.title}"

    @property
    def time_range(self):
        return TimeRange(self.start_time, self.end_time)

    def save(self, *args, **kwargs):
        if self.pk and not kwargs.get('force_insert'):
            original = Booking.objects.filter(pk=self.pk).values('driver_id', 'parking_space_id').first()
            if original and (original['driver_id'] != self.driver_id
                             or original['parking_space_id'] != self.parking_space_id):
                raise ValueError('Booking driver and parking space cannot change')
        super().save(*args, **kwargs)
