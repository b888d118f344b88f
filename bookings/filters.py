# ============================= BOOKINGS/FILTERS.PY =============================
import django_filters
from django.utils import timezone
from .models import Booking, BookingStatus


class BookingFilter(django_filters.FilterSet):
    status = django_filters.MultipleChoiceFilter(choices=BookingStatus.choices)
    upcoming = django_filters.BooleanFilter(method='filter_upcoming', label='Starts in the future')
    past = django_filters.BooleanFilter(method='filter_past', label='Already ended')
    space = django_filters.NumberFilter(field_name='parking_space_id')

    class Meta:
        model = Booking
        fields = ['status', 'upcoming', 'past', 'space']

    def filter_upcoming(self, queryset, name, value):
        now = timezone.now()
        return queryset.filter(start_time__gt=now) if value else queryset.filter(start_time__lte=now)

    def filter_past(self, queryset, name, value):
        now = timezone.now()
        return queryset.filter(end_time__lt=now) if value else queryset.filter(end_time__gte=now)
