# ============================= PARKING/FILTERS.PY =============================
import django_filters
from .models import ParkingSpace


class ParkingSpaceFilter(django_filters.FilterSet):
    """Advanced filtering for parking spaces"""

    price_min = django_filters.NumberFilter(
        field_name='hourly_price',
        lookup_expr='gte',
        label='Minimum Hourly Price'
    )
    price_max = django_filters.NumberFilter(
        field_name='hourly_price',
        lookup_expr='lte',
        label='Maximum Hourly Price'
    )

    covered = django_filters.BooleanFilter(
        field_name='is_covered',
        label='Is Covered'
    )
    has_ev = django_filters.BooleanFilter(
        field_name='has_ev_charging',
        label='Has EV Charging'
    )
    has_cctv = django_filters.BooleanFilter(
        field_name='has_cctv',
        label='Has CCTV'
    )
    has_24_7 = django_filters.BooleanFilter(
        field_name='has_24_access',
        label='24/7 Access'
    )
    disabled_access = django_filters.BooleanFilter(
        field_name='has_disabled_access',
        label='Disabled Access'
    )

    space_type = django_filters.MultipleChoiceFilter(
        choices=ParkingSpace.SPACE_TYPE_CHOICES
    )

    class Meta:
        model = ParkingSpace
        fields = {
            'city': ['exact', 'icontains'],
            'postcode': ['istartswith'],
            'created_at': ['gte', 'lte'],
        }
