# ==================== PARKING/ADMIN.PY ====================
from django.contrib import admin
from .models import ParkingSpace, ParkingSpaceImage, AvailabilitySlot


class ParkingSpaceImageInline(admin.TabularInline):
    model = ParkingSpaceImage
    extra = 1


class AvailabilitySlotInline(admin.TabularInline):
    model = AvailabilitySlot
    extra = 0


@admin.register(ParkingSpace)
class ParkingSpaceAdmin(admin.ModelAdmin):
    list_display = ['title', 'owner', 'city', 'space_type', 'hourly_price', 'is_active', 'created_at']
    list_filter = ['space_type', 'is_active', 'city', 'created_at']
    search_fields = ['title', 'address', 'postcode', 'owner__username']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [ParkingSpaceImageInline, AvailabilitySlotInline]
    fieldsets = (
        ('Basic Info', {'fields': ('owner', 'title', 'description', 'address', 'city', 'postcode')}),
        ('Location', {'fields': ('latitude', 'longitude')}),
        ('Space Details', {'fields': ('space_type', 'hourly_price', 'access_instructions', 'is_active')}),
        ('Features', {'fields': ('is_covered', 'has_ev_charging', 'has_cctv', 'has_24_access', 'has_disabled_access')}),
        ('Timestamps', {'fields': ('created_at', 'updated_at'), 'classes': ('collapse',)}),
    )
