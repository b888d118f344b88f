# ==================== BOOKINGS/ADMIN.PY ====================
from django.contrib import admin
from payments.models import Payment
from .models import Booking


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    fields = ['kind', 'amount', 'status', 'razorpay_order_id', 'razorpay_payment_id', 'refund_amount']
    readonly_fields = fields
    can_delete = False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ['id', 'driver', 'parking_space', 'status', 'start_time', 'end_time', 'total_cost', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['driver__username', 'parking_space__title', 'vehicle_reg']
    # Status only moves through the booking service
    readonly_fields = ['driver', 'parking_space', 'status', 'total_cost', 'created_at', 'updated_at']
    inlines = [PaymentInline]
