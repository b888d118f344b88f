# ==================== PAYMENTS/ADMIN.PY ====================
from django.contrib import admin
from django.utils.html import format_html
from .models import Payment, Refund, PaymentDispute


class RefundInline(admin.TabularInline):
    model = Refund
    extra = 0
    fields = ['amount', 'reason', 'status', 'attempts', 'razorpay_refund_id', 'last_error']
    readonly_fields = fields
    can_delete = False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['id', 'booking', 'kind', 'amount', 'status_badge', 'razorpay_order_id', 'created_at']
    list_filter = ['status', 'kind', 'created_at']
    search_fields = ['razorpay_order_id', 'razorpay_payment_id', 'booking__driver__username']
    readonly_fields = [
        'booking', 'kind', 'amount', 'currency', 'status', 'razorpay_order_id', 'razorpay_payment_id',
        'refund_amount', 'method_brand', 'method_last4', 'extension_end', 'gateway_response',
        'created_at', 'updated_at', 'succeeded_at'
    ]
    inlines = [RefundInline]

    STATUS_COLORS = {
        Payment.STATUS_SUCCEEDED: 'green',
        Payment.STATUS_PROCESSING: 'orange',
        Payment.STATUS_FAILED: 'red',
        Payment.STATUS_REFUNDED: 'gray',
    }

    def status_badge(self, obj):
        color = self.STATUS_COLORS.get(obj.status, 'black')
        return format_html('<span style="color: {};">{}</span>', color, obj.get_status_display())
    status_badge.short_description = 'Status'


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    list_display = ['id', 'payment', 'amount', 'reason', 'status', 'attempts', 'created_at']
    list_filter = ['status', 'reason']
    search_fields = ['razorpay_refund_id', 'payment__razorpay_payment_id']
    readonly_fields = ['created_at', 'updated_at', 'completed_at']


@admin.register(PaymentDispute)
class PaymentDisputeAdmin(admin.ModelAdmin):
    list_display = ['razorpay_dispute_id', 'payment', 'amount', 'reason_code', 'status', 'resolved', 'created_at']
    list_filter = ['status', 'resolved']
    search_fields = ['razorpay_dispute_id', 'razorpay_payment_id']
    readonly_fields = ['payload', 'created_at']
