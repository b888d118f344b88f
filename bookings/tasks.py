# ==================== BOOKINGS/TASKS.PY (CELERY TASKS) ====================
from celery import shared_task
from django.conf import settings
import logging

from utils.notifications import send_notification
from .models import Booking

logger = logging.getLogger(__name__)

# Templates addressed to the space owner; everything else goes to the driver
OWNER_TEMPLATES = {'new_space_booking'}


@shared_task
def send_booking_notification(booking_id, template_name, extra=None):
    """Send a booking email. Failures are logged, never retried."""
    try:
        booking = Booking.objects.select_related('driver', 'parking_space__owner').get(id=booking_id)
    except Booking.DoesNotExist:
        logger.error(f"Error sending booking notification: booking {booking_id} not found")
        return False

    space = booking.parking_space
    recipient = space.owner if template_name in OWNER_TEMPLATES else booking.driver
    if not recipient.email:
        logger.warning(f"No email address for user {recipient.id}, skipping {template_name}")
        return False

    template_data = {
        'space_title': space.title,
        'address': space.address,
        'start_time': booking.start_time.strftime('%d %b %Y %H:%M'),
        'end_time': booking.end_time.strftime('%d %b %Y %H:%M'),
        'vehicle_reg': booking.vehicle_reg,
        'driver_name': booking.driver.get_full_name() or booking.driver.username,
        'total_cost': booking.total_cost,
        'currency': settings.PAYMENT_CURRENCY,
        'refund_amount': '0.00',
        **(extra or {}),
    }
    return send_notification(recipient.email, template_name, template_data)
