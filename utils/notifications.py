# ==================== UTILS/NOTIFICATIONS.PY ====================
import logging

from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)

TEMPLATES = {
    'booking_confirmed': (
        'Booking Confirmed - {space_title}',
        'Your booking has been confirmed:\n'
        'Location: {address}\n'
        'Check-in: {start_time}\n'
        'Check-out: {end_time}\n'
        'Vehicle: {vehicle_reg}\n'
        'Amount: {currency} {total_cost}\n',
    ),
    'new_space_booking': (
        'New Booking for {space_title}',
        'A new booking has been confirmed:\n'
        'Driver: {driver_name}\n'
        'Vehicle: {vehicle_reg}\n'
        'Check-in: {start_time}\n'
        'Check-out: {end_time}\n',
    ),
    'booking_cancelled': (
        'Booking Cancelled - {space_title}',
        'Your booking for {start_time} has been cancelled.\n'
        'Refund: {currency} {refund_amount}\n',
    ),
    'booking_extended': (
        'Booking Extended - {space_title}',
        'Your booking now ends at {end_time}.\n'
        'New total: {currency} {total_cost}\n',
    ),
    'payment_failed': (
        'Payment Failed - {space_title}',
        'We could not take payment for your booking starting {start_time}. '
        'The booking has been cancelled.\n',
    ),
}


def send_notification(to, template_name, template_data):
    """Send one templated email. Failures are logged, never raised."""
    try:
        subject, body = TEMPLATES[template_name]
    except KeyError:
        logger.error(f"Unknown notification template: {template_name}")
        return False

    try:
        send_mail(
            subject.format(**template_data),
            body.format(**template_data),
            settings.DEFAULT_FROM_EMAIL,
            [to],
            fail_silently=False,
        )
        logger.info(f"Notification {template_name} sent to {to}")
        return True
    except Exception as e:
        logger.error(f"Error sending {template_name} notification to {to}: {str(e)}")
        return False
