# ==================== UTILS/EXCEPTIONS.PY ====================
from rest_framework.exceptions import APIException, NotFound
from rest_framework import status


class SpaceNotFound(NotFound):
    default_detail = 'Parking space not found.'
    default_code = 'space_not_found'


class BookingNotFound(NotFound):
    default_detail = 'Booking not found.'
    default_code = 'booking_not_found'


class PaymentNotFound(NotFound):
    default_detail = 'Payment not found.'
    default_code = 'payment_not_found'


class PaymentMethodNotFound(NotFound):
    default_detail = 'Saved payment method not found.'
    default_code = 'payment_method_not_found'


class ParkingUnavailable(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Parking space is not available for the selected time.'
    default_code = 'parking_unavailable'


class BookingConflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Booking conflicts with existing bookings.'
    default_code = 'booking_conflict'


class SpaceInactive(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Parking space is not accepting bookings.'
    default_code = 'space_inactive'


class InvalidTransition(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Booking cannot move to the requested state.'
    default_code = 'invalid_booking_status'


class PaymentFailed(APIException):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_detail = 'Payment processing failed.'
    default_code = 'payment_failed'


class SignatureInvalid(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Notification signature could not be verified.'
    default_code = 'signature_invalid'


class DependencyUnavailable(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'Payment service temporarily unavailable.'
    default_code = 'dependency_unavailable'


class PaymentRecordNotReady(DependencyUnavailable):
    """Notification refers to a booking whose payment row is not visible yet."""
    default_detail = 'Payment record not ready, retry later.'
    default_code = 'payment_record_not_ready'


class SpaceHasBookings(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Parking space has upcoming bookings and cannot be removed.'
    default_code = 'space_has_bookings'
