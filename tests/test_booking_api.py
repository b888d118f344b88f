from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from bookings.models import Booking, BookingStatus

pytestmark = pytest.mark.django_db

BOOKINGS_URL = '/api/v1/bookings/'


def booking_url(booking, action=None):
    return f'{BOOKINGS_URL}{booking.id}/{action}/' if action else f'{BOOKINGS_URL}{booking.id}/'


@pytest.fixture
def booking_payload(space, base_time):
    return {
        'parking_space': space.id,
        'start_time': base_time.isoformat(),
        'end_time': (base_time + timedelta(hours=2)).isoformat(),
        'vehicle_reg': 'ab12 cde',
        'vehicle_make': 'Ford',
        'payment_method_id': 'token_123',
    }


def test_create_booking(driver_client, booking_payload, use_gateway):
    response = driver_client.post(BOOKINGS_URL, booking_payload, format='json')

    assert response.status_code == 201
    assert response.data['booking']['status'] == BookingStatus.CONFIRMED
    assert response.data['booking']['vehicle_reg'] == 'AB12 CDE'
    assert Decimal(response.data['booking']['total_cost']) == Decimal('8.00')
    assert response.data['payment']['status'] == 'succeeded'
    assert response.data['requires_action'] is False


def test_create_booking_needing_customer_action(driver_client, booking_payload, gateway, use_gateway):
    gateway.outcome['status'] = 'requires_action'

    response = driver_client.post(BOOKINGS_URL, booking_payload, format='json')

    assert response.status_code == 201
    assert response.data['booking']['status'] == BookingStatus.PENDING
    assert response.data['requires_action'] is True
    assert response.data['next_action'] == {'url': 'https://api.razorpay.com/authenticate'}


def test_create_booking_requires_login(api_client, booking_payload):
    assert api_client.post(BOOKINGS_URL, booking_payload, format='json').status_code == 401


def test_end_before_start_is_a_validation_error(driver_client, booking_payload, base_time, use_gateway):
    booking_payload['end_time'] = (base_time - timedelta(hours=1)).isoformat()

    response = driver_client.post(BOOKINGS_URL, booking_payload, format='json')

    assert response.status_code == 400
    assert response.data['code'] == 'validation_error'
    assert 'end_time' in response.data['errors']
    assert not Booking.objects.exists()


def test_short_registration_is_rejected(driver_client, booking_payload, use_gateway):
    booking_payload['vehicle_reg'] = ' a '
    response = driver_client.post(BOOKINGS_URL, booking_payload, format='json')
    assert response.status_code == 400
    assert 'vehicle_reg' in response.data['errors']


def test_overlapping_booking_is_a_conflict(driver_client, booking_payload, make_booking, other_driver,
                                           base_time, use_gateway):
    make_booking(base_time + timedelta(hours=1), base_time + timedelta(hours=3), booking_driver=other_driver)

    response = driver_client.post(BOOKINGS_URL, booking_payload, format='json')

    assert response.status_code == 409
    assert response.data['code'] == 'parking_unavailable'


def test_booking_touching_an_existing_one_is_accepted(driver_client, booking_payload, make_booking,
                                                      other_driver, base_time, use_gateway):
    make_booking(base_time - timedelta(hours=2), base_time, booking_driver=other_driver)
    response = driver_client.post(BOOKINGS_URL, booking_payload, format='json')
    assert response.status_code == 201


def test_host_cannot_book_own_space(host_client, booking_payload, use_gateway):
    response = host_client.post(BOOKINGS_URL, booking_payload, format='json')
    assert response.status_code == 403
    assert response.data['code'] == 'cannot_book_own_space'


def test_unknown_space_is_404(driver_client, booking_payload, use_gateway):
    booking_payload['parking_space'] = 999999
    response = driver_client.post(BOOKINGS_URL, booking_payload, format='json')
    assert response.status_code == 404
    assert response.data['code'] == 'space_not_found'


def test_declined_card(driver_client, booking_payload, gateway, use_gateway):
    gateway.outcome['status'] = 'failed'

    response = driver_client.post(BOOKINGS_URL, booking_payload, format='json')

    assert response.status_code == 402
    assert response.data['code'] == 'payment_failed'
    assert Booking.objects.get().status == BookingStatus.CANCELLED


def test_list_shows_only_own_bookings(driver_client, make_booking, other_driver, base_time):
    mine = make_booking(base_time, base_time + timedelta(hours=1))
    make_booking(base_time + timedelta(hours=2), base_time + timedelta(hours=3), booking_driver=other_driver)

    response = driver_client.get(BOOKINGS_URL)

    assert response.status_code == 200
    assert [row['id'] for row in response.data['results']] == [mine.id]


def test_list_filters(driver_client, make_booking, base_time):
    confirmed = make_booking(base_time, base_time + timedelta(hours=1))
    cancelled = make_booking(base_time + timedelta(hours=2), base_time + timedelta(hours=3),
                             status=BookingStatus.CANCELLED)
    now = timezone.now()
    finished = make_booking(now - timedelta(days=1, hours=2), now - timedelta(days=1),
                            status=BookingStatus.COMPLETED)

    def ids(**params):
        return {row['id'] for row in driver_client.get(BOOKINGS_URL, params).data['results']}

    assert ids(status='cancelled') == {cancelled.id}
    assert ids(status=['confirmed', 'completed']) == {confirmed.id, finished.id}
    assert ids(upcoming='true') == {confirmed.id, cancelled.id}
    assert ids(past='true') == {finished.id}


def test_retrieve_permissions(driver_client, host_client, api_client, other_driver, make_booking, base_time):
    booking = make_booking(base_time, base_time + timedelta(hours=1))

    assert driver_client.get(booking_url(booking)).status_code == 200
    assert host_client.get(booking_url(booking)).status_code == 200

    api_client.force_authenticate(user=other_driver)
    response = api_client.get(booking_url(booking))
    assert response.status_code == 404


def test_cancel_with_notice_refunds_in_full(driver_client, booking_payload, use_gateway):
    created = driver_client.post(BOOKINGS_URL, booking_payload, format='json').data['booking']

    response = driver_client.post(f"{BOOKINGS_URL}{created['id']}/cancel/")

    assert response.status_code == 200
    assert response.data['booking']['status'] == BookingStatus.CANCELLED
    assert response.data['refund_amount'] == Decimal('8.00')
    assert response.data['refund_policy'] == 'Full refund'


def test_cancel_twice_is_rejected(driver_client, make_booking, base_time, use_gateway):
    booking = make_booking(base_time, base_time + timedelta(hours=1))
    assert driver_client.post(booking_url(booking, 'cancel')).status_code == 200

    response = driver_client.post(booking_url(booking, 'cancel'))
    assert response.status_code == 409
    assert response.data['code'] == 'invalid_booking_status'


def test_host_cannot_cancel_drivers_booking(host_client, make_booking, base_time, use_gateway):
    booking = make_booking(base_time, base_time + timedelta(hours=1))
    assert host_client.post(booking_url(booking, 'cancel')).status_code == 403
    booking.refresh_from_db()
    assert booking.status == BookingStatus.CONFIRMED


def test_session_start_and_stop(driver_client, make_booking, use_gateway):
    start = timezone.now() + timedelta(minutes=10)
    booking = make_booking(start, start + timedelta(hours=1))

    response = driver_client.post(booking_url(booking, 'start'))
    assert response.status_code == 200
    assert response.data['booking']['status'] == BookingStatus.ACTIVE

    # an active booking can no longer be cancelled
    assert driver_client.post(booking_url(booking, 'cancel')).status_code == 409

    response = driver_client.post(booking_url(booking, 'stop'))
    assert response.status_code == 200
    assert response.data['booking']['status'] == BookingStatus.COMPLETED


def test_session_cannot_start_early(driver_client, make_booking, base_time, use_gateway):
    booking = make_booking(base_time, base_time + timedelta(hours=1))

    response = driver_client.post(booking_url(booking, 'start'))

    assert response.status_code == 409
    assert response.data['code'] == 'too_early'


def test_stop_requires_active_session(driver_client, make_booking, base_time, use_gateway):
    booking = make_booking(base_time, base_time + timedelta(hours=1))
    assert driver_client.post(booking_url(booking, 'stop')).status_code == 409


def test_extend(driver_client, make_booking, base_time, use_gateway):
    booking = make_booking(base_time, base_time + timedelta(hours=1))

    response = driver_client.post(booking_url(booking, 'extend'), {
        'end_time': (base_time + timedelta(hours=2)).isoformat(),
        'payment_method_id': 'token_123',
    }, format='json')

    assert response.status_code == 200
    assert response.data['additional_cost'] == Decimal('4.00')
    assert response.data['payment']['kind'] == 'extension'
    booking.refresh_from_db()
    assert booking.end_time == base_time + timedelta(hours=2)
    assert booking.total_cost == Decimal('8.00')


def test_extend_into_another_booking(driver_client, make_booking, other_driver, base_time, use_gateway):
    booking = make_booking(base_time, base_time + timedelta(hours=1))
    make_booking(base_time + timedelta(hours=1, minutes=30), base_time + timedelta(hours=3),
                 booking_driver=other_driver)

    response = driver_client.post(booking_url(booking, 'extend'), {
        'end_time': (base_time + timedelta(hours=2)).isoformat(),
        'payment_method_id': 'token_123',
    }, format='json')

    assert response.status_code == 409
    assert response.data['code'] == 'booking_conflict'


def test_partial_update(driver_client, make_booking, base_time, use_gateway):
    booking = make_booking(base_time, base_time + timedelta(hours=1))

    response = driver_client.patch(booking_url(booking), {
        'vehicle_reg': 'zz99 yyy', 'special_requests': 'Reversing in',
    }, format='json')

    assert response.status_code == 200
    assert response.data['vehicle_reg'] == 'ZZ99 YYY'
    assert response.data['special_requests'] == 'Reversing in'


def test_partial_update_rejects_fixed_fields(driver_client, make_booking, base_time, use_gateway):
    booking = make_booking(base_time, base_time + timedelta(hours=1))

    response = driver_client.patch(booking_url(booking), {
        'start_time': (base_time + timedelta(hours=5)).isoformat(),
        'total_cost': '0.01',
    }, format='json')

    assert response.status_code == 400
    assert set(response.data['errors']) == {'start_time', 'total_cost'}
    booking.refresh_from_db()
    assert booking.start_time == base_time


def test_space_bookings_for_host(host_client, driver_client, make_booking, base_time):
    booking = make_booking(base_time, base_time + timedelta(hours=1))

    response = host_client.get(f'{BOOKINGS_URL}space_bookings/')
    assert response.status_code == 200
    assert [row['id'] for row in response.data['results']] == [booking.id]

    assert driver_client.get(f'{BOOKINGS_URL}space_bookings/').status_code == 403
