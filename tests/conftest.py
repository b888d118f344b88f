import itertools
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import razorpay
from django.conf import settings
from django.utils import timezone
from rest_framework.test import APIClient

from bookings.services import BookingService
from parking.models import ParkingSpace
from payments.services import RazorpayService
from users.models import CustomUser


def charge_result(status, payment_id):
    return {
        'id': payment_id,
        'status': status,
        'requires_action': status == 'requires_action',
        'next_action': {'url': 'https://api.razorpay.com/authenticate'} if status == 'requires_action' else None,
        'method': {'brand': 'Visa', 'last4': '4242'},
        'error': 'Card declined' if status == 'failed' else None,
    }


@pytest.fixture
def base_time():
    """10:00 UTC two days from now"""
    return (timezone.now() + timedelta(days=2)).replace(hour=10, minute=0, second=0, microsecond=0)


@pytest.fixture
def driver(db):
    return CustomUser.objects.create_user(
        username='driver', email='driver@example.com', password='testpass123',
        first_name='Dana', last_name='Driver', role=CustomUser.ROLE_DRIVER,
    )


@pytest.fixture
def other_driver(db):
    return CustomUser.objects.create_user(
        username='driver2', email='driver2@example.com', password='testpass123', role=CustomUser.ROLE_DRIVER,
    )


@pytest.fixture
def host(db):
    return CustomUser.objects.create_user(
        username='host', email='host@example.com', password='testpass123', role=CustomUser.ROLE_HOST,
    )


@pytest.fixture
def admin_user(db):
    return CustomUser.objects.create_user(
        username='admin', email='admin@example.com', password='testpass123', role=CustomUser.ROLE_ADMIN,
    )


@pytest.fixture
def space(host):
    return ParkingSpace.objects.create(
        owner=host,
        title='Driveway near the station',
        address='1 Station Road',
        city='London',
        postcode='N1 9AL',
        latitude=51.5308,
        longitude=-0.1238,
        space_type='driveway',
        hourly_price=Decimal('4.00'),
    )


@pytest.fixture
def signer():
    """Real Razorpay signature check with the test webhook secret"""
    return RazorpayService(client=razorpay.Client(auth=(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)))


@pytest.fixture
def gateway(signer):
    ids = itertools.count(1)
    outcome = {'status': 'succeeded'}

    gw = MagicMock(spec=RazorpayService)
    gw.outcome = outcome
    gw.create_customer.return_value = 'cust_test'
    gw.create_order.side_effect = lambda amount, currency, receipt, notes=None: {
        'id': f'order_{next(ids)}', 'amount': int(amount * 100), 'currency': currency,
    }
    gw.charge.side_effect = lambda *args, **kwargs: charge_result(outcome['status'], f'pay_{next(ids)}')
    gw.refund.side_effect = lambda payment_id, amount, reason, notes=None: {
        'id': f'rfnd_{next(ids)}', 'status': 'processed',
    }
    gw.verify_webhook_signature.side_effect = signer.verify_webhook_signature
    gw.verify_payment_signature.return_value = True
    return gw


@pytest.fixture
def service(gateway):
    return BookingService(gateway=gateway)


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def driver_client(driver):
    client = APIClient()
    client.force_authenticate(user=driver)
    return client


@pytest.fixture
def host_client(host):
    client = APIClient()
    client.force_authenticate(user=host)
    return client


@pytest.fixture
def admin_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client


@pytest.fixture
def use_gateway(monkeypatch, gateway):
    """Route the API views and periodic tasks to the mocked gateway"""
    monkeypatch.setattr('payments.services.get_payment_gateway', lambda: gateway)
    monkeypatch.setattr('bookings.views.get_payment_gateway', lambda: gateway)
    monkeypatch.setattr('payments.views.get_payment_gateway', lambda: gateway)
    monkeypatch.setattr('payments.webhooks.get_payment_gateway', lambda: gateway)
    return gateway


@pytest.fixture
def make_booking(driver, space):
    from bookings.models import Booking, BookingStatus
    from bookings.pricing import calculate_cost

    def make(start, end, status=BookingStatus.CONFIRMED, booking_driver=None, booking_space=None):
        booking_space = booking_space or space
        return Booking.objects.create(
            driver=booking_driver or driver,
            parking_space=booking_space,
            start_time=start,
            end_time=end,
            status=status,
            total_cost=calculate_cost(start, end, booking_space.hourly_price),
            vehicle_reg='AB12CDE',
        )
    return make
