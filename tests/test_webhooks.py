import hashlib
import hmac
import json
from datetime import timedelta
from decimal import Decimal

import pytest
from django.conf import settings
from django.core import mail

from bookings.models import BookingStatus
from bookings.services import VehicleDetails
from bookings.time_range import TimeRange
from payments.models import Payment, PaymentDispute, Refund
from payments.webhooks import reconcile_payment_event
from utils.exceptions import PaymentRecordNotReady, SignatureInvalid

pytestmark = pytest.mark.django_db

WEBHOOK_URL = '/webhooks/razorpay/payment/'


def sign(body):
    return hmac.new(settings.RAZORPAY_WEBHOOK_SECRET.encode(), body.encode(), hashlib.sha256).hexdigest()


def payment_event(event, order_id, payment_id='pay_hook', booking_id=None, **entity):
    return json.dumps({
        'event': event,
        'payload': {
            'payment': {
                'entity': {
                    'id': payment_id,
                    'order_id': order_id,
                    'status': 'captured' if event == 'payment.captured' else 'failed',
                    'method': 'card',
                    'card': {'network': 'Visa', 'last4': '1111'},
                    'notes': {'booking_id': str(booking_id)} if booking_id else [],
                    **entity,
                }
            }
        },
    })


@pytest.fixture
def pending_booking(service, driver, space, base_time, gateway):
    gateway.outcome['status'] = 'requires_action'
    result = service.create_booking(
        driver, space.id, TimeRange(base_time, base_time + timedelta(hours=2)),
        VehicleDetails(registration='AB12CDE'), 'token_123',
    )
    gateway.outcome['status'] = 'succeeded'
    return result


def test_unsigned_notification_is_rejected(pending_booking, gateway):
    body = payment_event('payment.captured', pending_booking.payment.razorpay_order_id)

    with pytest.raises(SignatureInvalid):
        reconcile_payment_event(body, 'not-a-signature', gateway=gateway)

    pending_booking.payment.refresh_from_db()
    assert pending_booking.payment.status == Payment.STATUS_PROCESSING


def test_missing_signature_is_rejected(pending_booking, gateway):
    body = payment_event('payment.captured', pending_booking.payment.razorpay_order_id)
    with pytest.raises(SignatureInvalid):
        reconcile_payment_event(body, None, gateway=gateway)


def test_signed_garbage_is_rejected(gateway):
    body = 'not json'
    with pytest.raises(SignatureInvalid):
        reconcile_payment_event(body, sign(body), gateway=gateway)


def test_body_that_is_not_utf8_is_rejected(gateway):
    body = b'\xff\xfe{"event": "payment.captured"}'
    signature = hmac.new(settings.RAZORPAY_WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()

    with pytest.raises(SignatureInvalid):
        reconcile_payment_event(body, signature, gateway=gateway)


@pytest.mark.parametrize('document', [
    [{'event': 'payment.captured'}],
    {'event': 'payment.captured', 'payload': 'payment'},
    {'event': 'payment.captured', 'payload': {'payment': 'pay_1'}},
    {'event': 'payment.failed', 'payload': {'payment': {'entity': ['pay_1']}}},
])
def test_signed_body_with_wrong_shape_is_rejected(gateway, document):
    body = json.dumps(document)
    with pytest.raises(SignatureInvalid):
        reconcile_payment_event(body, sign(body), gateway=gateway)


def test_dispute_without_id_is_rejected(gateway):
    body = json.dumps({
        'event': 'payment.dispute.created',
        'payload': {'dispute': {'entity': {'payment_id': 'pay_1', 'amount': 400, 'status': 'open'}}},
    })

    with pytest.raises(SignatureInvalid):
        reconcile_payment_event(body, sign(body), gateway=gateway)
    assert not PaymentDispute.objects.exists()


def test_capture_confirms_booking_once(pending_booking, gateway, django_capture_on_commit_callbacks):
    body = payment_event('payment.captured', pending_booking.payment.razorpay_order_id)

    with django_capture_on_commit_callbacks(execute=True):
        first = reconcile_payment_event(body, sign(body), gateway=gateway)
    with django_capture_on_commit_callbacks(execute=True):
        second = reconcile_payment_event(body, sign(body), gateway=gateway)

    assert (first, second) == ('applied', 'duplicate')
    payment = Payment.objects.get(pk=pending_booking.payment.pk)
    assert payment.status == Payment.STATUS_SUCCEEDED
    assert payment.razorpay_payment_id == 'pay_hook'
    assert payment.method_brand == 'Visa'
    assert payment.booking.status == BookingStatus.CONFIRMED
    # one confirmation for the driver, one new-booking email for the host
    assert len(mail.outbox) == 2


def test_failed_payment_cancels_booking_once(pending_booking, gateway, django_capture_on_commit_callbacks):
    body = payment_event('payment.failed', pending_booking.payment.razorpay_order_id,
                         error_description='Insufficient funds')

    with django_capture_on_commit_callbacks(execute=True):
        first = reconcile_payment_event(body, sign(body), gateway=gateway)
    with django_capture_on_commit_callbacks(execute=True):
        second = reconcile_payment_event(body, sign(body), gateway=gateway)

    assert (first, second) == ('applied', 'duplicate')
    payment = Payment.objects.get(pk=pending_booking.payment.pk)
    assert payment.status == Payment.STATUS_FAILED
    assert payment.gateway_response == {'error': 'Insufficient funds'}
    assert payment.booking.status == BookingStatus.CANCELLED
    assert [message.to for message in mail.outbox] == [['driver@example.com']]


def test_capture_for_cancelled_booking_is_refunded(pending_booking, service, driver, gateway):
    service.cancel_booking(pending_booking.booking.id, driver)
    body = payment_event('payment.captured', pending_booking.payment.razorpay_order_id)

    assert reconcile_payment_event(body, sign(body), gateway=gateway) == 'refunded'

    payment = Payment.objects.get(pk=pending_booking.payment.pk)
    assert payment.status == Payment.STATUS_REFUNDED
    assert payment.refund_amount == Decimal('8.00')
    assert payment.booking.status == BookingStatus.CANCELLED


def test_dispute_is_recorded_without_touching_booking(service, driver, space, base_time, gateway):
    result = service.create_booking(
        driver, space.id, TimeRange(base_time, base_time + timedelta(hours=1)),
        VehicleDetails(registration='AB12CDE'), 'token_123',
    )
    body = json.dumps({
        'event': 'payment.dispute.created',
        'payload': {'dispute': {'entity': {
            'id': 'disp_1',
            'payment_id': result.payment.razorpay_payment_id,
            'amount': 400,
            'reason_code': 'chargeback',
            'status': 'open',
        }}},
    })

    assert reconcile_payment_event(body, sign(body), gateway=gateway) == 'recorded'
    assert reconcile_payment_event(body, sign(body), gateway=gateway) == 'duplicate'

    dispute = PaymentDispute.objects.get()
    assert dispute.payment == result.payment
    assert dispute.amount == Decimal('4.00')
    result.booking.refresh_from_db()
    assert result.booking.status == BookingStatus.CONFIRMED


def test_unknown_order_for_known_booking_is_deferred(pending_booking, gateway):
    body = payment_event('payment.captured', 'order_not_yet_written', booking_id=pending_booking.booking.id)
    with pytest.raises(PaymentRecordNotReady):
        reconcile_payment_event(body, sign(body), gateway=gateway)


def test_unknown_order_without_booking_is_ignored(gateway):
    body = payment_event('payment.captured', 'order_unknown', booking_id=999999)
    assert reconcile_payment_event(body, sign(body), gateway=gateway) == 'ignored'


def test_unhandled_event_is_ignored(gateway):
    body = json.dumps({'event': 'order.paid', 'payload': {}})
    assert reconcile_payment_event(body, sign(body), gateway=gateway) == 'ignored'


def test_refund_failure_event_marks_refund_failed(service, driver, space, base_time, gateway):
    booking = service.create_booking(
        driver, space.id, TimeRange(base_time, base_time + timedelta(hours=2)),
        VehicleDetails(registration='AB12CDE'), 'token_123',
    ).booking
    gateway.refund.side_effect = lambda *args, **kwargs: {'id': 'rfnd_async', 'status': 'pending'}
    service.cancel_booking(booking.id, driver, now=base_time - timedelta(hours=3))
    assert Refund.objects.get().status == Refund.STATUS_PROCESSING

    body = json.dumps({'event': 'refund.failed', 'payload': {'refund': {'entity': {
        'id': 'rfnd_async', 'status': 'failed', 'notes': {},
    }}}})
    assert reconcile_payment_event(body, sign(body), gateway=gateway) == 'applied'
    assert Refund.objects.get().status == Refund.STATUS_FAILED


def test_webhook_endpoint_status_codes(client, pending_booking, use_gateway):
    body = payment_event('payment.captured', pending_booking.payment.razorpay_order_id)

    response = client.post(WEBHOOK_URL, data=body, content_type='application/json',
                           HTTP_X_RAZORPAY_SIGNATURE='bad')
    assert response.status_code == 400

    response = client.post(WEBHOOK_URL, data=b'\xff\xfe', content_type='application/json',
                           HTTP_X_RAZORPAY_SIGNATURE='bad')
    assert response.status_code == 400

    response = client.post(WEBHOOK_URL, data=body, content_type='application/json',
                           HTTP_X_RAZORPAY_SIGNATURE=sign(body))
    assert response.status_code == 200
    assert response.json()['outcome'] == 'applied'

    early = payment_event('payment.captured', 'order_missing', booking_id=pending_booking.booking.id)
    response = client.post(WEBHOOK_URL, data=early, content_type='application/json',
                           HTTP_X_RAZORPAY_SIGNATURE=sign(early))
    assert response.status_code == 503
