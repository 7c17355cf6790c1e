from django.test import TestCase, Client, override_settings
from django.core import mail
from unittest.mock import patch, MagicMock
import json
import stripe

from bookings.models import Booking, Customer
from bookings.ratelimit import payment_limiter
from . import pricing
from .errors import (
    PaymentAmountMismatchError,
    PaymentCurrencyError,
    PaymentNotCompletedError,
    PaymentVerificationError,
    UnknownServiceError,
)
from .models import PaymentRecord
from .verification import verify_payment


def make_intent(**overrides):
    intent = {
        'id': 'pi_test123',
        'amount': 6000,
        'currency': 'aud',
        'status': 'succeeded',
        'metadata': {},
    }
    intent.update(overrides)
    return intent


def construct_event(payload, sig_header, secret):
    return json.loads(payload)


class DepositPolicyTest(TestCase):
    def test_deposit_never_exceeds_full_price_and_respects_minimum(self):
        for dollars in range(1, 1001):
            full_price = dollars * 100
            deposit = pricing.deposit_of(full_price)
            self.assertLessEqual(deposit, full_price)
            self.assertGreaterEqual(deposit, min(3000, full_price))
            self.assertGreater(deposit, 0)

    def test_no_clamping_from_one_hundred_dollars(self):
        for dollars in range(100, 1001):
            expected_dollars = (dollars * 3 + 5) // 10
            self.assertEqual(pricing.deposit_of(dollars * 100), expected_dollars * 100)

    def test_small_service_deposit_equals_full_price(self):
        self.assertEqual(pricing.deposit_of(2500), 2500)
        self.assertFalse(pricing.offers_deposit('small_shopfront'))

    def test_minimum_deposit_applies(self):
        self.assertEqual(pricing.deposit_of(6000), 3000)
        self.assertTrue(pricing.offers_deposit('deepclean'))

    def test_catalog_prices(self):
        self.assertEqual(pricing.price_of('small_home'), 20000)
        self.assertEqual(pricing.deposit_of(pricing.price_of('small_home')), 6000)
        self.assertEqual(pricing.deposit_of(pricing.price_of('large_home_ext')), 4900)

    def test_unknown_service_rejected(self):
        with self.assertRaises(UnknownServiceError):
            pricing.price_of('mansion')
        with self.assertRaises(UnknownServiceError):
            pricing.price_of(None)

    def test_expected_charge(self):
        self.assertEqual(pricing.expected_charge('small_home', 'deposit'), 6000)
        self.assertEqual(pricing.expected_charge('small_home', 'full'), 20000)
        self.assertEqual(pricing.expected_charge('small_home', None), 20000)

    def test_format_cents(self):
        self.assertEqual(pricing.format_cents(6000), '$60.00')
        self.assertEqual(pricing.format_cents(123456), '$1,234.56')


class PaymentVerifierTest(TestCase):
    def test_no_payment_intent_skips_verification(self):
        with patch('payments.verification.stripe.PaymentIntent.retrieve') as mock_retrieve:
            self.assertIsNone(verify_payment('small_home'))
            mock_retrieve.assert_not_called()

    @patch('payments.verification.stripe.PaymentIntent.retrieve')
    def test_deposit_payment_verified(self, mock_retrieve):
        mock_retrieve.return_value = make_intent(amount=6000)

        verified = verify_payment('small_home', 'pi_test123', 'deposit')

        self.assertEqual(verified.amount_cents, 6000)
        self.assertEqual(verified.payment_intent_id, 'pi_test123')
        self.assertEqual(verified.status, 'paid')
        self.assertEqual(verified.payment_type, 'deposit')

    @patch('payments.verification.stripe.PaymentIntent.retrieve')
    def test_processing_payment_accepted(self, mock_retrieve):
        mock_retrieve.return_value = make_intent(amount=20000, status='processing')

        verified = verify_payment('small_home', 'pi_test123', 'full')

        self.assertEqual(verified.status, 'processing')
        self.assertEqual(verified.payment_type, 'full')

    @patch('payments.verification.stripe.PaymentIntent.retrieve')
    def test_incomplete_payment_rejected(self, mock_retrieve):
        for status in ['requires_action', 'requires_payment_method', 'canceled']:
            mock_retrieve.return_value = make_intent(status=status)
            with self.assertRaises(PaymentNotCompletedError):
                verify_payment('small_home', 'pi_test123', 'deposit')

    @patch('payments.verification.stripe.PaymentIntent.retrieve')
    def test_amount_mismatch_rejected_even_when_succeeded(self, mock_retrieve):
        mock_retrieve.return_value = make_intent(amount=5999)

        with self.assertRaises(PaymentAmountMismatchError):
            verify_payment('small_home', 'pi_test123', 'deposit')

    @patch('payments.verification.stripe.PaymentIntent.retrieve')
    def test_full_payment_type_requires_full_amount(self, mock_retrieve):
        mock_retrieve.return_value = make_intent(amount=6000)

        with self.assertRaises(PaymentAmountMismatchError):
            verify_payment('small_home', 'pi_test123', 'full')

    @patch('payments.verification.stripe.PaymentIntent.retrieve')
    def test_currency_mismatch_rejected(self, mock_retrieve):
        mock_retrieve.return_value = make_intent(amount=6000, currency='usd')

        with self.assertRaises(PaymentCurrencyError):
            verify_payment('small_home', 'pi_test123', 'deposit')

    @patch('payments.verification.stripe.PaymentIntent.retrieve')
    def test_missing_payment_type_accepts_either_amount(self, mock_retrieve):
        mock_retrieve.return_value = make_intent(amount=6000)
        self.assertEqual(verify_payment('small_home', 'pi_test123').payment_type, 'deposit')

        mock_retrieve.return_value = make_intent(amount=20000)
        self.assertEqual(verify_payment('small_home', 'pi_test123').payment_type, 'full')

    @patch('payments.verification.stripe.PaymentIntent.retrieve')
    def test_missing_payment_type_rejects_other_amounts(self, mock_retrieve):
        mock_retrieve.return_value = make_intent(amount=12345)

        with self.assertRaises(PaymentAmountMismatchError):
            verify_payment('small_home', 'pi_test123')

    @patch('payments.verification.stripe.PaymentIntent.retrieve')
    def test_unknown_intent_rejected(self, mock_retrieve):
        mock_retrieve.side_effect = stripe.InvalidRequestError('No such payment_intent', 'id')

        with self.assertRaises(PaymentVerificationError):
            verify_payment('small_home', 'pi_missing', 'deposit')


class CreatePaymentIntentTest(TestCase):
    def setUp(self):
        self.client = Client()
        payment_limiter.reset()

    def post(self, payload):
        return self.client.post(
            '/api/create-payment-intent',
            data=json.dumps(payload),
            content_type='application/json'
        )

    @patch('payments.views.stripe.PaymentIntent.create')
    def test_deposit_amount_computed_server_side(self, mock_create):
        mock_create.return_value = {'id': 'pi_new123', 'client_secret': 'pi_new123_secret'}

        response = self.post({
            'bookingData': {'service': 'small_home', 'email': 'jane@example.com', 'name': 'Jane', 'amount': 1},
            'paymentType': 'deposit',
        })

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'clientSecret': 'pi_new123_secret', 'paymentIntentId': 'pi_new123'})

        kwargs = mock_create.call_args.kwargs
        self.assertEqual(kwargs['amount'], 6000)
        self.assertEqual(kwargs['currency'], 'aud')
        self.assertIn('afterpay_clearpay', kwargs['payment_method_types'])
        self.assertEqual(kwargs['metadata']['paymentType'], 'deposit')
        self.assertEqual(kwargs['metadata']['customerEmail'], 'jane@example.com')

        record = PaymentRecord.objects.get(stripe_payment_intent_id='pi_new123')
        self.assertEqual(record.status, 'created')
        self.assertEqual(record.amount_cents, 6000)

    @patch('payments.views.stripe.PaymentIntent.create')
    def test_full_payment_only_service_charges_full_price(self, mock_create):
        mock_create.return_value = {'id': 'pi_shop', 'client_secret': 'pi_shop_secret'}

        response = self.post({'bookingData': {'service': 'small_shopfront'}, 'paymentType': 'deposit'})

        self.assertEqual(response.status_code, 200)
        kwargs = mock_create.call_args.kwargs
        self.assertEqual(kwargs['amount'], 2500)
        self.assertEqual(kwargs['metadata']['paymentType'], 'full')

    @patch('payments.views.stripe.PaymentIntent.create')
    def test_unknown_service_rejected(self, mock_create):
        response = self.post({'bookingData': {'service': 'castle'}, 'paymentType': 'full'})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'unknown_service')
        mock_create.assert_not_called()

    @patch('payments.views.stripe.PaymentIntent.create')
    def test_non_object_body_rejected(self, mock_create):
        for body in ['[]', '1', '"x"']:
            response = self.client.post('/api/create-payment-intent', data=body, content_type='application/json')
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json(), {'error': 'Invalid JSON'})
        mock_create.assert_not_called()

    @patch('payments.views.stripe.PaymentIntent.create')
    def test_stripe_error_returns_provider_error(self, mock_create):
        mock_create.side_effect = stripe.APIConnectionError('Network down')

        response = self.post({'bookingData': {'service': 'small_home'}, 'paymentType': 'full'})

        self.assertEqual(response.status_code, 502)
        self.assertIn('error', response.json())
        self.assertFalse(PaymentRecord.objects.exists())

    @patch('payments.views.stripe.PaymentIntent.create')
    def test_payment_requests_are_rate_limited(self, mock_create):
        mock_create.return_value = {'id': 'pi_rl', 'client_secret': 'secret'}
        payload = {'bookingData': {'service': 'small_home'}, 'paymentType': 'full'}

        for _ in range(5):
            self.assertEqual(self.post(payload).status_code, 200)

        response = self.post(payload)
        self.assertEqual(response.status_code, 429)
        self.assertIn('Too many payment requests', response.json()['error'])


class ServiceCatalogEndpointTest(TestCase):
    def test_lists_prices_and_deposit_availability(self):
        response = Client().get('/api/services')

        self.assertEqual(response.status_code, 200)
        services = {s['code']: s for s in response.json()['services']}
        self.assertEqual(services['small_home']['priceCents'], 20000)
        self.assertEqual(services['small_home']['depositCents'], 6000)
        self.assertTrue(services['small_home']['depositAvailable'])
        self.assertFalse(services['small_shopfront']['depositAvailable'])


class WebhookSignatureTest(TestCase):
    def setUp(self):
        self.client = Client()

    def test_webhook_rejects_missing_signature(self):
        payload = json.dumps({'id': 'evt_1', 'type': 'payment_intent.succeeded'})
        response = self.client.post(
            '/api/webhook',
            data=payload,
            content_type='application/json'
        )
        self.assertEqual(response.status_code, 400)
        self.assertFalse(PaymentRecord.objects.exists())

    @patch('payments.views.stripe.Webhook.construct_event')
    def test_webhook_rejects_invalid_signature(self, mock_construct_event):
        mock_construct_event.side_effect = stripe.SignatureVerificationError(
            'Invalid signature', 'sig_header'
        )

        payload = json.dumps({
            'id': 'evt_1',
            'type': 'payment_intent.succeeded',
            'data': {'object': make_intent()},
        })
        response = self.client.post(
            '/api/webhook',
            data=payload,
            content_type='application/json',
            HTTP_STRIPE_SIGNATURE='invalid_signature'
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Invalid signature')
        self.assertFalse(PaymentRecord.objects.exists())
        self.assertEqual(len(mail.outbox), 0)

    @override_settings(STRIPE_WEBHOOK_SECRET='')
    def test_webhook_requires_configured_secret(self):
        response = self.client.post(
            '/api/webhook',
            data=json.dumps({'id': 'evt_1', 'type': 'payment_intent.succeeded'}),
            content_type='application/json',
            HTTP_STRIPE_SIGNATURE='t=1,v1=abc'
        )
        self.assertEqual(response.status_code, 500)

    @patch('payments.views.stripe.Webhook.construct_event')
    def test_webhook_dispatches_verified_event(self, mock_construct_event):
        mock_construct_event.return_value = {
            'id': 'evt_verified',
            'type': 'payment_intent.succeeded',
            'data': {'object': make_intent(id='pi_verified', amount=20000)},
        }
        payload = json.dumps({'id': 'evt_raw', 'type': 'customer.created', 'data': {'object': {}}})

        response = self.client.post(
            '/api/webhook',
            data=payload,
            content_type='application/json',
            HTTP_STRIPE_SIGNATURE='t=1,v1=signature'
        )

        self.assertEqual(response.status_code, 200)
        mock_construct_event.assert_called_once_with(
            payload.encode(), 't=1,v1=signature', 'whsec_fake_secret_for_testing'
        )
        record = PaymentRecord.objects.get(stripe_payment_intent_id='pi_verified')
        self.assertEqual(record.status, 'succeeded')
        self.assertEqual(record.processed_events, ['evt_verified'])


@patch('payments.views.stripe.Webhook.construct_event', MagicMock(side_effect=construct_event))
class WebhookReconciliationTest(TestCase):
    def setUp(self):
        self.client = Client()
        self.customer = Customer.objects.create(
            name='Test User',
            email='test@example.com',
            address='1 Test St'
        )
        self.booking = Booking.objects.create(
            customer=self.customer,
            booking_id='TJ1700000000000',
            service_type='small_home',
            service_name='Small Single-Storey Home (2-3 bed)',
            total_amount_cents=20000,
            booking_date='2026-03-15',
            time_slot='weekend_morning',
            payment_type='deposit',
            deposit_required=True,
            deposit_cents=6000,
            amount_paid_cents=6000,
            payment_status='deposit_paid',
            stripe_payment_intent_id='pi_test123',
        )

    def send_event(self, event_type, obj, event_id='evt_test123'):
        return self.client.post(
            '/api/webhook',
            data=json.dumps({'id': event_id, 'type': event_type, 'data': {'object': obj}}),
            content_type='application/json',
            HTTP_STRIPE_SIGNATURE='t=1,v1=signature'
        )

    def succeeded_intent(self, **overrides):
        return make_intent(metadata={
            'customerEmail': 'test@example.com',
            'customerName': 'Test User',
            'bookingType': 'small_home',
            'paymentType': 'deposit',
        }, **overrides)

    def test_succeeded_event_sends_confirmation_once(self):
        response1 = self.send_event('payment_intent.succeeded', self.succeeded_intent())
        self.assertEqual(response1.status_code, 200)
        self.assertEqual(len(mail.outbox), 2)
        self.assertEqual(mail.outbox[0].to, ['test@example.com'])
        self.assertEqual(mail.outbox[1].to, ['owner@example.com'])

        response2 = self.send_event('payment_intent.succeeded', self.succeeded_intent())
        self.assertEqual(response2.status_code, 200)
        self.assertEqual(len(mail.outbox), 2)

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.amount_paid_cents, 6000)
        self.assertEqual(self.booking.payment_status, 'deposit_paid')

        record = PaymentRecord.objects.get(stripe_payment_intent_id='pi_test123')
        self.assertEqual(record.status, 'succeeded')
        self.assertEqual(record.processed_events, ['evt_test123'])
        self.assertIsNotNone(record.confirmation_sent_at)

    def test_distinct_events_for_same_intent_send_one_confirmation(self):
        self.send_event('payment_intent.succeeded', self.succeeded_intent(), event_id='evt_a')
        self.send_event('payment_intent.succeeded', self.succeeded_intent(), event_id='evt_b')

        self.assertEqual(len(mail.outbox), 2)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.amount_paid_cents, 6000)

    def test_processing_then_succeeded_reconciles_booking(self):
        self.booking.amount_paid_cents = 0
        self.booking.payment_status = 'unpaid'
        self.booking.save()

        self.send_event('payment_intent.processing', self.succeeded_intent(status='processing'), event_id='evt_p')
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.payment_status, 'deposit_paid')
        self.assertEqual(len(mail.outbox), 0)

        self.send_event('payment_intent.succeeded', self.succeeded_intent(), event_id='evt_s')
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.amount_paid_cents, 6000)
        self.assertEqual(self.booking.payment_status, 'deposit_paid')
        self.assertEqual(len(mail.outbox), 2)

    def test_full_amount_marks_paid_in_full(self):
        self.send_event('payment_intent.succeeded', self.succeeded_intent(amount=20000))

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.amount_paid_cents, 20000)
        self.assertEqual(self.booking.payment_status, 'paid_in_full')

    def test_failed_event_keeps_amount_and_notifies_once(self):
        failed = self.succeeded_intent(
            status='requires_payment_method',
            last_payment_error={'code': 'card_declined', 'message': 'Your card was declined.', 'type': 'card_error'},
        )
        response = self.send_event('payment_intent.payment_failed', failed, event_id='evt_f1')
        self.assertEqual(response.status_code, 200)

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.payment_status, 'failed')
        self.assertEqual(self.booking.amount_paid_cents, 6000)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn('Your card was declined.', mail.outbox[0].body)

        self.send_event('payment_intent.payment_failed', failed, event_id='evt_f2')
        self.assertEqual(len(mail.outbox), 1)

    def test_failed_event_without_email_does_not_notify(self):
        failed = make_intent(status='requires_payment_method', metadata={})
        self.send_event('payment_intent.payment_failed', failed)

        self.assertEqual(len(mail.outbox), 0)
        self.assertEqual(PaymentRecord.objects.get().status, 'failed')

    def test_failure_after_success_is_ignored(self):
        self.send_event('payment_intent.succeeded', self.succeeded_intent(), event_id='evt_s')
        self.send_event('payment_intent.payment_failed', self.succeeded_intent(status='requires_payment_method'),
                        event_id='evt_f')

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.payment_status, 'deposit_paid')
        self.assertEqual(PaymentRecord.objects.get().status, 'succeeded')

    def test_refund_marks_booking_refunded(self):
        self.send_event('payment_intent.succeeded', self.succeeded_intent(), event_id='evt_s')
        self.send_event('charge.refunded', {
            'id': 'ch_test123',
            'payment_intent': 'pi_test123',
            'amount': 6000,
            'currency': 'aud',
        }, event_id='evt_r')

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.payment_status, 'refunded')
        self.assertEqual(self.booking.amount_paid_cents, 6000)

        self.send_event('payment_intent.succeeded', self.succeeded_intent(amount=20000), event_id='evt_s2')
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.payment_status, 'refunded')

    def test_unknown_event_type_ignored(self):
        response = self.send_event('customer.created', {'id': 'cus_123'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'received': True})
        self.assertFalse(PaymentRecord.objects.exists())

    def test_success_before_booking_exists_is_recorded(self):
        intent = self.succeeded_intent(id='pi_early', amount=20000)
        response = self.send_event('payment_intent.succeeded', intent)

        self.assertEqual(response.status_code, 200)
        record = PaymentRecord.objects.get(stripe_payment_intent_id='pi_early')
        self.assertEqual(record.status, 'succeeded')
        self.assertEqual(record.amount_cents, 20000)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.amount_paid_cents, 6000)


class PaymentRecordEventIdempotencyTest(TestCase):
    def test_event_idempotency(self):
        record = PaymentRecord.objects.create(
            stripe_payment_intent_id='pi_test456',
            amount_cents=6000,
            currency='aud',
        )

        self.assertTrue(record.mark_event_processed('evt_test123'))
        self.assertIn('evt_test123', record.processed_events)
        self.assertFalse(record.mark_event_processed('evt_test123'))
