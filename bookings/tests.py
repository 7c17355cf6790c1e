from django.test import TestCase, Client, override_settings
from django.core import mail
from django.core.mail import EmailMultiAlternatives
from django.db import DatabaseError
from unittest.mock import patch
import json
import requests

from payments.errors import BookingValidationError
from payments.models import PaymentRecord
from . import notifications, reconciliation
from .mail import ConnectorEmailBackend
from .models import Booking, Customer
from .ratelimit import SlidingWindowRateLimiter, admin_limiter, booking_limiter

ADMIN_AUTH = 'Bearer test-admin-secret'


def make_booking(booking_id='TJ1700000000000', email='test@example.com', **overrides):
    customer, _ = Customer.objects.get_or_create(
        email=email,
        defaults={'name': 'Test User', 'address': '1 Test St'}
    )
    fields = {
        'customer': customer,
        'booking_id': booking_id,
        'service_type': 'small_home',
        'service_name': 'Small Single-Storey Home (2-3 bed)',
        'total_amount_cents': 20000,
        'booking_date': '2026-03-15',
        'time_slot': 'weekend_morning',
        'payment_type': 'deposit',
        'deposit_required': True,
        'deposit_cents': 6000,
    }
    fields.update(overrides)
    return Booking.objects.create(**fields)


class PaymentStatusDerivationTest(TestCase):
    def test_thresholds(self):
        derive = reconciliation.derive_payment_status
        self.assertEqual(derive(0, 20000, 6000), 'unpaid')
        self.assertEqual(derive(5999, 20000, 6000), 'unpaid')
        self.assertEqual(derive(6000, 20000, 6000), 'deposit_paid')
        self.assertEqual(derive(19999, 20000, 6000), 'deposit_paid')
        self.assertEqual(derive(20000, 20000, 6000), 'paid_in_full')

    def test_full_payment_only_service(self):
        self.assertEqual(reconciliation.derive_payment_status(2500, 2500, 2500), 'paid_in_full')
        self.assertEqual(reconciliation.derive_payment_status(0, 2500, 2500), 'unpaid')


class ReconcilePaymentTest(TestCase):
    def setUp(self):
        self.booking = make_booking(stripe_payment_intent_id='pi_test123')

    def test_deposit_then_full(self):
        self.assertTrue(reconciliation.reconcile_payment(self.booking, 6000, 'pi_test123'))
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.payment_status, 'deposit_paid')

        self.assertTrue(reconciliation.reconcile_payment(self.booking, 20000, 'pi_test123'))
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.amount_paid_cents, 20000)
        self.assertEqual(self.booking.payment_status, 'paid_in_full')

    def test_smaller_amount_never_regresses(self):
        reconciliation.reconcile_payment(self.booking, 20000, 'pi_test123')

        self.assertFalse(reconciliation.reconcile_payment(self.booking, 6000, 'pi_test123'))
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.amount_paid_cents, 20000)
        self.assertEqual(self.booking.payment_status, 'paid_in_full')

    def test_amount_clamped_to_total(self):
        reconciliation.reconcile_payment(self.booking, 25000, 'pi_test123')

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.amount_paid_cents, 20000)
        self.assertEqual(self.booking.payment_status, 'paid_in_full')

    def test_refunded_booking_left_alone(self):
        reconciliation.mark_payment_refunded('pi_test123')

        self.assertFalse(reconciliation.reconcile_payment(self.booking, 20000, 'pi_test123'))
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.payment_status, 'refunded')
        self.assertEqual(self.booking.amount_paid_cents, 0)

    def test_reconcile_intent_matches_by_payment_intent(self):
        make_booking(booking_id='TJ1700000000001', stripe_payment_intent_id='pi_other')

        self.assertEqual(reconciliation.reconcile_intent('pi_test123', 6000), 1)
        self.assertEqual(Booking.objects.get(booking_id='TJ1700000000001').payment_status, 'unpaid')


class ManualPaymentUpdateTest(TestCase):
    def setUp(self):
        self.booking = make_booking()

    def test_status_derived_from_amount(self):
        reconciliation.apply_manual_update(self.booking, 6000)
        self.assertEqual(self.booking.payment_status, 'deposit_paid')

        reconciliation.apply_manual_update(self.booking, 20000, payment_status='paid_in_full')
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.payment_status, 'paid_in_full')

    def test_disagreeing_status_rejected(self):
        with self.assertRaises(BookingValidationError):
            reconciliation.apply_manual_update(self.booking, 20000, payment_status='deposit_paid')

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.amount_paid_cents, 0)

    def test_explicit_statuses_allowed(self):
        reconciliation.apply_manual_update(self.booking, 6000, payment_status='refunded')

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.payment_status, 'refunded')
        self.assertEqual(self.booking.amount_paid_cents, 6000)

    def test_invalid_amounts_rejected(self):
        for amount in [-1, 20001, '6000', 60.5, True]:
            with self.assertRaises(BookingValidationError):
                reconciliation.apply_manual_update(self.booking, amount)


class SlidingWindowRateLimiterTest(TestCase):
    def test_limit_and_window(self):
        now = [1000.0]
        limiter = SlidingWindowRateLimiter(2, 60, clock=lambda: now[0])

        self.assertTrue(limiter.allow('1.2.3.4'))
        self.assertTrue(limiter.allow('1.2.3.4'))
        self.assertFalse(limiter.allow('1.2.3.4'))
        self.assertTrue(limiter.allow('5.6.7.8'))

        now[0] += 61
        self.assertTrue(limiter.allow('1.2.3.4'))

    def test_reset(self):
        limiter = SlidingWindowRateLimiter(1, 60)
        self.assertTrue(limiter.allow('key'))
        self.assertFalse(limiter.allow('key'))

        limiter.reset()
        self.assertTrue(limiter.allow('key'))


class BookingCreationTest(TestCase):
    def setUp(self):
        self.client = Client()
        booking_limiter.reset()

    def post(self, payload):
        return self.client.post(
            '/api/booking',
            data=json.dumps(payload),
            content_type='application/json'
        )

    def booking_payload(self, **overrides):
        payload = {
            'name': 'Jane Citizen',
            'email': 'jane@example.com',
            'phone': '0412 345 678',
            'address': '12 Harbour St, Sydney NSW',
            'service': 'small_home',
            'date': '2026-03-15',
            'slot': 'weekend_morning',
            'notes': 'Side gate is unlocked',
        }
        payload.update(overrides)
        return payload

    @patch('payments.verification.stripe.PaymentIntent.retrieve')
    def test_deposit_booking_records_verified_payment(self, mock_retrieve):
        mock_retrieve.return_value = {'id': 'pi_dep', 'amount': 6000, 'currency': 'aud', 'status': 'succeeded'}

        response = self.post(self.booking_payload(paymentIntentId='pi_dep', paymentType='deposit'))

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertTrue(data['success'])
        self.assertEqual(data['message'], 'Booking received successfully!')
        self.assertTrue(data['bookingId'].startswith('TJ'))

        booking = Booking.objects.get(booking_id=data['bookingId'])
        self.assertEqual(booking.total_amount_cents, 20000)
        self.assertEqual(booking.amount_paid_cents, 6000)
        self.assertEqual(booking.deposit_cents, 6000)
        self.assertTrue(booking.deposit_required)
        self.assertEqual(booking.payment_type, 'deposit')
        self.assertEqual(booking.payment_status, 'deposit_paid')
        self.assertEqual(booking.stripe_payment_intent_id, 'pi_dep')
        self.assertEqual(booking.customer.email, 'jane@example.com')

        record = PaymentRecord.objects.get(stripe_payment_intent_id='pi_dep')
        self.assertEqual(record.status, 'succeeded')
        self.assertEqual(record.amount_cents, 6000)

        self.assertEqual(len(mail.outbox), 2)
        self.assertEqual(mail.outbox[0].to, ['jane@example.com'])
        self.assertIn(data['bookingId'], mail.outbox[0].subject)
        self.assertIn('$60.00', mail.outbox[0].body)
        self.assertEqual(mail.outbox[1].to, ['owner@example.com'])

    @patch('payments.verification.stripe.PaymentIntent.retrieve')
    def test_small_service_deposit_is_full_payment(self, mock_retrieve):
        mock_retrieve.return_value = {'id': 'pi_shop', 'amount': 2500, 'currency': 'aud', 'status': 'succeeded'}

        response = self.post(self.booking_payload(
            service='small_shopfront', paymentIntentId='pi_shop', paymentType='deposit'))

        self.assertEqual(response.status_code, 200)
        booking = Booking.objects.get(booking_id=response.json()['bookingId'])
        self.assertEqual(booking.payment_type, 'full')
        self.assertFalse(booking.deposit_required)
        self.assertEqual(booking.deposit_cents, 0)
        self.assertEqual(booking.amount_paid_cents, 2500)
        self.assertEqual(booking.payment_status, 'paid_in_full')

    @patch('payments.verification.stripe.PaymentIntent.retrieve')
    def test_processing_payment_counts_towards_booking(self, mock_retrieve):
        mock_retrieve.return_value = {'id': 'pi_proc', 'amount': 20000, 'currency': 'aud', 'status': 'processing'}

        response = self.post(self.booking_payload(paymentIntentId='pi_proc', paymentType='full'))

        self.assertEqual(response.status_code, 200)
        booking = Booking.objects.get(booking_id=response.json()['bookingId'])
        self.assertEqual(booking.payment_status, 'paid_in_full')
        self.assertEqual(PaymentRecord.objects.get(stripe_payment_intent_id='pi_proc').status, 'processing')

    @patch('payments.verification.stripe.PaymentIntent.retrieve')
    def test_booking_without_payment_is_unpaid(self, mock_retrieve):
        response = self.post(self.booking_payload())

        self.assertEqual(response.status_code, 200)
        mock_retrieve.assert_not_called()
        booking = Booking.objects.get(booking_id=response.json()['bookingId'])
        self.assertEqual(booking.amount_paid_cents, 0)
        self.assertEqual(booking.payment_status, 'unpaid')
        self.assertEqual(booking.payment_type, 'full')
        self.assertFalse(PaymentRecord.objects.exists())

    @patch('payments.verification.stripe.PaymentIntent.retrieve')
    def test_incomplete_payment_creates_nothing(self, mock_retrieve):
        mock_retrieve.return_value = {'id': 'pi_act', 'amount': 6000, 'currency': 'aud', 'status': 'requires_action'}

        response = self.post(self.booking_payload(paymentIntentId='pi_act', paymentType='deposit'))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'payment_not_completed')
        self.assertFalse(Booking.objects.exists())
        self.assertFalse(Customer.objects.exists())
        self.assertEqual(len(mail.outbox), 0)

    @patch('payments.verification.stripe.PaymentIntent.retrieve')
    def test_amount_mismatch_creates_nothing(self, mock_retrieve):
        mock_retrieve.return_value = {'id': 'pi_low', 'amount': 100, 'currency': 'aud', 'status': 'succeeded'}

        response = self.post(self.booking_payload(paymentIntentId='pi_low', paymentType='deposit'))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {'error': 'Payment amount verification failed', 'code': 'amount_mismatch'})
        self.assertFalse(Booking.objects.exists())

    @patch('payments.verification.stripe.PaymentIntent.retrieve')
    def test_wrong_currency_creates_nothing(self, mock_retrieve):
        mock_retrieve.return_value = {'id': 'pi_usd', 'amount': 6000, 'currency': 'usd', 'status': 'succeeded'}

        response = self.post(self.booking_payload(paymentIntentId='pi_usd', paymentType='deposit'))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'currency_mismatch')
        self.assertFalse(Booking.objects.exists())

    def test_validation_errors(self):
        cases = [
            ({'name': ''}, 'Missing required fields'),
            ({'email': 'not-an-email'}, 'Invalid email format'),
            ({'name': 'x' * 101}, 'Name too long'),
            ({'phone': 'call me'}, 'Invalid phone number format'),
            ({'address': 'x' * 501}, 'Address too long'),
            ({'notes': 'x' * 1001}, 'Notes too long'),
            ({'service': 'castle'}, 'Invalid service type'),
            ({'date': '15/03/2026'}, 'Invalid date format'),
            ({'date': '2026-02-30'}, 'Invalid date format'),
            ({'paymentType': 'half'}, 'Invalid payment type'),
        ]
        for overrides, message in cases:
            response = self.post(self.booking_payload(**overrides))
            self.assertEqual(response.status_code, 400, overrides)
            self.assertEqual(response.json()['error'], message)

        self.assertFalse(Booking.objects.exists())

    def test_missing_field_rejected(self):
        payload = self.booking_payload()
        del payload['address']

        response = self.post(payload)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Missing required fields')

    def test_angle_brackets_stripped(self):
        response = self.post(self.booking_payload(name='<b>Jane</b>', notes='<script>x</script>'))

        booking = Booking.objects.get(booking_id=response.json()['bookingId'])
        self.assertEqual(booking.customer.name, 'bJane/b')
        self.assertEqual(booking.notes, 'scriptx/script')

    @patch('payments.verification.stripe.PaymentIntent.retrieve')
    def test_payment_intent_cannot_be_reused(self, mock_retrieve):
        mock_retrieve.return_value = {'id': 'pi_once', 'amount': 6000, 'currency': 'aud', 'status': 'succeeded'}
        payload = self.booking_payload(paymentIntentId='pi_once', paymentType='deposit')

        self.assertEqual(self.post(payload).status_code, 200)
        response = self.post(dict(payload, email='someone.else@example.com', date='2026-04-01'))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'payment_already_used')
        self.assertEqual(Booking.objects.filter(stripe_payment_intent_id='pi_once').count(), 1)
        self.assertFalse(Customer.objects.filter(email='someone.else@example.com').exists())
        self.assertEqual(len(mail.outbox), 2)

    @patch('payments.verification.stripe.PaymentIntent.retrieve')
    def test_concurrent_reuse_caught_by_constraint(self, mock_retrieve):
        mock_retrieve.return_value = {'id': 'pi_race', 'amount': 6000, 'currency': 'aud', 'status': 'succeeded'}
        payload = self.booking_payload(paymentIntentId='pi_race', paymentType='deposit')
        self.post(payload)

        with patch('bookings.services.ensure_payment_unused'):
            response = self.post(dict(payload, date='2026-04-01'))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'payment_already_used')
        self.assertEqual(Booking.objects.count(), 1)

    def test_non_object_body_rejected(self):
        for body in ['[]', '1', '"x"']:
            response = self.client.post('/api/booking', data=body, content_type='application/json')
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json(), {'error': 'Invalid JSON'})

    def test_customer_reused_by_email(self):
        self.post(self.booking_payload())
        self.post(self.booking_payload(name='Jane C', date='2026-04-01'))

        self.assertEqual(Customer.objects.count(), 1)
        self.assertEqual(Booking.objects.count(), 2)
        self.assertEqual(Customer.objects.get().bookings.count(), 2)

    def test_persistence_failure_sends_no_email(self):
        with patch('bookings.services.Booking.objects.create', side_effect=DatabaseError('disk full')):
            response = self.post(self.booking_payload())

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()['code'], 'persistence_failed')
        self.assertEqual(len(mail.outbox), 0)

    def test_booking_requests_are_rate_limited(self):
        for _ in range(10):
            response = self.client.post('/api/booking', data='not json', content_type='application/json')
            self.assertEqual(response.status_code, 400)

        response = self.post(self.booking_payload())
        self.assertEqual(response.status_code, 429)
        self.assertFalse(Booking.objects.exists())

    def test_health(self):
        response = self.client.get('/api/health')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'OK')


class AdminAuthTest(TestCase):
    def setUp(self):
        self.client = Client()

    def test_missing_token_rejected(self):
        response = self.client.get('/api/admin/bookings')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['error'], 'Admin authentication required')

    def test_wrong_token_rejected(self):
        response = self.client.get('/api/admin/bookings', HTTP_AUTHORIZATION='Bearer wrong')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['error'], 'Invalid admin credentials')

    @override_settings(ADMIN_PASSWORD='')
    def test_unconfigured_password_fails_closed(self):
        response = self.client.get('/api/admin/bookings', HTTP_AUTHORIZATION='Bearer ')
        self.assertEqual(response.status_code, 500)


class AdminApiTest(TestCase):
    def setUp(self):
        self.client = Client()
        admin_limiter.reset()
        self.paid = make_booking(
            booking_id='TJ1', email='paid@example.com', amount_paid_cents=20000, payment_status='paid_in_full')
        self.deposit = make_booking(
            booking_id='TJ2', email='deposit@example.com', amount_paid_cents=6000, payment_status='deposit_paid')
        self.unpaid = make_booking(
            booking_id='TJ3', email='unpaid@example.com', service_type='small_shopfront',
            service_name='Small Shopfront (Outside Only)', total_amount_cents=2500,
            payment_type='full', deposit_required=False, deposit_cents=0)

    def put(self, url, payload):
        return self.client.put(
            url,
            data=json.dumps(payload),
            content_type='application/json',
            HTTP_AUTHORIZATION=ADMIN_AUTH
        )

    def test_dashboard(self):
        response = self.client.get('/api/admin/dashboard', HTTP_AUTHORIZATION=ADMIN_AUTH)

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['totalCustomers'], 3)
        self.assertEqual(data['totalBookings'], 3)
        self.assertEqual(data['pendingPayments'], 2)
        self.assertEqual(data['totalRevenueCents'], 20000)
        self.assertEqual(data['pendingRevenueCents'], 14000 + 2500)
        self.assertEqual(len(data['recentBookings']), 3)

    def test_bookings_with_balance(self):
        response = self.client.get('/api/admin/bookings/balance', HTTP_AUTHORIZATION=ADMIN_AUTH)

        ids = {b['booking_id'] for b in response.json()}
        self.assertEqual(ids, {'TJ2', 'TJ3'})

    def test_customers(self):
        response = self.client.get('/api/admin/customers', HTTP_AUTHORIZATION=ADMIN_AUTH)

        self.assertEqual(len(response.json()), 3)

    def test_payment_update_derives_status(self):
        response = self.put('/api/admin/payment/update', {
            'bookingId': 'TJ2',
            'amountPaidCents': 20000,
            'stripePaymentIntentId': 'pi_balance',
        })

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['booking']['payment_status'], 'paid_in_full')
        self.deposit.refresh_from_db()
        self.assertEqual(self.deposit.amount_paid_cents, 20000)
        self.assertEqual(self.deposit.stripe_payment_intent_id, 'pi_balance')

    def test_payment_update_rejects_inconsistent_status(self):
        response = self.put('/api/admin/payment/update', {
            'bookingId': 'TJ3',
            'amountPaidCents': 0,
            'paymentStatus': 'paid_in_full',
        })

        self.assertEqual(response.status_code, 400)
        self.unpaid.refresh_from_db()
        self.assertEqual(self.unpaid.payment_status, 'unpaid')

    def test_payment_update_unknown_booking(self):
        response = self.put('/api/admin/payment/update', {'bookingId': 'TJ999', 'amountPaidCents': 0})
        self.assertEqual(response.status_code, 404)

    def test_job_update(self):
        response = self.put('/api/admin/job/update', {'bookingId': 'TJ1', 'jobStatus': 'completed'})

        self.assertEqual(response.status_code, 200)
        self.paid.refresh_from_db()
        self.assertEqual(self.paid.job_status, 'completed')
        self.assertIsNotNone(self.paid.completed_at)

        response = self.put('/api/admin/job/update', {'bookingId': self.paid.pk, 'jobStatus': 'in_progress'})
        self.paid.refresh_from_db()
        self.assertEqual(self.paid.job_status, 'in_progress')
        self.assertIsNone(self.paid.completed_at)

    def test_payment_update_rejects_intent_of_another_booking(self):
        Booking.objects.filter(pk=self.paid.pk).update(stripe_payment_intent_id='pi_taken')

        response = self.put('/api/admin/payment/update', {
            'bookingId': 'TJ2',
            'amountPaidCents': 20000,
            'stripePaymentIntentId': 'pi_taken',
        })

        self.assertEqual(response.status_code, 400)
        self.deposit.refresh_from_db()
        self.assertEqual(self.deposit.amount_paid_cents, 6000)
        self.assertEqual(self.deposit.stripe_payment_intent_id, '')

    def test_job_update_invalid_status(self):
        response = self.put('/api/admin/job/update', {'bookingId': 'TJ1', 'jobStatus': 'done'})
        self.assertEqual(response.status_code, 400)


class NotificationCurrencyTest(TestCase):
    @override_settings(DEFAULT_CURRENCY='nzd')
    def test_currency_label_follows_settings(self):
        record = PaymentRecord(
            stripe_payment_intent_id='pi_nzd',
            amount_cents=6000,
            currency='nzd',
            customer_email='jane@example.com',
            customer_name='Jane',
        )

        notifications.send_payment_confirmation(record)
        notifications.send_payment_failure(record, 'Card declined')

        self.assertEqual(len(mail.outbox), 3)
        self.assertTrue(mail.outbox[1].subject.endswith('$60.00 NZD'))
        for message in mail.outbox:
            self.assertIn('$60.00 NZD', message.body)
            self.assertNotIn('AUD', message.body)


@override_settings(MAILER_API_URL='https://mailer.example.com/send', MAILER_API_TOKEN='mailer-token')
class ConnectorEmailBackendTest(TestCase):
    def make_message(self):
        message = EmailMultiAlternatives(
            subject='Cleaning Results',
            body='Your photos are attached.',
            from_email='bookings@example.com',
            to=['jane@example.com'],
        )
        message.attach_alternative('<p>Your photos are attached.</p>', 'text/html')
        message.attach('Before-Photo-TJ1.jpg', b'abc', 'image/jpeg')
        return message

    @patch('bookings.mail.requests.post')
    def test_posts_json_payload(self, mock_post):
        sent = ConnectorEmailBackend().send_messages([self.make_message()])

        self.assertEqual(sent, 1)
        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], 'https://mailer.example.com/send')
        self.assertEqual(kwargs['headers']['Authorization'], 'Bearer mailer-token')
        payload = kwargs['json']
        self.assertEqual(payload['to'], ['jane@example.com'])
        self.assertEqual(payload['subject'], 'Cleaning Results')
        self.assertEqual(payload['html'], '<p>Your photos are attached.</p>')
        self.assertEqual(payload['attachments'], [{
            'filename': 'Before-Photo-TJ1.jpg',
            'content': 'YWJj',
            'contentType': 'image/jpeg',
            'encoding': 'base64',
        }])

    @patch('bookings.mail.requests.post')
    def test_connector_failure(self, mock_post):
        mock_post.side_effect = requests.ConnectionError('unreachable')

        with self.assertRaises(requests.ConnectionError):
            ConnectorEmailBackend().send_messages([self.make_message()])

        self.assertEqual(ConnectorEmailBackend(fail_silently=True).send_messages([self.make_message()]), 0)
