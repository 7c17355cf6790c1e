from django.test import TestCase, Client
from django.core import mail
from unittest.mock import patch
import json

from bookings.models import Booking, Customer
from payments.errors import BookingValidationError
from . import services
from .models import Photo

ADMIN_AUTH = 'Bearer test-admin-secret'


def make_booking():
    customer = Customer.objects.create(
        name='Jane Citizen',
        email='jane@example.com',
        address='12 Harbour St, Sydney NSW'
    )
    return Booking.objects.create(
        customer=customer,
        booking_id='TJ1700000000000',
        service_type='small_home',
        service_name='Small Single-Storey Home (2-3 bed)',
        total_amount_cents=20000,
        booking_date='2026-03-15',
        time_slot='weekend_morning',
        payment_type='full',
    )


class PhotoDeliveryTest(TestCase):
    def setUp(self):
        self.booking = make_booking()

    def add_photo(self, photo_type, content):
        return services.record_photo(self.booking, photo_type, services.save_upload(content))

    def test_before_photo_alone_is_incomplete(self):
        photo, complete, delivered = self.add_photo('before', b'before-1')

        self.assertEqual(photo.photo_type, 'before')
        self.assertTrue(photo.file_path.startswith('/tidyjacks-photos/'))
        self.assertTrue(photo.file_url.startswith('/api/public/photos/tidyjacks-photos/'))
        self.assertFalse(complete)
        self.assertFalse(delivered)
        self.assertEqual(len(mail.outbox), 0)

    def test_complete_set_delivered_once(self):
        self.add_photo('before', b'before-1')
        _, complete, delivered = self.add_photo('after', b'after-1')

        self.assertTrue(complete)
        self.assertTrue(delivered)
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ['jane@example.com'])
        self.assertEqual(
            [attachment[0] for attachment in message.attachments],
            ['Before-Photo-TJ1700000000000.jpg', 'After-Photo-TJ1700000000000.jpg']
        )
        self.assertEqual(message.alternatives[0][1], 'text/html')

        self.booking.refresh_from_db()
        self.assertIsNotNone(self.booking.photos_delivered_at)

        _, complete, delivered = self.add_photo('after', b'after-2')
        self.assertTrue(complete)
        self.assertFalse(delivered)
        self.assertEqual(len(mail.outbox), 1)

    def test_newest_photo_of_each_type_is_canonical(self):
        self.add_photo('before', b'before-1')
        newer, _, _ = self.add_photo('before', b'before-2')

        photo_set = services.canonical_photos(self.booking)
        self.assertEqual(photo_set.before, newer)
        self.assertIsNone(photo_set.after)
        self.assertFalse(services.is_complete(self.booking))

    def test_invalid_photo_type(self):
        with self.assertRaises(BookingValidationError):
            services.record_photo(self.booking, 'during', '/tidyjacks-photos/x.jpg')
        self.assertFalse(Photo.objects.exists())

    def test_explicit_send_requires_both_photos(self):
        self.add_photo('before', b'before-1')

        with self.assertRaises(BookingValidationError):
            services.send_photos_email(self.booking)

    def test_failed_automatic_delivery_is_not_retried(self):
        self.add_photo('before', b'before-1')
        with patch('photos.services.send_photos_email', side_effect=OSError('smtp down')):
            _, complete, delivered = self.add_photo('after', b'after-1')

        self.assertTrue(complete)
        self.assertFalse(delivered)

        _, _, delivered = self.add_photo('after', b'after-2')
        self.assertFalse(delivered)
        self.assertEqual(len(mail.outbox), 0)

    def test_missing_file_rejected_without_using_delivery(self):
        self.add_photo('before', b'before-1')

        with self.assertRaises(BookingValidationError):
            services.record_photo(self.booking, 'after', '/tidyjacks-photos/never-uploaded.jpg')

        self.assertEqual(Photo.objects.count(), 1)
        self.booking.refresh_from_db()
        self.assertIsNone(self.booking.photos_delivered_at)

        _, complete, delivered = self.add_photo('after', b'after-1')
        self.assertTrue(complete)
        self.assertTrue(delivered)
        self.assertEqual(len(mail.outbox), 1)

    def test_storage_path_validation(self):
        self.assertEqual(services.storage_name('/tidyjacks-photos/a.jpg'), 'tidyjacks-photos/a.jpg')
        for bad in ['/etc/passwd', '/tidyjacks-photos/../settings.py', 'other/a.jpg']:
            with self.assertRaises(BookingValidationError):
                services.storage_name(bad)

    def test_empty_upload_rejected(self):
        with self.assertRaises(BookingValidationError):
            services.save_upload(b'')


class PhotoApiTest(TestCase):
    def setUp(self):
        self.client = Client()
        self.booking = make_booking()

    def upload(self, content):
        response = self.client.post(
            '/api/admin/photos/direct-upload',
            data=content,
            content_type='image/jpeg',
            HTTP_AUTHORIZATION=ADMIN_AUTH
        )
        self.assertEqual(response.status_code, 200)
        return response.json()['storagePath']

    def save(self, photo_type, storage_path, booking_ref='TJ1700000000000'):
        return self.client.post(
            '/api/admin/photos',
            data=json.dumps({'bookingId': booking_ref, 'photoType': photo_type, 'storagePath': storage_path}),
            content_type='application/json',
            HTTP_AUTHORIZATION=ADMIN_AUTH
        )

    def test_upload_requires_admin(self):
        response = self.client.post('/api/admin/photos/direct-upload', data=b'jpeg', content_type='image/jpeg')
        self.assertEqual(response.status_code, 401)

    def test_empty_upload_rejected(self):
        response = self.client.post(
            '/api/admin/photos/direct-upload',
            data=b'',
            content_type='image/jpeg',
            HTTP_AUTHORIZATION=ADMIN_AUTH
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'No photo data received')

    def test_upload_save_and_deliver(self):
        before_path = self.upload(b'\xff\xd8before')
        response = self.save('before', before_path)
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()['hasCompleteSet'])
        self.assertFalse(response.json()['emailSent'])

        response = self.save('after', self.upload(b'\xff\xd8after'))
        data = response.json()
        self.assertTrue(data['hasCompleteSet'])
        self.assertTrue(data['emailSent'])
        self.assertEqual(data['photo']['photo_type'], 'after')
        self.assertEqual(len(mail.outbox), 1)

        response = self.client.get('/api/admin/photos/booking/TJ1700000000000', HTTP_AUTHORIZATION=ADMIN_AUTH)
        data = response.json()
        self.assertTrue(data['hasCompleteSet'])
        self.assertEqual(data['before']['file_path'], before_path)

    def test_explicit_resend(self):
        self.save('before', self.upload(b'\xff\xd8before'))
        self.save('after', self.upload(b'\xff\xd8after'))
        self.assertEqual(len(mail.outbox), 1)

        response = self.client.post(
            '/api/admin/photos/send-email',
            data=json.dumps({'bookingId': 'TJ1700000000000'}),
            content_type='application/json',
            HTTP_AUTHORIZATION=ADMIN_AUTH
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'success': True, 'message': 'Photos sent successfully'})
        self.assertEqual(len(mail.outbox), 2)
        self.assertEqual(mail.outbox[1].attachments[1][1], b'\xff\xd8after')

    def test_send_without_complete_set(self):
        self.save('before', self.upload(b'\xff\xd8before'))

        response = self.client.post(
            '/api/admin/photos/send-email',
            data=json.dumps({'bookingId': 'TJ1700000000000'}),
            content_type='application/json',
            HTTP_AUTHORIZATION=ADMIN_AUTH
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(len(mail.outbox), 0)

    def test_save_for_unknown_booking(self):
        response = self.save('before', self.upload(b'\xff\xd8before'), booking_ref='TJ999')
        self.assertEqual(response.status_code, 404)

    def test_save_for_missing_file(self):
        response = self.save('before', '/tidyjacks-photos/never-uploaded.jpg')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Photo file not found')
        self.assertFalse(Photo.objects.exists())

    def test_non_string_storage_path_rejected(self):
        response = self.save('before', {'path': '/tidyjacks-photos/a.jpg'})
        self.assertEqual(response.status_code, 400)

    def test_non_object_body_rejected(self):
        for url in ['/api/admin/photos', '/api/admin/photos/send-email']:
            response = self.client.post(url, data='[]', content_type='application/json',
                                        HTTP_AUTHORIZATION=ADMIN_AUTH)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json(), {'error': 'Invalid JSON'})

    def test_public_photo_served(self):
        storage_path = self.upload(b'\xff\xd8public')

        response = self.client.get(f"/api/public/photos{storage_path}")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'image/jpeg')
        self.assertEqual(b''.join(response.streaming_content), b'\xff\xd8public')
        response.close()

    def test_public_photo_outside_photo_directory_denied(self):
        response = self.client.get('/api/public/photos/config/settings.py')
        self.assertEqual(response.status_code, 403)

    def test_public_photo_missing(self):
        response = self.client.get('/api/public/photos/tidyjacks-photos/missing.jpg')
        self.assertEqual(response.status_code, 404)
