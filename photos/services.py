"""
Before/after photo sets and their delivery to the customer.

The newest photo of each type is the canonical one. The set is delivered by
email automatically once, the first time both types exist; later deliveries
only happen through an explicit ``send_photos_email`` call.
"""
import logging
import time
import uuid
from collections import namedtuple

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.utils import timezone

from bookings.models import Booking
from bookings.notifications import send_templated_email
from payments.errors import BookingValidationError, PhotoUnavailableError
from .models import Photo

logger = logging.getLogger(__name__)

PHOTO_DIR = 'tidyjacks-photos'
PHOTO_TYPES = ('before', 'after')
PUBLIC_PHOTO_PREFIX = '/api/public/photos/'

PhotoSet = namedtuple('PhotoSet', ['before', 'after'])


def save_upload(content):
    if not content:
        raise BookingValidationError('No photo data received')
    name = f"{PHOTO_DIR}/{time.time_ns() // 1_000_000}_{uuid.uuid4()}.jpg"
    saved_name = default_storage.save(name, ContentFile(content))
    return f"/{saved_name}"


def storage_name(storage_path):
    if not isinstance(storage_path, str):
        raise BookingValidationError('Invalid storage path')
    name = storage_path.lstrip('/')
    if not name.startswith(f"{PHOTO_DIR}/") or '..' in name.split('/'):
        raise BookingValidationError('Invalid storage path')
    return name


def public_url(storage_path):
    return f"{PUBLIC_PHOTO_PREFIX}{storage_name(storage_path)}"


def canonical_photos(booking):
    latest = {}
    for photo in Photo.objects.filter(booking=booking).order_by('-created_at', '-id'):
        latest.setdefault(photo.photo_type, photo)
    return PhotoSet(before=latest.get('before'), after=latest.get('after'))


def is_complete(booking):
    photo_set = canonical_photos(booking)
    return photo_set.before is not None and photo_set.after is not None


def claim_automatic_delivery(booking):
    """True for exactly one caller per booking."""
    claimed = Booking.objects.filter(pk=booking.pk, photos_delivered_at__isnull=True).update(
        photos_delivered_at=timezone.now(),
    )
    return bool(claimed)


def record_photo(booking, photo_type, storage_path):
    """Store photo metadata; returns ``(photo, has_complete_set, delivered)``."""
    if photo_type not in PHOTO_TYPES:
        raise BookingValidationError('Photo type must be "before" or "after"')

    name = storage_name(storage_path)
    if not default_storage.exists(name):
        raise BookingValidationError('Photo file not found')

    photo = Photo.objects.create(
        booking=booking,
        photo_type=photo_type,
        file_path=f"/{name}",
        file_url=public_url(storage_path),
    )

    complete = is_complete(booking)
    delivered = False
    if complete and claim_automatic_delivery(booking):
        try:
            send_photos_email(booking)
            delivered = True
        except Exception:
            logger.exception("Automatic photo delivery failed for %s", booking.booking_id)
    return photo, complete, delivered


def _read_photo(photo):
    try:
        with default_storage.open(storage_name(photo.file_path), 'rb') as fh:
            return fh.read()
    except OSError:
        logger.exception("Could not read %s photo for booking %s", photo.photo_type, photo.booking_id)
        raise PhotoUnavailableError()


def send_photos_email(booking):
    photo_set = canonical_photos(booking)
    if photo_set.before is None or photo_set.after is None:
        raise BookingValidationError('Both before and after photos are required')

    attachments = [
        (f"Before-Photo-{booking.booking_id}.jpg", _read_photo(photo_set.before), 'image/jpeg'),
        (f"After-Photo-{booking.booking_id}.jpg", _read_photo(photo_set.after), 'image/jpeg'),
    ]
    context = {
        'booking': booking,
        'customer': booking.customer,
        'before_url': f"{settings.PUBLIC_BASE_URL}{photo_set.before.file_url}",
        'after_url': f"{settings.PUBLIC_BASE_URL}{photo_set.after.file_url}",
        'attachment_names': [name for name, _, _ in attachments],
    }
    send_templated_email(
        f"{settings.BUSINESS_NAME} Cleaning Results - {booking.service_name}",
        booking.customer.email,
        'emails/photos_ready.txt',
        context,
        html_template='emails/photos_ready.html',
        attachments=attachments,
    )
    if booking.photos_delivered_at is None:
        Booking.objects.filter(pk=booking.pk, photos_delivered_at__isnull=True).update(
            photos_delivered_at=timezone.now(),
        )
    logger.info("Before/after photos sent to %s for booking %s", booking.customer.email, booking.booking_id)
