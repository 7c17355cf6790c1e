import logging

from django.core.files.storage import default_storage
from django.http import FileResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from bookings.auth import require_admin
from bookings.http import json_body
from bookings.services import find_booking
from payments.errors import BookingServiceError
from . import services

logger = logging.getLogger(__name__)


def serialize_photo(photo):
    if photo is None:
        return None
    return {
        'id': photo.id,
        'booking_id': photo.booking_id,
        'photo_type': photo.photo_type,
        'file_path': photo.file_path,
        'file_url': photo.file_url,
        'captured_at': photo.captured_at.isoformat(),
        'created_at': photo.created_at.isoformat(),
    }


@csrf_exempt
@require_http_methods(["POST"])
@require_admin
def direct_upload(request):
    try:
        storage_path = services.save_upload(request.body)
    except BookingServiceError as e:
        return e.to_response()
    return JsonResponse({
        'success': True,
        'storagePath': storage_path,
        'message': 'Photo uploaded successfully',
    })


@csrf_exempt
@require_http_methods(["POST"])
@require_admin
def save_photo(request):
    data = json_body(request)
    if data is None:
        return JsonResponse({'error': 'Invalid JSON'}, status=400)

    booking_ref = data.get('bookingId')
    photo_type = data.get('photoType')
    storage_path = data.get('storagePath')
    if not booking_ref or not photo_type or not storage_path:
        return JsonResponse({'error': 'Missing required fields'}, status=400)

    booking = find_booking(booking_ref)
    if booking is None:
        return JsonResponse({'error': 'Booking not found'}, status=404)

    try:
        photo, complete, delivered = services.record_photo(booking, photo_type, storage_path)
    except BookingServiceError as e:
        return e.to_response()

    return JsonResponse({
        'photo': serialize_photo(photo),
        'hasCompleteSet': complete,
        'emailSent': delivered,
    })


@require_http_methods(["GET"])
@require_admin
def booking_photos(request, booking_ref):
    booking = find_booking(booking_ref)
    if booking is None:
        return JsonResponse({'error': 'Booking not found'}, status=404)

    photo_set = services.canonical_photos(booking)
    return JsonResponse({
        'before': serialize_photo(photo_set.before),
        'after': serialize_photo(photo_set.after),
        'hasCompleteSet': photo_set.before is not None and photo_set.after is not None,
    })


@csrf_exempt
@require_http_methods(["POST"])
@require_admin
def send_photos(request):
    data = json_body(request)
    if data is None:
        return JsonResponse({'error': 'Invalid JSON'}, status=400)

    if not data.get('bookingId'):
        return JsonResponse({'error': 'Booking ID is required'}, status=400)

    booking = find_booking(data['bookingId'])
    if booking is None:
        return JsonResponse({'error': 'Booking not found'}, status=404)

    try:
        services.send_photos_email(booking)
    except BookingServiceError as e:
        return e.to_response()
    except Exception:
        logger.exception("Send photos email failed for %s", booking.booking_id)
        return JsonResponse({'error': 'Failed to send photos email'}, status=500)

    return JsonResponse({'success': True, 'message': 'Photos sent successfully'})


@require_http_methods(["GET"])
def public_photo(request, path):
    try:
        name = services.storage_name(path)
    except BookingServiceError:
        return JsonResponse({'error': 'Access denied'}, status=403)

    if not default_storage.exists(name):
        return JsonResponse({'error': 'Photo not found'}, status=404)

    response = FileResponse(default_storage.open(name, 'rb'), content_type='image/jpeg')
    response['Cache-Control'] = 'public, max-age=3600'
    return response
