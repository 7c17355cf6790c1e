import logging

from django.db.models import F, Sum
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from payments.errors import BookingServiceError, BookingValidationError
from payments.verification import verify_payment
from . import reconciliation
from .auth import require_admin
from .http import json_body
from .models import Booking, Customer
from .ratelimit import admin_limiter, booking_limiter, rate_limited
from .serializers import BookingRequestSerializer, first_error
from .services import create_booking as save_booking, find_booking

logger = logging.getLogger(__name__)


def serialize_customer(customer):
    if customer is None:
        return None
    return {
        'id': customer.id,
        'name': customer.name,
        'email': customer.email,
        'phone': customer.phone,
        'address': customer.address,
        'created_at': customer.created_at.isoformat(),
    }


def serialize_booking(booking, include_customer=False):
    data = {
        'id': booking.id,
        'booking_id': booking.booking_id,
        'service_type': booking.service_type,
        'service_name': booking.service_name,
        'total_amount_cents': booking.total_amount_cents,
        'booking_date': str(booking.booking_date),
        'time_slot': booking.time_slot,
        'notes': booking.notes,
        'payment_type': booking.payment_type,
        'deposit_required': booking.deposit_required,
        'deposit_cents': booking.deposit_cents,
        'amount_paid_cents': booking.amount_paid_cents,
        'remaining_balance_cents': booking.remaining_balance_cents,
        'payment_status': booking.payment_status,
        'job_status': booking.job_status,
        'stripe_payment_intent_id': booking.stripe_payment_intent_id,
        'completed_at': booking.completed_at.isoformat() if booking.completed_at else None,
        'created_at': booking.created_at.isoformat(),
        'updated_at': booking.updated_at.isoformat(),
    }
    if include_customer:
        data['customer'] = serialize_customer(booking.customer)
    return data


@require_http_methods(["GET"])
def health(request):
    return JsonResponse({'status': 'OK', 'timestamp': timezone.now().isoformat()})


@csrf_exempt
@require_http_methods(["POST"])
@rate_limited(booking_limiter)
def create_booking(request):
    data = json_body(request)
    if data is None:
        return JsonResponse({'error': 'Invalid JSON'}, status=400)

    serializer = BookingRequestSerializer(data=data)
    if not serializer.is_valid():
        return BookingValidationError(first_error(serializer.errors)).to_response()
    validated = serializer.validated_data

    try:
        verified_payment = verify_payment(
            validated['service'],
            payment_intent_id=validated.get('paymentIntentId'),
            payment_type=validated.get('paymentType'),
        )
        booking = save_booking(validated, verified_payment)
    except BookingServiceError as e:
        return e.to_response()
    except Exception:
        logger.exception('Booking error')
        return JsonResponse({'error': 'Failed to process booking'}, status=500)

    return JsonResponse({
        'success': True,
        'message': 'Booking received successfully!',
        'bookingId': booking.booking_id,
    })


@require_http_methods(["GET"])
@require_admin
def admin_dashboard(request):
    bookings = Booking.objects.select_related('customer')
    outstanding = bookings.filter(total_amount_cents__gt=F('amount_paid_cents'))

    total_revenue = bookings.filter(payment_status=reconciliation.PAID_IN_FULL).aggregate(
        total=Sum('amount_paid_cents'))['total'] or 0
    pending_revenue = outstanding.aggregate(
        total=Sum(F('total_amount_cents') - F('amount_paid_cents')))['total'] or 0

    return JsonResponse({
        'totalCustomers': Customer.objects.count(),
        'totalBookings': bookings.count(),
        'pendingPayments': bookings.filter(
            payment_status__in=[reconciliation.UNPAID, reconciliation.DEPOSIT_PAID]).count(),
        'totalRevenueCents': total_revenue,
        'pendingRevenueCents': pending_revenue,
        'recentBookings': [serialize_booking(b, include_customer=True) for b in bookings[:5]],
    })


@require_http_methods(["GET"])
@require_admin
def admin_bookings(request):
    bookings = Booking.objects.select_related('customer')
    return JsonResponse([serialize_booking(b, include_customer=True) for b in bookings], safe=False)


@require_http_methods(["GET"])
@require_admin
def admin_bookings_with_balance(request):
    bookings = Booking.objects.select_related('customer').filter(total_amount_cents__gt=F('amount_paid_cents'))
    return JsonResponse([serialize_booking(b, include_customer=True) for b in bookings], safe=False)


@require_http_methods(["GET"])
@require_admin
def admin_customers(request):
    return JsonResponse([serialize_customer(c) for c in Customer.objects.all()], safe=False)


@csrf_exempt
@require_http_methods(["PUT"])
@require_admin
@rate_limited(admin_limiter)
def admin_update_payment(request):
    data = json_body(request)
    if data is None:
        return JsonResponse({'error': 'Invalid JSON'}, status=400)

    booking_ref = data.get('bookingId')
    amount_paid_cents = data.get('amountPaidCents')
    if not booking_ref or amount_paid_cents is None:
        return JsonResponse({'error': 'Missing required fields'}, status=400)

    booking = find_booking(booking_ref)
    if booking is None:
        return JsonResponse({'error': 'Booking not found'}, status=404)

    try:
        reconciliation.apply_manual_update(
            booking,
            amount_paid_cents,
            payment_status=data.get('paymentStatus'),
            payment_intent_id=data.get('stripePaymentIntentId'),
        )
    except BookingServiceError as e:
        return e.to_response()

    return JsonResponse({
        'message': 'Payment status updated successfully',
        'booking': serialize_booking(booking),
    })


@csrf_exempt
@require_http_methods(["PUT"])
@require_admin
def admin_update_job(request):
    data = json_body(request)
    if data is None:
        return JsonResponse({'error': 'Invalid JSON'}, status=400)

    job_status = data.get('jobStatus')
    if job_status not in dict(Booking.JOB_STATUS_CHOICES):
        return JsonResponse({'error': 'Invalid job status'}, status=400)

    booking = find_booking(data.get('bookingId'))
    if booking is None:
        return JsonResponse({'error': 'Booking not found'}, status=404)

    booking.job_status = job_status
    booking.completed_at = timezone.now() if job_status == 'completed' else None
    booking.save(update_fields=['job_status', 'completed_at', 'updated_at'])

    return JsonResponse({
        'message': 'Job status updated successfully',
        'booking': serialize_booking(booking),
    })
