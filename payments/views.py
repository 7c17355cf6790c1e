import logging

import stripe
from django.conf import settings
from django.db import DatabaseError, transaction
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from bookings import notifications, reconciliation
from bookings.http import json_body
from bookings.ratelimit import payment_limiter, rate_limited
from . import ledger, pricing
from .errors import BookingServiceError, ProviderUnavailableError, WebhookSignatureError

logger = logging.getLogger(__name__)

PAYMENT_METHOD_TYPES = ['card', 'afterpay_clearpay']


@require_http_methods(["GET"])
def list_services(request):
    services = []
    for service in pricing.SERVICE_CATALOG.values():
        deposit = pricing.deposit_of(service.price_cents)
        services.append({
            'code': service.code,
            'name': service.name,
            'priceCents': service.price_cents,
            'depositCents': deposit,
            'depositAvailable': deposit < service.price_cents,
        })
    return JsonResponse({'currency': settings.DEFAULT_CURRENCY, 'services': services})


@csrf_exempt
@require_http_methods(["POST"])
@rate_limited(payment_limiter, 'Too many payment requests. Please try again later.')
def create_payment_intent(request):
    if not settings.STRIPE_SECRET_KEY:
        return JsonResponse({'error': 'Payments unavailable: Stripe not configured'}, status=500)

    data = json_body(request)
    if data is None:
        return JsonResponse({'error': 'Invalid JSON'}, status=400)

    booking_data = data.get('bookingData') or {}
    if not isinstance(booking_data, dict):
        return JsonResponse({'error': 'Invalid booking data'}, status=400)

    try:
        service = pricing.get_service(booking_data.get('service'))
    except BookingServiceError as e:
        return e.to_response()

    payment_type = data.get('paymentType')
    if payment_type != pricing.PAYMENT_TYPE_DEPOSIT or not pricing.offers_deposit(service.code):
        payment_type = pricing.PAYMENT_TYPE_FULL
    amount = pricing.expected_charge(service.code, payment_type)

    customer_email = str(booking_data.get('email') or '')
    customer_name = str(booking_data.get('name') or '')

    stripe.api_key = settings.STRIPE_SECRET_KEY
    try:
        intent = stripe.PaymentIntent.create(
            amount=amount,
            currency=settings.DEFAULT_CURRENCY,
            payment_method_types=PAYMENT_METHOD_TYPES,
            metadata={
                'bookingType': service.code,
                'paymentType': payment_type,
                'fullAmount': str(service.price_cents),
                'customerEmail': customer_email,
                'customerName': customer_name,
                'address': str(booking_data.get('address') or ''),
                'timeSlot': str(booking_data.get('slot') or ''),
                'date': str(booking_data.get('date') or ''),
            },
            description=f"{settings.BUSINESS_NAME} {service.name}",
        )
    except stripe.StripeError as e:
        logger.error("Payment intent creation failed for %s: %s", service.code, e)
        return ProviderUnavailableError('Failed to create payment intent').to_response()

    ledger.record_intent(
        intent['id'],
        amount_cents=amount,
        status='created',
        service_code=service.code,
        payment_type=payment_type,
        customer_email=customer_email,
        customer_name=customer_name,
    )

    return JsonResponse({
        'clientSecret': intent['client_secret'],
        'paymentIntentId': intent['id'],
    })


def verify_webhook(payload, sig_header):
    if not sig_header:
        raise WebhookSignatureError()
    try:
        return stripe.Webhook.construct_event(payload, sig_header, settings.STRIPE_WEBHOOK_SECRET)
    except ValueError:
        raise WebhookSignatureError('Invalid payload', code='invalid_payload')
    except stripe.SignatureVerificationError:
        raise WebhookSignatureError()


@csrf_exempt
@require_http_methods(["POST"])
def stripe_webhook(request):
    payload = request.body
    sig_header = request.META.get('HTTP_STRIPE_SIGNATURE')

    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error('STRIPE_WEBHOOK_SECRET not configured')
        return JsonResponse({'error': 'Webhook secret not configured'}, status=500)

    try:
        event = verify_webhook(payload, sig_header)
    except WebhookSignatureError as e:
        logger.warning("Webhook signature verification failed: %s", e.code)
        return e.to_response()

    event_id = event['id']
    event_type = event['type']
    handler = WEBHOOK_HANDLERS.get(event_type)

    if handler is None:
        logger.info("Unhandled event type %s", event_type)
        return JsonResponse({'received': True})

    logger.info("Webhook %s received (%s)", event_type, event_id)
    try:
        handler(event['data']['object'], event_id)
    except DatabaseError:
        logger.exception("Webhook handler failed for %s", event_id)
        return JsonResponse({'error': 'Webhook handler failed'}, status=500)

    return JsonResponse({'received': True})


def _intent_fields(intent):
    metadata = intent.get('metadata') or {}
    return {
        'amount_cents': intent.get('amount') or 0,
        'currency': (intent.get('currency') or settings.DEFAULT_CURRENCY).lower(),
        'service_code': metadata.get('bookingType', ''),
        'payment_type': metadata.get('paymentType', ''),
        'customer_email': metadata.get('customerEmail', ''),
        'customer_name': metadata.get('customerName', ''),
    }


def _fill_identity(record, fields):
    for name in ('service_code', 'payment_type', 'customer_email', 'customer_name'):
        if fields[name] and not getattr(record, name):
            setattr(record, name, fields[name])


def handle_payment_intent_succeeded(intent, event_id):
    payment_intent_id = intent['id']
    fields = _intent_fields(intent)
    notify = False

    with transaction.atomic():
        record = ledger.lock_intent(payment_intent_id, dict(fields, status='created'))

        if not record.mark_event_processed(event_id):
            return

        if record.status == 'refunded':
            logger.info("Ignoring success for refunded intent %s", payment_intent_id)
            return

        if fields['currency'] != settings.DEFAULT_CURRENCY:
            logger.error("Intent %s succeeded in unexpected currency %s", payment_intent_id, fields['currency'])
            return

        _fill_identity(record, fields)
        record.status = 'succeeded'
        record.amount_cents = fields['amount_cents']
        if record.confirmation_sent_at is None:
            record.confirmation_sent_at = timezone.now()
            notify = True
        record.save()

        reconciliation.reconcile_intent(payment_intent_id, record.amount_cents)

    if notify:
        notifications.send_payment_confirmation(record)


def handle_payment_intent_processing(intent, event_id):
    payment_intent_id = intent['id']
    fields = _intent_fields(intent)

    with transaction.atomic():
        record = ledger.lock_intent(payment_intent_id, dict(fields, status='created'))

        if not record.mark_event_processed(event_id):
            return

        if record.is_settled:
            return

        _fill_identity(record, fields)
        record.status = 'processing'
        record.amount_cents = fields['amount_cents']
        record.save()

        reconciliation.reconcile_intent(payment_intent_id, record.amount_cents)


def handle_payment_failed(intent, event_id):
    payment_intent_id = intent['id']
    fields = _intent_fields(intent)
    error = intent.get('last_payment_error') or {}
    reason = error.get('message', '')
    notify = False

    if error:
        logger.info(
            "Payment %s failed: %s - %s (%s)",
            payment_intent_id, error.get('code'), reason, error.get('type'),
        )

    with transaction.atomic():
        record = ledger.lock_intent(payment_intent_id, dict(fields, status='created'))

        if not record.mark_event_processed(event_id):
            return

        if record.is_settled:
            logger.info("Ignoring failure for settled intent %s", payment_intent_id)
            return

        _fill_identity(record, fields)
        record.status = 'failed'
        if record.customer_email and record.failure_notified_at is None:
            record.failure_notified_at = timezone.now()
            notify = True
        record.save()

        reconciliation.mark_payment_failed(payment_intent_id)

    if notify:
        notifications.send_payment_failure(record, reason)


def handle_charge_refunded(charge, event_id):
    payment_intent_id = charge.get('payment_intent')
    if not payment_intent_id:
        return

    with transaction.atomic():
        record = ledger.lock_intent(payment_intent_id, {
            'amount_cents': charge.get('amount') or 0,
            'currency': (charge.get('currency') or settings.DEFAULT_CURRENCY).lower(),
            'status': 'created',
        })

        if not record.mark_event_processed(event_id):
            return

        record.status = 'refunded'
        record.save(update_fields=['status', 'updated_at'])

        reconciliation.mark_payment_refunded(payment_intent_id)


WEBHOOK_HANDLERS = {
    'payment_intent.succeeded': handle_payment_intent_succeeded,
    'payment_intent.processing': handle_payment_intent_processing,
    'payment_intent.payment_failed': handle_payment_failed,
    'charge.refunded': handle_charge_refunded,
}
