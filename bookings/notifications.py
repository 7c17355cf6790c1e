"""Transactional emails for bookings and payments."""
import logging

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

from payments.pricing import format_cents

logger = logging.getLogger(__name__)

TIME_SLOT_LABELS = {
    'weekday_afternoon': 'Weekday Afternoon (3pm-6pm)',
    'weekend_morning': 'Weekend Morning (8am-12pm)',
    'weekend_afternoon': 'Weekend Afternoon (12pm-5pm)',
}


def time_slot_label(slot):
    return TIME_SLOT_LABELS.get(slot, slot or 'Not specified')


def send_templated_email(subject, to, template, context, html_template=None, attachments=None):
    context = dict(
        context,
        business_name=settings.BUSINESS_NAME,
        business_email=settings.BUSINESS_EMAIL,
        currency=settings.DEFAULT_CURRENCY.upper(),
    )
    message = EmailMultiAlternatives(
        subject=subject,
        body=render_to_string(template, context),
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=[to],
    )
    if html_template:
        message.attach_alternative(render_to_string(html_template, context), 'text/html')
    for filename, content, mimetype in attachments or []:
        message.attach(filename, content, mimetype)
    return message.send()


def _booking_context(booking, verified_payment):
    context = {
        'booking': booking,
        'customer': booking.customer,
        'service_price': format_cents(booking.total_amount_cents),
        'time_slot': time_slot_label(booking.time_slot),
        'payment_state': None,
    }
    if verified_payment:
        context.update({
            'payment_state': verified_payment.status,
            'payment_id': verified_payment.payment_intent_id,
            'is_deposit': booking.payment_type == 'deposit',
            'amount_paid': format_cents(booking.amount_paid_cents),
            'remaining': format_cents(booking.remaining_balance_cents),
        })
    return context


def send_booking_emails(booking, verified_payment=None):
    """Customer confirmation and business notification. Failures are logged, not raised."""
    context = _booking_context(booking, verified_payment)
    try:
        send_templated_email(
            f"{settings.BUSINESS_NAME} Booking Confirmation - Reference {booking.booking_id}",
            booking.customer.email,
            'emails/booking_customer.txt',
            context,
        )
    except Exception:
        logger.exception("Failed to send booking confirmation for %s", booking.booking_id)

    try:
        send_templated_email(
            f"New {settings.BUSINESS_NAME} Booking: {booking.service_name} - {booking.customer.name}",
            settings.BUSINESS_EMAIL,
            'emails/booking_business.txt',
            context,
        )
    except Exception:
        logger.exception("Failed to send business notification for %s", booking.booking_id)


def send_payment_confirmation(record):
    context = {'record': record, 'amount': format_cents(record.amount_cents)}
    try:
        if record.customer_email:
            send_templated_email(
                f"Payment Confirmed - {settings.BUSINESS_NAME} Booking",
                record.customer_email,
                'emails/payment_confirmed_customer.txt',
                context,
            )
        currency = settings.DEFAULT_CURRENCY.upper()
        send_templated_email(
            f"Payment Confirmed - {record.customer_name or 'Customer'} - {context['amount']} {currency}",
            settings.BUSINESS_EMAIL,
            'emails/payment_confirmed_business.txt',
            context,
        )
    except Exception:
        logger.exception("Failed to send payment confirmation for %s", record.stripe_payment_intent_id)


def send_payment_failure(record, reason=''):
    context = {'record': record, 'amount': format_cents(record.amount_cents), 'reason': reason}
    try:
        send_templated_email(
            f"Payment Issue - {settings.BUSINESS_NAME} Booking",
            record.customer_email,
            'emails/payment_failed_customer.txt',
            context,
        )
    except Exception:
        logger.exception("Failed to send payment failure notice for %s", record.stripe_payment_intent_id)
