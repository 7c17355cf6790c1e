import logging
import time

from django.db import DatabaseError, IntegrityError, transaction

from payments import ledger, pricing
from payments.errors import PaymentVerificationError, PersistenceError
from .models import Booking, Customer
from .notifications import send_booking_emails
from .reconciliation import derive_payment_status

logger = logging.getLogger(__name__)


def generate_booking_id():
    millis = time.time_ns() // 1_000_000
    while Booking.objects.filter(booking_id=f"TJ{millis}").exists():
        millis += 1
    return f"TJ{millis}"


def get_or_create_customer(*, name, email, phone='', address=''):
    customer, created = Customer.objects.get_or_create(
        email=email,
        defaults={'name': name, 'phone': phone or '', 'address': address or ''},
    )
    if created:
        logger.info("Created customer %s", customer.pk)
    return customer


def resolve_payment_type(service_code, requested, verified_payment):
    if not pricing.offers_deposit(service_code):
        return pricing.PAYMENT_TYPE_FULL
    if verified_payment:
        return verified_payment.payment_type
    return requested or pricing.PAYMENT_TYPE_FULL


def payment_already_used(payment_intent_id):
    logger.warning("Payment intent %s is already attached to a booking", payment_intent_id)
    return PaymentVerificationError(
        'Payment has already been used for another booking', code='payment_already_used',
    )


def ensure_payment_unused(payment_intent_id):
    if Booking.objects.filter(stripe_payment_intent_id=payment_intent_id).exists():
        raise payment_already_used(payment_intent_id)


def create_booking(data, verified_payment=None):
    """
    Persist a booking from validated request ``data``.

    Amounts come from the catalog; the paid amount only from a verified
    payment. Emails go out after the insert committed.
    """
    service = pricing.get_service(data['service'])
    total = service.price_cents
    payment_type = resolve_payment_type(service.code, data.get('paymentType'), verified_payment)
    deposit_required = payment_type == pricing.PAYMENT_TYPE_DEPOSIT
    amount_paid = verified_payment.amount_cents if verified_payment else 0

    try:
        with transaction.atomic():
            if verified_payment:
                ensure_payment_unused(verified_payment.payment_intent_id)
            customer = get_or_create_customer(
                name=data['name'],
                email=data['email'],
                phone=data.get('phone'),
                address=data['address'],
            )
            booking = Booking.objects.create(
                customer=customer,
                booking_id=generate_booking_id(),
                service_type=service.code,
                service_name=service.name,
                total_amount_cents=total,
                booking_date=data['date'],
                time_slot=data.get('slot') or 'Not specified',
                notes=data.get('notes') or '',
                payment_type=payment_type,
                deposit_required=deposit_required,
                deposit_cents=pricing.deposit_of(total) if deposit_required else 0,
                amount_paid_cents=amount_paid,
                payment_status=derive_payment_status(amount_paid, total, pricing.deposit_of(total)),
                stripe_payment_intent_id=verified_payment.payment_intent_id if verified_payment else '',
            )
            if verified_payment:
                ledger.record_intent(
                    verified_payment.payment_intent_id,
                    amount_cents=verified_payment.amount_cents,
                    status=verified_payment.status,
                    service_code=service.code,
                    payment_type=payment_type,
                    customer_email=customer.email,
                    customer_name=customer.name,
                )
    except IntegrityError:
        if verified_payment and Booking.objects.filter(
                stripe_payment_intent_id=verified_payment.payment_intent_id).exists():
            raise payment_already_used(verified_payment.payment_intent_id)
        logger.exception("Integrity error saving booking by %s", data.get('email'))
        raise PersistenceError()
    except DatabaseError:
        logger.exception("Database save error for booking by %s", data.get('email'))
        raise PersistenceError()

    logger.info(
        "Booking %s saved - customer %s, payment status %s",
        booking.booking_id, customer.pk, booking.payment_status,
    )
    send_booking_emails(booking, verified_payment)
    return booking


def find_booking(reference):
    """Look a booking up by its ``TJ...`` reference or numeric primary key."""
    if isinstance(reference, str) and reference.startswith('TJ'):
        return Booking.objects.select_related('customer').filter(booking_id=reference).first()
    try:
        pk = int(reference)
    except (TypeError, ValueError):
        return None
    return Booking.objects.select_related('customer').filter(pk=pk).first()
