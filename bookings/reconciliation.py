"""
Payment status reconciliation for bookings.

Every writer of ``payment_status`` (booking creation, Stripe webhooks, admin
corrections) goes through ``derive_payment_status`` so the status always
agrees with ``amount_paid_cents``. ``failed`` and ``refunded`` are the only
statuses set explicitly.
"""
import logging

from django.utils import timezone

from payments.errors import BookingValidationError
from .models import Booking

logger = logging.getLogger(__name__)

UNPAID = 'unpaid'
DEPOSIT_PAID = 'deposit_paid'
PAID_IN_FULL = 'paid_in_full'
FAILED = 'failed'
REFUNDED = 'refunded'

PAYMENT_STATUSES = (UNPAID, DEPOSIT_PAID, PAID_IN_FULL, FAILED, REFUNDED)
EXPLICIT_STATUSES = (FAILED, REFUNDED)


def derive_payment_status(amount_paid_cents, total_amount_cents, deposit_cents):
    if amount_paid_cents >= total_amount_cents:
        return PAID_IN_FULL
    if amount_paid_cents >= deposit_cents:
        return DEPOSIT_PAID
    return UNPAID


def reconcile_payment(booking, amount_cents, payment_intent_id):
    """
    Advance ``booking`` to ``amount_cents`` paid through ``payment_intent_id``.

    Single conditional UPDATE: a smaller amount than the one already recorded
    never regresses the booking, and refunded bookings are left alone.
    Returns True when the row changed.
    """
    amount = min(amount_cents, booking.total_amount_cents)
    if amount < amount_cents:
        logger.warning(
            "Payment %s of %s exceeds total %s for booking %s",
            payment_intent_id, amount_cents, booking.total_amount_cents, booking.booking_id,
        )
    status = derive_payment_status(amount, booking.total_amount_cents, booking.deposit_threshold_cents)

    updated = (
        Booking.objects
        .filter(pk=booking.pk, amount_paid_cents__lte=amount)
        .exclude(payment_status=REFUNDED)
        .update(
            amount_paid_cents=amount,
            payment_status=status,
            stripe_payment_intent_id=payment_intent_id,
            updated_at=timezone.now(),
        )
    )
    if updated:
        logger.info("Booking %s reconciled to %s (%s cents)", booking.booking_id, status, amount)
    return bool(updated)


def reconcile_intent(payment_intent_id, amount_cents):
    reconciled = 0
    for booking in Booking.objects.filter(stripe_payment_intent_id=payment_intent_id):
        if reconcile_payment(booking, amount_cents, payment_intent_id):
            reconciled += 1
    return reconciled


def mark_payment_failed(payment_intent_id):
    return (
        Booking.objects
        .filter(stripe_payment_intent_id=payment_intent_id)
        .exclude(payment_status=REFUNDED)
        .update(payment_status=FAILED, updated_at=timezone.now())
    )


def mark_payment_refunded(payment_intent_id):
    return (
        Booking.objects
        .filter(stripe_payment_intent_id=payment_intent_id)
        .update(payment_status=REFUNDED, updated_at=timezone.now())
    )


def apply_manual_update(booking, amount_cents, payment_status=None, payment_intent_id=None):
    """Admin correction. The amount is authoritative; status must agree with it."""
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise BookingValidationError('amountPaidCents must be an integer')
    if amount_cents < 0 or amount_cents > booking.total_amount_cents:
        raise BookingValidationError('amountPaidCents must be between 0 and the booking total')
    if payment_status and payment_status not in PAYMENT_STATUSES:
        raise BookingValidationError('Invalid payment status')
    if payment_intent_id and Booking.objects.filter(
            stripe_payment_intent_id=payment_intent_id).exclude(pk=booking.pk).exists():
        raise BookingValidationError('Payment intent is already attached to another booking')

    derived = derive_payment_status(amount_cents, booking.total_amount_cents, booking.deposit_threshold_cents)
    if payment_status in EXPLICIT_STATUSES:
        status = payment_status
    elif payment_status and payment_status != derived:
        raise BookingValidationError(
            f'Payment status {payment_status} does not match amount paid (expected {derived})'
        )
    else:
        status = derived

    booking.amount_paid_cents = amount_cents
    booking.payment_status = status
    if payment_intent_id is not None:
        booking.stripe_payment_intent_id = payment_intent_id
    booking.save(update_fields=['amount_paid_cents', 'payment_status', 'stripe_payment_intent_id', 'updated_at'])
    logger.info("Booking %s manually set to %s (%s cents)", booking.booking_id, status, amount_cents)
    return booking
