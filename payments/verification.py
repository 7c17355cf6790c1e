"""
Server-side verification of a payment intent claimed by the booking form.

The intent is re-read from Stripe by id and checked against the catalog
price for the booked service. Nothing is written here: callers persist only
after ``verify_payment`` returns.
"""
import logging
from collections import namedtuple

import stripe
from django.conf import settings

from . import pricing
from .errors import (
    PaymentAmountMismatchError,
    PaymentCurrencyError,
    PaymentNotCompletedError,
    PaymentVerificationError,
    ProviderUnavailableError,
)

logger = logging.getLogger(__name__)

ACCEPTED_INTENT_STATUSES = ('succeeded', 'processing')

VerifiedPayment = namedtuple('VerifiedPayment', ['amount_cents', 'payment_intent_id', 'status', 'payment_type'])


def retrieve_payment_intent(payment_intent_id):
    if not settings.STRIPE_SECRET_KEY:
        raise ProviderUnavailableError('Payments unavailable: Stripe not configured')

    stripe.api_key = settings.STRIPE_SECRET_KEY
    try:
        return stripe.PaymentIntent.retrieve(payment_intent_id)
    except stripe.InvalidRequestError as e:
        logger.warning("Payment intent %s could not be retrieved: %s", payment_intent_id, e)
        raise PaymentVerificationError()
    except stripe.StripeError as e:
        logger.error("Stripe error retrieving payment intent %s: %s", payment_intent_id, e)
        raise ProviderUnavailableError()


def expected_amount(intent_amount, full_price, deposit, payment_type):
    if payment_type == pricing.PAYMENT_TYPE_DEPOSIT:
        return deposit
    if payment_type == pricing.PAYMENT_TYPE_FULL:
        return full_price
    if intent_amount in (deposit, full_price):
        return intent_amount
    return None


def verify_payment(service_code, payment_intent_id=None, payment_type=None):
    """
    Returns a ``VerifiedPayment`` or ``None`` when no payment was claimed.

    Raises ``PaymentNotCompletedError``, ``PaymentAmountMismatchError`` or
    ``PaymentCurrencyError`` when the intent does not match the expected
    charge for ``service_code``.
    """
    full_price = pricing.price_of(service_code)
    if not payment_intent_id:
        return None

    intent = retrieve_payment_intent(payment_intent_id)

    status = intent['status']
    if status not in ACCEPTED_INTENT_STATUSES:
        logger.info("Payment intent %s rejected with status %s", payment_intent_id, status)
        raise PaymentNotCompletedError()

    deposit = pricing.deposit_of(full_price)
    amount = intent['amount']
    expected = expected_amount(amount, full_price, deposit, payment_type)

    if amount != expected:
        logger.error(
            "Payment amount mismatch for %s (%s): expected %s, got %s",
            payment_intent_id, service_code, expected, amount,
        )
        raise PaymentAmountMismatchError()

    currency = (intent['currency'] or '').lower()
    if currency != settings.DEFAULT_CURRENCY:
        logger.error("Payment currency mismatch for %s: got %s", payment_intent_id, currency)
        raise PaymentCurrencyError()

    return VerifiedPayment(
        amount_cents=amount,
        payment_intent_id=intent['id'],
        status='paid' if status == 'succeeded' else 'processing',
        payment_type=pricing.PAYMENT_TYPE_DEPOSIT if amount < full_price else pricing.PAYMENT_TYPE_FULL,
    )
