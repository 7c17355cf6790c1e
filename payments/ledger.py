"""Local record of every Stripe payment intent the site has seen."""
from django.conf import settings

from .models import PaymentRecord

INTENT_STATUS_MAP = {
    'paid': 'succeeded',
    'succeeded': 'succeeded',
    'processing': 'processing',
}


def record_intent(payment_intent_id, *, amount_cents, status, currency=None, service_code='',
                  payment_type='', customer_email='', customer_name=''):
    """
    Create or refresh the ledger row for ``payment_intent_id``.

    A row that already reached ``succeeded`` or ``refunded`` keeps its status.
    """
    status = INTENT_STATUS_MAP.get(status, status)
    record, created = PaymentRecord.objects.get_or_create(
        stripe_payment_intent_id=payment_intent_id,
        defaults={
            'amount_cents': amount_cents,
            'currency': (currency or settings.DEFAULT_CURRENCY).lower(),
            'status': status,
            'service_code': service_code,
            'payment_type': payment_type,
            'customer_email': customer_email,
            'customer_name': customer_name,
        },
    )
    if created or record.is_settled:
        return record

    record.amount_cents = amount_cents
    record.status = status
    update_fields = ['amount_cents', 'status', 'updated_at']
    for field, value in (('service_code', service_code), ('payment_type', payment_type),
                         ('customer_email', customer_email), ('customer_name', customer_name)):
        if value and not getattr(record, field):
            setattr(record, field, value)
            update_fields.append(field)
    record.save(update_fields=update_fields)
    return record


def lock_intent(payment_intent_id, defaults):
    """Fetch-or-create the ledger row under ``SELECT ... FOR UPDATE``; call inside a transaction."""
    record, _ = PaymentRecord.objects.select_for_update().get_or_create(
        stripe_payment_intent_id=payment_intent_id,
        defaults=defaults,
    )
    return record
