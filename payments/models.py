from django.db import models


class PaymentRecord(models.Model):
    STATUS_CHOICES = [
        ('created', 'Created'),
        ('processing', 'Processing'),
        ('succeeded', 'Succeeded'),
        ('failed', 'Failed'),
        ('refunded', 'Refunded'),
    ]

    stripe_payment_intent_id = models.CharField(max_length=100, unique=True)
    service_code = models.CharField(max_length=100, blank=True)
    payment_type = models.CharField(max_length=20, blank=True)
    amount_cents = models.IntegerField(default=0)
    currency = models.CharField(max_length=3)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='created', db_index=True)
    customer_email = models.EmailField(blank=True)
    customer_name = models.CharField(max_length=255, blank=True)
    processed_events = models.JSONField(default=list, blank=True)
    confirmation_sent_at = models.DateTimeField(null=True, blank=True)
    failure_notified_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'payments_paymentrecord'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.stripe_payment_intent_id} - {self.amount_cents} {self.currency} - {self.status}"

    def mark_event_processed(self, event_id):
        if event_id in self.processed_events:
            return False
        self.processed_events = self.processed_events + [event_id]
        self.save(update_fields=['processed_events'])
        return True

    @property
    def is_settled(self):
        return self.status in ('succeeded', 'refunded')
