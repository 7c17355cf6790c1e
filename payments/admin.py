from django.contrib import admin

from .models import PaymentRecord
from .pricing import format_cents


@admin.register(PaymentRecord)
class PaymentRecordAdmin(admin.ModelAdmin):
    list_display = ['stripe_payment_intent_id', 'service_code', 'payment_type', 'amount_display', 'status',
                    'customer_email', 'created_at']
    list_filter = ['status', 'payment_type', 'currency', 'created_at']
    search_fields = ['stripe_payment_intent_id', 'customer_email', 'customer_name']
    readonly_fields = ['stripe_payment_intent_id', 'processed_events', 'confirmation_sent_at',
                       'failure_notified_at', 'created_at', 'updated_at']

    fieldsets = (
        ('Payment Intent', {
            'fields': ('stripe_payment_intent_id', 'status', 'amount_cents', 'currency')
        }),
        ('Booking', {
            'fields': ('service_code', 'payment_type', 'customer_email', 'customer_name')
        }),
        ('Webhooks', {
            'fields': ('processed_events', 'confirmation_sent_at', 'failure_notified_at')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at')
        }),
    )

    def amount_display(self, obj):
        return f"{format_cents(obj.amount_cents)} {obj.currency.upper()}"
    amount_display.short_description = 'Amount'
