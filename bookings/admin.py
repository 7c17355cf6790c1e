from django.contrib import admin

from payments.pricing import format_cents
from .models import Booking, Customer


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ['email', 'name', 'phone', 'created_at']
    list_filter = ['created_at']
    search_fields = ['email', 'name', 'phone']
    readonly_fields = ['created_at']


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ['booking_id', 'customer', 'service_name', 'booking_date', 'payment_status', 'job_status',
                    'total_display', 'paid_display', 'created_at']
    list_filter = ['payment_status', 'job_status', 'payment_type', 'booking_date', 'created_at']
    search_fields = ['booking_id', 'customer__name', 'customer__email', 'service_name', 'stripe_payment_intent_id']
    readonly_fields = ['booking_id', 'total_amount_cents', 'deposit_cents', 'amount_paid_cents', 'payment_status',
                       'stripe_payment_intent_id', 'photos_delivered_at', 'created_at', 'updated_at']
    raw_id_fields = ['customer']

    fieldsets = (
        ('Booking', {
            'fields': ('booking_id', 'customer', 'service_type', 'service_name', 'booking_date', 'time_slot', 'notes')
        }),
        ('Payment', {
            'fields': ('payment_type', 'deposit_required', 'total_amount_cents', 'deposit_cents',
                       'amount_paid_cents', 'payment_status', 'stripe_payment_intent_id')
        }),
        ('Job', {
            'fields': ('job_status', 'completed_at', 'photos_delivered_at')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at')
        }),
    )

    def total_display(self, obj):
        return format_cents(obj.total_amount_cents)
    total_display.short_description = 'Total'

    def paid_display(self, obj):
        return format_cents(obj.amount_paid_cents)
    paid_display.short_description = 'Paid'
