from django.db import models

from payments.pricing import deposit_of


class Customer(models.Model):
    name = models.CharField(max_length=255)
    email = models.EmailField(max_length=255, unique=True)
    phone = models.CharField(max_length=50, blank=True)
    address = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'bookings_customer'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.name} <{self.email}>"


class Booking(models.Model):
    PAYMENT_TYPE_CHOICES = [
        ('deposit', 'Deposit'),
        ('full', 'Full'),
    ]
    PAYMENT_STATUS_CHOICES = [
        ('unpaid', 'Unpaid'),
        ('deposit_paid', 'Deposit Paid'),
        ('paid_in_full', 'Paid in Full'),
        ('failed', 'Failed'),
        ('refunded', 'Refunded'),
    ]
    JOB_STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('in_progress', 'In Progress'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='bookings')
    booking_id = models.CharField(max_length=100, unique=True)
    service_type = models.CharField(max_length=100)
    service_name = models.TextField()
    total_amount_cents = models.IntegerField()
    booking_date = models.DateField(db_index=True)
    time_slot = models.CharField(max_length=50)
    notes = models.TextField(blank=True)
    payment_type = models.CharField(max_length=20, choices=PAYMENT_TYPE_CHOICES)
    deposit_required = models.BooleanField(default=False)
    deposit_cents = models.IntegerField(default=0)
    amount_paid_cents = models.IntegerField(default=0)
    payment_status = models.CharField(max_length=30, choices=PAYMENT_STATUS_CHOICES, default='unpaid', db_index=True)
    job_status = models.CharField(max_length=30, choices=JOB_STATUS_CHOICES, default='pending', db_index=True)
    stripe_payment_intent_id = models.CharField(max_length=100, blank=True, db_index=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    photos_delivered_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'bookings_booking'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['stripe_payment_intent_id'],
                condition=~models.Q(stripe_payment_intent_id=''),
                name='unique_booking_payment_intent',
            ),
        ]

    def __str__(self):
        return f"{self.booking_id} - {self.service_name} - {self.payment_status}"

    @property
    def deposit_threshold_cents(self):
        return deposit_of(self.total_amount_cents)

    @property
    def remaining_balance_cents(self):
        return self.total_amount_cents - self.amount_paid_cents
