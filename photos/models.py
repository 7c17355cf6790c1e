from django.db import models
from django.utils import timezone

from bookings.models import Booking


class Photo(models.Model):
    PHOTO_TYPE_CHOICES = [
        ('before', 'Before'),
        ('after', 'After'),
    ]

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='photos')
    photo_type = models.CharField(max_length=20, choices=PHOTO_TYPE_CHOICES, db_index=True)
    file_path = models.TextField()
    file_url = models.TextField()
    captured_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'photos_photo'
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.booking.booking_id} - {self.photo_type}"
