from django.contrib import admin
from .models import Photo


@admin.register(Photo)
class PhotoAdmin(admin.ModelAdmin):
    list_display = ['id', 'booking', 'photo_type', 'file_url', 'captured_at']
    list_filter = ['photo_type', 'captured_at']
    search_fields = ['booking__booking_id', 'file_path']
    readonly_fields = ['created_at']
    raw_id_fields = ['booking']
