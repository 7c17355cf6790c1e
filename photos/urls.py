from django.urls import path
from . import views

urlpatterns = [
    path('admin/photos/direct-upload', views.direct_upload, name='photo_direct_upload'),
    path('admin/photos/send-email', views.send_photos, name='send_photos'),
    path('admin/photos/booking/<str:booking_ref>', views.booking_photos, name='booking_photos'),
    path('admin/photos', views.save_photo, name='save_photo'),
    path('public/photos/<path:path>', views.public_photo, name='public_photo'),
]
