from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('django-admin/', admin.site.urls),
    path('api/', include('payments.urls')),
    path('api/', include('bookings.urls')),
    path('api/', include('photos.urls')),
]
