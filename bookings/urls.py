from django.urls import path
from . import views

urlpatterns = [
    path('health', views.health, name='health'),
    path('booking', views.create_booking, name='create_booking'),
    path('admin/dashboard', views.admin_dashboard, name='admin_dashboard'),
    path('admin/bookings', views.admin_bookings, name='admin_bookings'),
    path('admin/bookings/balance', views.admin_bookings_with_balance, name='admin_bookings_with_balance'),
    path('admin/customers', views.admin_customers, name='admin_customers'),
    path('admin/payment/update', views.admin_update_payment, name='admin_update_payment'),
    path('admin/job/update', views.admin_update_job, name='admin_update_job'),
]
