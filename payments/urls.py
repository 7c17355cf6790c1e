from django.urls import path
from . import views

urlpatterns = [
    path('services', views.list_services, name='list_services'),
    path('create-payment-intent', views.create_payment_intent, name='create_payment_intent'),
    path('webhook', views.stripe_webhook, name='stripe_webhook'),
]
