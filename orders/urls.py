# orders/urls.py

from __future__ import annotations

from django.urls import path

from . import views
from . import webhooks

app_name = "orders"

urlpatterns = [
    # Checkout
    path("place/", views.place_order, name="place"),
    path("checkout/verify/", views.verify_checkout_session, name="verify_checkout_session"),

    # Buyer order history
    path("mine/", views.my_orders, name="my_orders"),

    # Stripe webhook endpoint
    path("webhooks/stripe/", webhooks.stripe_webhook, name="stripe_webhook"),
]
