"""
URL patterns for Easypay checkout.

Include this in your project's urls.py:

    urlpatterns += [
        path("easypay/", include("easypay_gateway.urls")),
    ]
"""

from django.urls import path

from .views import EasyPayCheckoutView, EasyPayThankYouView

app_name = "easypay_gateway"

urlpatterns = [
    path("checkout/<int:pk>/", EasyPayCheckoutView.as_view(), name="checkout"),
    path("thankyou/<int:pk>/", EasyPayThankYouView.as_view(), name="thankyou"),
]
