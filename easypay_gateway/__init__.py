"""
Django Easypay Gateway - Hosted-redirect checkout through Easypay

Provides:
- PaymentInitiationClient for requesting the hosted payment page URL
- EasyPayGateway for the two-step checkout (initiate, then finalize)
- AbstractEasyPayOrder model for inheritance
- Checkout and thank-you views
- Signals for checkout events

Requirements:
- Python 3.12+
- Django 5.0+
"""

__version__ = "1.0.0"
__all__ = ["__version__"]
