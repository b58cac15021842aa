"""
Django signals for Easypay checkout events.

Usage:
    from django.dispatch import receiver
    from easypay_gateway.signals import order_finalized, payment_initiation_failed

    @receiver(order_finalized)
    def send_confirmation(sender, order, **kwargs):
        # Send order confirmation email
        pass

    @receiver(payment_initiation_failed)
    def alert_on_outage(sender, request, kind, code, detail, **kwargs):
        if kind == FailureKind.TRANSPORT_ERROR:
            sentry_sdk.capture_message(f"Easypay unreachable: {code}")

Signals:
    payment_initiated: Fired when Easypay returns a redirect URL
    payment_initiation_failed: Fired when Easypay is unreachable, rejects, or answers badly
    order_finalized: Fired once per order after stock is reduced and the cart emptied
"""

from django.dispatch import Signal

# Fired when Easypay returns a usable redirect URL.
# The shopper is about to be redirected to the hosted payment page.
#
# Arguments:
#   sender: Client class
#   request: PaymentRequest instance
#   redirect_url: Validated absolute URL of the hosted payment page
payment_initiated = Signal()

# Fired when payment initiation fails after reaching for the network.
# Local validation failures do not fire this signal.
#
# Arguments:
#   sender: Client class
#   request: PaymentRequest instance
#   kind: FailureKind
#   code: Short error code (e.g., "TIMEOUT", "NO_URL", "HTTP_503")
#   detail: Human-readable error message
payment_initiation_failed = Signal()

# Fired when an order is finalized after successful initiation.
# Fired at most once per order.
#
# Arguments:
#   sender: Order model class
#   order: Order instance
order_finalized = Signal()
