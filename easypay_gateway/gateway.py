"""
Easypay payment method for the shop's checkout.

Checkout runs in two steps so a failure or crash between them never leaves an
order with stock reduced but no payment page, and never reduces stock twice:

    1. request_payment_url(order)  - mark on-hold, ask Easypay for a payment page
    2. finalize_order(order, cart) - reduce stock once, empty the cart

``process_payment`` runs both, and runs step 2 only after step 1 succeeded.

Usage:
    from easypay_gateway.gateway import EasyPayGateway

    gateway = EasyPayGateway()
    if gateway.is_available():
        outcome = gateway.process_payment(order, cart=SessionCart(request.session))
        if outcome["result"] == "success":
            return redirect(outcome["redirect"])

Configuration (in Django settings):
    EASYPAY_GATEWAY = {
        "enabled": True,
        "title": "Easypay Payment",
        "description": "Please remit payment to Store Name upon pickup or delivery.",
        "instructions": "",
    }
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from django.utils.html import linebreaks
from django.utils.safestring import SafeString, mark_safe

from .client import PaymentInitiationClient, get_default_client
from .exceptions import InvalidOrderStateError
from .models import GATEWAY_ID, OrderStatus
from .results import Failure, PaymentInitiationResult

if TYPE_CHECKING:
    from .cart import Cart
    from .models import AbstractEasyPayOrder

logger: logging.Logger = logging.getLogger(__name__)


DEFAULT_GATEWAY_SETTINGS: dict[str, Any] = {
    "enabled": True,
    "title": "Easypay Payment",
    "description": "Please remit payment to Store Name upon pickup or delivery.",
    "instructions": "",
}


class EasyPayGateway:
    """
    Easypay hosted-redirect payment method.

    Attributes:
        id: Gateway identifier stored on orders
        method_title: Name shown in the shop's payment settings
        method_description: Description shown in the shop's payment settings
        has_fields: Whether checkout shows payment fields (never; Easypay hosts them)
        enabled: Whether the method is offered at checkout
        title: Title the shopper sees at checkout
        description: Description the shopper sees at checkout
        instructions: Text added to the thank-you page and emails
    """

    id = GATEWAY_ID
    method_title = "Easypay"
    method_description = (
        "Redirects shoppers to the Easypay hosted payment page. "
        'Orders are marked as "on-hold" until payment is confirmed.'
    )
    has_fields = False

    AWAITING_PAYMENT_NOTE = "Awaiting payment"

    # Orders in any other status are never sent to Easypay
    PAYABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.FAILED, OrderStatus.ON_HOLD)

    def __init__(
        self,
        client: PaymentInitiationClient | None = None,
        options: dict[str, Any] | None = None,
    ):
        """
        Args:
            client: Initiation client (default: built from settings on first use)
            options: Override display settings (default: EASYPAY_GATEWAY)
        """
        self._client = client

        configured = options if options is not None else getattr(settings, "EASYPAY_GATEWAY", {})
        merged = {**DEFAULT_GATEWAY_SETTINGS, **configured}

        self.enabled = bool(merged["enabled"])
        self.title = merged["title"]
        self.description = merged["description"]
        # Instructions fall back to the description when not configured at all
        self.instructions = merged["instructions"] if "instructions" in configured else self.description

    @property
    def client(self) -> PaymentInitiationClient:
        if self._client is None:
            self._client = get_default_client()
        return self._client

    def is_available(self) -> bool:
        """Check if the method can be offered at checkout."""
        return self.enabled and bool(
            self._client is not None or getattr(settings, "EASYPAY_ENDPOINT", "")
        )

    # =========================================================================
    # Checkout
    # =========================================================================

    def request_payment_url(self, order: AbstractEasyPayOrder) -> PaymentInitiationResult:
        """
        Step 1: mark the order on-hold and ask Easypay for a payment page.

        Stock and cart are left untouched whatever the outcome. Orders that
        are not awaiting payment are refused without contacting Easypay.

        Args:
            order: Order to pay

        Returns:
            Success with the redirect URL, or Failure
        """
        if order.status not in self.PAYABLE_STATUSES:
            logger.warning(
                "Easypay checkout refused for order not awaiting payment",
                extra={"order_id": order.pk, "status": order.status},
            )
            return Failure.from_error(InvalidOrderStateError())

        if order.status in (OrderStatus.PENDING, OrderStatus.FAILED):
            order.update_status(OrderStatus.ON_HOLD, self.AWAITING_PAYMENT_NOTE)

        result = self.client.initiate(order.to_payment_request())

        if result.ok:
            order.record_payment_url(result.redirect_url)
        return result

    def finalize_order(self, order: AbstractEasyPayOrder, cart: Cart | None = None) -> bool:
        """
        Step 2: reduce stock and empty the cart.

        Safe to call again after a crash: stock is reduced at most once per
        order, and emptying the cart is repeatable.

        Args:
            order: Order whose payment page was obtained
            cart: Shopper's cart (optional)

        Returns:
            True if this call reduced stock, False if it was already done
        """
        model = order.__class__

        with transaction.atomic():
            locked = model._default_manager.select_for_update().get(pk=order.pk)
            already_finalized = locked.stock_reduced

            if not already_finalized:
                locked.reduce_stock()
                locked.stock_reduced = True
                locked.finalized_at = timezone.now()
                locked.save(update_fields=["stock_reduced", "finalized_at"])

        order.stock_reduced = locked.stock_reduced
        order.finalized_at = locked.finalized_at

        if cart is not None:
            cart.empty_cart()

        if already_finalized:
            logger.info(
                "Order already finalized",
                extra={"order_id": order.pk},
            )
            return False

        logger.info(
            "Order finalized",
            extra={
                "order_id": order.pk,
                "total": str(order.total),
            },
        )

        from .signals import order_finalized

        order_finalized.send(sender=model, order=order)
        return True

    def process_payment(self, order: AbstractEasyPayOrder, cart: Cart | None = None) -> dict[str, str]:
        """
        Run both checkout steps.

        Args:
            order: Order to pay
            cart: Shopper's cart (optional)

        Returns:
            {"result": "success", "redirect": url} or
            {"result": "failure", "kind": ..., "code": ..., "message": ...}
        """
        result = self.request_payment_url(order)

        if isinstance(result, Failure):
            return {
                "result": "failure",
                "kind": str(result.kind),
                "code": result.code,
                "message": result.user_message,
            }

        self.finalize_order(order, cart)
        return {
            "result": "success",
            "redirect": result.redirect_url,
        }

    # =========================================================================
    # Instructions
    # =========================================================================

    def thankyou_instructions(self) -> SafeString:
        """Instructions for the order-received page, as HTML paragraphs."""
        if not self.instructions:
            return mark_safe("")
        return mark_safe(linebreaks(self.instructions, autoescape=True))

    def email_instructions(
        self,
        order: AbstractEasyPayOrder,
        sent_to_admin: bool,
        plain_text: bool = False,
    ) -> str:
        """
        Instructions for the customer's order email.

        Only added to customer emails for on-hold orders paid with this gateway.

        Args:
            order: Order the email is about
            sent_to_admin: Whether the email goes to the shop admin
            plain_text: Plain-text email instead of HTML

        Returns:
            Instructions text, or "" if they do not apply
        """
        if (
            not self.instructions
            or sent_to_admin
            or order.payment_method != self.id
            or not order.has_status(OrderStatus.ON_HOLD)
        ):
            return ""
        if plain_text:
            return f"{self.instructions}\n"
        return f"{linebreaks(self.instructions, autoescape=True)}\n"
