"""
Checkout views for Easypay.

Usage:
    # urls.py
    path("easypay/", include("easypay_gateway.urls")),

    # settings.py
    EASYPAY_ORDER_MODEL = "shop.Order"

    # wherever the shop creates the order
    order = Order.objects.create(total=cart_total)
    allow_order(request, order)

The bundled views only serve orders granted to the visitor's session with
``allow_order``. Every other order is a 404.

Or subclass with an explicit model and your own ownership rule:

    class ShopCheckoutView(EasyPayCheckoutView):
        order_model = Order

        def get_queryset(self):
            return Order.objects.filter(customer=self.request.user)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.apps import apps
from django.conf import settings
from django.http import HttpRequest, HttpResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.views import View

from .cart import SessionCart
from .exceptions import ConfigurationError
from .gateway import EasyPayGateway

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from .models import AbstractEasyPayOrder

logger = logging.getLogger(__name__)

ORDER_SESSION_KEY = "easypay_order_ids"


def allow_order(request: HttpRequest, order: AbstractEasyPayOrder) -> None:
    """
    Let the current session check out and view ``order``.

    Call this when the order is created for the visitor.
    """
    allowed = list(request.session.get(ORDER_SESSION_KEY, []))
    if order.pk not in allowed:
        allowed.append(order.pk)
        request.session[ORDER_SESSION_KEY] = allowed


def get_order_model() -> type[AbstractEasyPayOrder]:
    """
    Return the order model named by EASYPAY_ORDER_MODEL.

    Raises:
        ConfigurationError: If the setting is missing or the model cannot be found
    """
    model_path = getattr(settings, "EASYPAY_ORDER_MODEL", "")
    if not model_path:
        raise ConfigurationError("EASYPAY_ORDER_MODEL is not configured")
    try:
        return apps.get_model(model_path, require_ready=False)
    except (ValueError, LookupError) as e:
        raise ConfigurationError(
            f"EASYPAY_ORDER_MODEL refers to model '{model_path}' that is not installed"
        ) from e


class OrderViewMixin:
    """
    Resolve the order a view works on.

    Attributes:
        order_model: Order model class (default: EASYPAY_ORDER_MODEL)
        session_key: Session key holding the ids granted by allow_order()
        gateway_class: Gateway class to instantiate
    """

    order_model: type[AbstractEasyPayOrder] | None = None
    gateway_class: type[EasyPayGateway] = EasyPayGateway
    session_key: str = ORDER_SESSION_KEY
    request: HttpRequest

    def get_queryset(self) -> QuerySet:
        """Orders this visitor may act on; only those granted to the session by default."""
        model = self.order_model or get_order_model()
        allowed = self.request.session.get(self.session_key, [])
        return model._default_manager.filter(pk__in=allowed)

    def get_order(self, pk: int) -> AbstractEasyPayOrder:
        return get_object_or_404(self.get_queryset(), pk=pk)

    def get_gateway(self) -> EasyPayGateway:
        return self.gateway_class()


class EasyPayCheckoutView(OrderViewMixin, View):
    """
    Start Easypay payment for an order.

    POST: Run checkout; redirect to the hosted payment page on success,
    render the error page otherwise. Stock and cart are only touched on success.
    """

    error_template_name = "easypay_gateway/checkout_error.html"

    def post(self, request: HttpRequest, pk: int) -> HttpResponse:
        order = self.get_order(pk)
        gateway = self.get_gateway()

        if not gateway.is_available():
            logger.warning(
                "Easypay checkout attempted while unavailable",
                extra={"order_id": order.pk},
            )
            return render(
                request,
                self.error_template_name,
                {
                    "order": order,
                    "gateway": gateway,
                    "error_message": "Easypay is currently unavailable.",
                },
            )

        outcome = gateway.process_payment(order, cart=SessionCart(request.session))

        if outcome["result"] == "success":
            logger.info(
                "Redirecting to Easypay",
                extra={"order_id": order.pk},
            )
            return redirect(outcome["redirect"])

        return render(
            request,
            self.error_template_name,
            {
                "order": order,
                "gateway": gateway,
                "error_kind": outcome["kind"],
                "error_code": outcome["code"],
                "error_message": outcome["message"],
            },
        )


class EasyPayThankYouView(OrderViewMixin, View):
    """
    Order-received page.

    GET: Render the gateway instructions for the order.
    """

    template_name = "easypay_gateway/thankyou.html"

    def get(self, request: HttpRequest, pk: int) -> HttpResponse:
        order = self.get_order(pk)
        gateway = self.get_gateway()
        return render(
            request,
            self.template_name,
            {
                "order": order,
                "gateway": gateway,
                "instructions": gateway.thankyou_instructions(),
            },
        )
