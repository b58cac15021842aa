"""
Abstract order model for Easypay checkout.

The shop owns its orders; this model only adds the fields the Easypay
checkout flow needs to stay consistent across the two checkout steps.

Usage:
    from easypay_gateway.models import AbstractEasyPayOrder, OrderStatus

    class Order(AbstractEasyPayOrder):
        customer = models.ForeignKey(User, on_delete=models.CASCADE)

        def reduce_stock(self):
            for line in self.lines.select_related("product"):
                line.product.decrease_stock(line.quantity)

        class Meta:
            db_table = 'shop_order'
"""

from __future__ import annotations

import logging
from typing import Any

from django.db import models
from django.utils import timezone

from .results import PaymentRequest
from .utils import MAX_URL_LENGTH

logger: logging.Logger = logging.getLogger(__name__)

GATEWAY_ID = "easypay_gateway"


class OrderStatus(models.TextChoices):
    """Order status choices used by the Easypay checkout flow."""

    PENDING = "pending", "Pending payment"
    ON_HOLD = "on-hold", "On hold"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"


class AbstractEasyPayOrder(models.Model):
    """
    Abstract base model for orders paid through Easypay.

    Inherit from this model and implement ``reduce_stock()``.

    Fields:
        total: Order total in the store currency
        status: Order status (pending, on-hold, processing, completed, failed, cancelled)
        payment_method: Gateway id the order is paid with
        status_note: Note recorded with the last status change
        redirect_url: Hosted payment page URL returned by Easypay
        payment_requested_at: When Easypay returned the redirect URL
        stock_reduced: Whether stock has been reduced for this order
        finalized_at: When the order was finalized (stock reduced, cart emptied)
        created_at: When the order was created
    """

    total = models.DecimalField(
        "Total",
        max_digits=12,
        decimal_places=2,
        help_text="Order total in the store currency",
    )

    status = models.CharField(
        "Status",
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
        db_index=True,
    )
    payment_method = models.CharField(
        "Payment method",
        max_length=50,
        default=GATEWAY_ID,
        help_text="Gateway id the order is paid with",
    )
    status_note = models.CharField(
        "Status note",
        max_length=255,
        blank=True,
        default="",
    )

    # Easypay initiation
    redirect_url = models.URLField(
        "Payment URL",
        max_length=MAX_URL_LENGTH,
        blank=True,
        default="",
        help_text="Hosted payment page URL returned by Easypay",
    )
    payment_requested_at = models.DateTimeField(
        "Payment requested at",
        null=True,
        blank=True,
    )

    # Finalization (at most once)
    stock_reduced = models.BooleanField(
        "Stock reduced",
        default=False,
    )
    finalized_at = models.DateTimeField(
        "Finalized at",
        null=True,
        blank=True,
    )

    created_at = models.DateTimeField(
        "Created at",
        auto_now_add=True,
        db_index=True,
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Order {self.pk} - {self.get_status_display()} ({self.total})"

    @property
    def is_on_hold(self) -> bool:
        """Check if the order is awaiting payment."""
        return self.status == OrderStatus.ON_HOLD

    @property
    def is_finalized(self) -> bool:
        """Check if stock was already reduced for this order."""
        return self.stock_reduced

    def has_status(self, status: str) -> bool:
        return self.status == status

    def get_payment_order_id(self) -> str:
        """
        Identifier sent to Easypay as ``paymentId``.

        Override to send something other than the primary key.
        """
        return str(self.pk)

    def to_payment_request(self) -> PaymentRequest:
        """Build the payment request for one checkout attempt."""
        return PaymentRequest(order_id=self.get_payment_order_id(), amount=self.total)

    def update_status(self, status: str, note: str = "") -> None:
        """
        Change the order status and persist it.

        Args:
            status: New OrderStatus value
            note: Optional note stored with the change
        """
        previous_status = self.status
        self.status = status
        self.status_note = note[:255]
        self.save(update_fields=["status", "status_note"])

        logger.info(
            "Order status changed",
            extra={
                "order_id": self.pk,
                "previous_status": previous_status,
                "status": status,
                "note": note,
            },
        )

    def record_payment_url(self, redirect_url: str, **extra_fields: Any) -> None:
        """
        Store the hosted payment page URL returned by Easypay.

        Args:
            redirect_url: Validated redirect URL
            **extra_fields: Additional fields to update
        """
        self.redirect_url = redirect_url
        self.payment_requested_at = timezone.now()

        valid_field_names = {f.name for f in self._meta.get_fields() if f.concrete}
        valid_extra_fields = []
        for field, value in extra_fields.items():
            if field in valid_field_names:
                setattr(self, field, value)
                valid_extra_fields.append(field)

        self.save(update_fields=["redirect_url", "payment_requested_at"] + valid_extra_fields)

    def reduce_stock(self) -> None:
        """
        Reduce stock levels for the order's items.

        Called at most once per order by ``EasyPayGateway.finalize_order``.
        Must be implemented by the concrete model.
        """
        raise NotImplementedError(
            f"{self.__class__.__name__} must implement reduce_stock()"
        )
