"""
Request and result types for Easypay payment initiation.

Usage:
    from easypay_gateway.results import PaymentRequest, Success, Failure

    result = client.initiate(PaymentRequest(order_id=15, amount=Decimal("52.75")))

    match result:
        case Success(redirect_url=url):
            return redirect(url)
        case Failure(kind=kind, detail=detail):
            messages.error(request, result.user_message)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Literal

from django.db import models
from django.utils.translation import gettext_lazy as _

if TYPE_CHECKING:
    from .exceptions import EasyPayError


class FailureKind(models.TextChoices):
    """Why a payment could not be initiated."""

    TRANSPORT_ERROR = "transport_error", _("Transport error")
    MALFORMED_RESPONSE = "malformed_response", _("Malformed response")
    PROCESSOR_REJECTED = "processor_rejected", _("Processor rejected")


@dataclass(frozen=True)
class PaymentRequest:
    """
    One checkout attempt for one order.

    Attributes:
        order_id: Identifier sent to Easypay as ``paymentId`` (must be unique per order)
        amount: Order total; sent with exactly the precision it carries
    """

    order_id: str | int
    amount: Decimal | int | str


@dataclass(frozen=True)
class Success:
    """Easypay accepted the request and returned a hosted payment page."""

    redirect_url: str

    @property
    def ok(self) -> Literal[True]:
        return True


@dataclass(frozen=True)
class Failure:
    """
    Payment initiation failed.

    Attributes:
        kind: Failure classification
        detail: Human-readable description (for logs and admins)
        code: Short machine-readable reason, e.g. "TIMEOUT" or "NO_URL"
    """

    kind: FailureKind
    detail: str
    code: str = ""

    @property
    def ok(self) -> Literal[False]:
        return False

    @property
    def user_message(self) -> str:
        """Message safe to show to the shopper."""
        return str(_("Payment could not be initiated. Please try again or choose another payment method."))

    @property
    def is_retryable(self) -> bool:
        """Only transport failures may succeed on a plain retry."""
        return self.kind == FailureKind.TRANSPORT_ERROR

    @classmethod
    def from_error(cls, error: EasyPayError) -> Failure:
        return cls(kind=error.kind, detail=error.message, code=error.code)


PaymentInitiationResult = Success | Failure
