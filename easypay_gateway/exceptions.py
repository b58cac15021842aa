"""
Custom exceptions for Easypay payment initiation.

These are raised inside the client and transport. ``PaymentInitiationClient.initiate``
catches them at its boundary and returns a ``Failure`` instead, so checkout code only
needs to handle them when talking to the transport directly.

Usage:
    from easypay_gateway.exceptions import EasyPayError, TransportError

    try:
        response = transport.get(url, params=params, auth=auth, timeout=5)
    except TransportError as e:
        logger.error(f"Easypay unreachable: {e.code} - {e.message}")
"""

from .results import FailureKind


class EasyPayError(Exception):
    """
    Base exception for Easypay-related errors.

    Attributes:
        message: Human-readable error description
        code: Short error code (if available)
        response: Parsed API response dict (if available)
        kind: Failure classification reported to callers
    """

    kind: FailureKind = FailureKind.PROCESSOR_REJECTED

    def __init__(
        self,
        message: str = "Easypay error occurred",
        code: str = "",
        response: dict | None = None,
    ):
        self.message = message
        self.code = code
        self.response = response or {}
        super().__init__(self.message)

    def __str__(self):
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class InvalidPaymentRequestError(EasyPayError):
    """
    Raised when a payment request fails local validation.

    The request never reaches the network. It is reported as a rejection
    with code "INVALID_REQUEST".
    """

    kind = FailureKind.PROCESSOR_REJECTED

    def __init__(self, message: str = "invalid payment request", response: dict | None = None):
        super().__init__(message=message, code="INVALID_REQUEST", response=response)


class InvalidOrderStateError(EasyPayError):
    """
    Raised when checkout is attempted for an order that is not awaiting payment.

    Examples:
    - Paying again for a completed or processing order
    - Paying for a cancelled order
    """

    kind = FailureKind.PROCESSOR_REJECTED

    def __init__(self, message: str = "order is not awaiting payment", response: dict | None = None):
        super().__init__(message=message, code="INVALID_ORDER_STATE", response=response)


class TransportError(EasyPayError):
    """
    Raised when the HTTP call itself fails.

    This can occur when:
    - The connection is refused or DNS fails
    - The request times out
    - TLS negotiation or certificate verification fails
    """

    kind = FailureKind.TRANSPORT_ERROR


class MalformedResponseError(EasyPayError):
    """
    Raised when Easypay answers with something we cannot use.

    The body is not a JSON object, or it lacks a usable ``url``.
    """

    kind = FailureKind.MALFORMED_RESPONSE


class ProcessorRejectedError(EasyPayError):
    """
    Raised when Easypay explicitly refuses the request.

    Either a non-2xx HTTP status or an ``error`` field in the body.
    """

    kind = FailureKind.PROCESSOR_REJECTED


class ConfigurationError(EasyPayError):
    """
    Raised when Easypay is not properly configured.

    This can occur when:
    - EASYPAY_ENDPOINT is not set or is not an absolute https URL
    - Credentials are embedded in EASYPAY_ENDPOINT
    - EASYPAY_INSECURE_SKIP_TLS_VERIFY is enabled outside DEBUG
    - EASYPAY_ORDER_MODEL is missing or cannot be resolved
    """

    pass
