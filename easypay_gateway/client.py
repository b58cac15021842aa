"""
Easypay payment initiation client.

Asks Easypay for a hosted payment page URL for one order. The call is a single
GET with the order id and amount as query parameters; Easypay answers with a
JSON body carrying ``url``.

Usage:
    from easypay_gateway.client import PaymentInitiationClient
    from easypay_gateway.results import PaymentRequest, Success

    client = PaymentInitiationClient()

    result = client.initiate(PaymentRequest(order_id=order.pk, amount=order.total))
    if isinstance(result, Success):
        return redirect(result.redirect_url)

    # From an async view
    result = await client.ainitiate(payment_request)

Idempotency:
    Easypay is assumed to accept the same paymentId twice without charging
    twice. This client does not verify that; retrying after a crash is the
    caller's decision.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache

from asgiref.sync import sync_to_async
from django.conf import settings
from django.core.signals import setting_changed
from django.dispatch import receiver

from .credentials import CredentialProvider, SettingsCredentialProvider
from .exceptions import (
    ConfigurationError,
    EasyPayError,
    InvalidPaymentRequestError,
    MalformedResponseError,
    ProcessorRejectedError,
    TransportError,
)
from .results import Failure, PaymentInitiationResult, PaymentRequest, Success
from .transport import RequestsTransport, Transport, TransportResponse
from .utils import (
    format_amount,
    has_embedded_credentials,
    is_absolute_url,
    parse_amount,
    redact_url,
)

logger: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry policy for transport failures.

    Only failures where no HTTP response arrived are retried. Rejections and
    malformed responses are returned as they are.

    Attributes:
        max_retries: Extra attempts after the first one (default: 0)
        backoff: Delay before the first retry in seconds; doubles each retry
    """

    max_retries: int = 0
    backoff: float = 0.5

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ConfigurationError("EASYPAY_MAX_RETRIES must not be negative")
        if self.backoff < 0:
            raise ConfigurationError("EASYPAY_RETRY_BACKOFF must not be negative")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before retry number ``attempt`` (0-based)."""
        return self.backoff * (2**attempt)


class PaymentInitiationClient:
    """
    Easypay payment initiation client.

    Configuration (in Django settings):
        EASYPAY_ENDPOINT: Payment URL endpoint (required)
        EASYPAY_TIMEOUT: Request timeout in seconds (default: 5)
        EASYPAY_MAX_RETRIES: Retries on transport failure (default: 0)
        EASYPAY_RETRY_BACKOFF: Base retry delay in seconds (default: 0.5)
        EASYPAY_REDIRECT_SCHEMES: Accepted redirect URL schemes (default: ("https",))
        EASYPAY_INSECURE_SKIP_TLS_VERIFY: Test-only, requires DEBUG (default: False)

    Attributes:
        endpoint: Payment URL endpoint
        timeout: Request timeout in seconds
        retry_policy: Retry policy for transport failures
        redirect_schemes: Schemes accepted for the returned redirect URL
        transport: HTTP transport
        credentials: Credential provider
    """

    PARAM_ORDER_ID = "paymentId"
    PARAM_AMOUNT = "amount"
    FIELD_URL = "url"
    FIELD_ERROR = "error"

    DEFAULT_TIMEOUT = 5.0

    def __init__(
        self,
        endpoint: str | None = None,
        *,
        credentials: CredentialProvider | None = None,
        transport: Transport | None = None,
        timeout: float | None = None,
        retry_policy: RetryPolicy | None = None,
        redirect_schemes: Iterable[str] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the client.

        Args:
            endpoint: Override endpoint (default: EASYPAY_ENDPOINT)
            credentials: Credential provider (default: SettingsCredentialProvider)
            transport: HTTP transport (default: RequestsTransport)
            timeout: Override timeout in seconds (default: EASYPAY_TIMEOUT or 5)
            retry_policy: Override retry policy (default: from settings, no retries)
            redirect_schemes: Override accepted redirect URL schemes
            sleep: Function used to wait between retries

        Raises:
            ConfigurationError: If the endpoint is missing, invalid or embeds credentials
        """
        self.endpoint = endpoint if endpoint is not None else getattr(settings, "EASYPAY_ENDPOINT", "")
        self._validate_endpoint(self.endpoint)

        self.timeout = float(
            timeout if timeout is not None else getattr(settings, "EASYPAY_TIMEOUT", self.DEFAULT_TIMEOUT)
        )
        if self.timeout <= 0:
            raise ConfigurationError("EASYPAY_TIMEOUT must be positive")

        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=int(getattr(settings, "EASYPAY_MAX_RETRIES", 0)),
            backoff=float(getattr(settings, "EASYPAY_RETRY_BACKOFF", 0.5)),
        )
        self.redirect_schemes = tuple(
            scheme.lower()
            for scheme in (
                redirect_schemes
                if redirect_schemes is not None
                else getattr(settings, "EASYPAY_REDIRECT_SCHEMES", ("https",))
            )
        )
        self.transport = transport if transport is not None else self._transport_from_settings()
        self.credentials = credentials if credentials is not None else SettingsCredentialProvider()
        self._sleep = sleep

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(endpoint={redact_url(self.endpoint)!r})"

    @staticmethod
    def _validate_endpoint(endpoint: str) -> None:
        if not endpoint:
            raise ConfigurationError("EASYPAY_ENDPOINT is not configured")
        if has_embedded_credentials(endpoint):
            raise ConfigurationError(
                "EASYPAY_ENDPOINT must not contain credentials; "
                "use EASYPAY_USERNAME/EASYPAY_PASSWORD or a credential provider"
            )
        schemes = ("https", "http") if settings.DEBUG else ("https",)
        if not is_absolute_url(endpoint, schemes):
            raise ConfigurationError(
                f"EASYPAY_ENDPOINT must be an absolute {' or '.join(schemes)} URL"
            )

    @staticmethod
    def _transport_from_settings() -> RequestsTransport:
        insecure = bool(getattr(settings, "EASYPAY_INSECURE_SKIP_TLS_VERIFY", False))
        if insecure and not settings.DEBUG:
            raise ConfigurationError(
                "EASYPAY_INSECURE_SKIP_TLS_VERIFY is only allowed when DEBUG is True"
            )
        return RequestsTransport(insecure_skip_tls_verify=insecure)

    def initiate(self, request: PaymentRequest) -> PaymentInitiationResult:
        """
        Ask Easypay for a hosted payment page for one order.

        Never raises for payment failures. Invalid requests are rejected
        before any network call.

        Args:
            request: Order id and amount

        Returns:
            Success with the redirect URL, or Failure with a classification
        """
        from .signals import payment_initiated, payment_initiation_failed

        try:
            params = self.build_params(request)
        except InvalidPaymentRequestError as e:
            logger.warning(
                "Easypay payment request rejected locally",
                extra={
                    "order_id": str(request.order_id),
                    "error_code": e.code,
                    "error_message": e.message,
                },
            )
            return Failure.from_error(e)

        logger.info(
            "Easypay payment URL request",
            extra={
                "endpoint": redact_url(self.endpoint),
                "order_id": params[self.PARAM_ORDER_ID],
                "amount": params[self.PARAM_AMOUNT],
            },
        )

        try:
            response = self._send(params)
            redirect_url = self.parse_response(response)
        except EasyPayError as e:
            logger.error(
                "Easypay payment initiation failed",
                extra={
                    "order_id": params[self.PARAM_ORDER_ID],
                    "failure_kind": str(e.kind),
                    "error_code": e.code,
                    "error_message": e.message,
                },
            )
            failure = Failure.from_error(e)
            payment_initiation_failed.send(
                sender=self.__class__,
                request=request,
                kind=failure.kind,
                code=failure.code,
                detail=failure.detail,
            )
            return failure

        logger.info(
            "Easypay payment URL received",
            extra={
                "order_id": params[self.PARAM_ORDER_ID],
                "redirect_host": redact_url(redirect_url),
            },
        )
        payment_initiated.send(
            sender=self.__class__,
            request=request,
            redirect_url=redirect_url,
        )
        return Success(redirect_url=redirect_url)

    async def ainitiate(self, request: PaymentRequest) -> PaymentInitiationResult:
        """
        Async variant of ``initiate``.

        The blocking HTTP call runs in a worker thread; awaiting it suspends
        the caller for at most the configured timeout per attempt.
        """
        return await sync_to_async(self.initiate, thread_sensitive=False)(request)

    def build_params(self, request: PaymentRequest) -> dict[str, str]:
        """
        Validate a request and build its query parameters.

        Args:
            request: Order id and amount

        Returns:
            {"paymentId": ..., "amount": ...} in wire order

        Raises:
            InvalidPaymentRequestError: Negative or non-numeric amount, or empty order id
        """
        amount = parse_amount(request.amount)
        if amount is None or amount < Decimal(0):
            raise InvalidPaymentRequestError("invalid amount")

        order_id = "" if request.order_id is None else str(request.order_id)
        if not order_id.strip():
            raise InvalidPaymentRequestError("invalid order id")

        return {
            self.PARAM_ORDER_ID: order_id,
            self.PARAM_AMOUNT: format_amount(amount),
        }

    def _send(self, params: dict[str, str]) -> TransportResponse:
        auth = self._get_auth()
        attempt = 0

        while True:
            try:
                return self._get(params, auth)
            except TransportError as e:
                if attempt >= self.retry_policy.max_retries:
                    raise
                delay = self.retry_policy.delay_for(attempt)
                attempt += 1
                logger.warning(
                    "Easypay request failed, retrying",
                    extra={
                        "order_id": params[self.PARAM_ORDER_ID],
                        "attempt": attempt,
                        "max_retries": self.retry_policy.max_retries,
                        "delay": delay,
                        "error_code": e.code,
                    },
                )
                self._sleep(delay)

    def _get_auth(self) -> tuple[str, str] | None:
        try:
            return self.credentials.get_auth()
        except EasyPayError:
            raise
        except Exception as e:
            raise TransportError(
                message=f"Could not load Easypay credentials ({type(e).__name__})",
                code="CREDENTIALS_ERROR",
            ) from e

    def _get(self, params: dict[str, str], auth: tuple[str, str] | None) -> TransportResponse:
        try:
            return self.transport.get(
                self.endpoint,
                params=params,
                auth=auth,
                timeout=self.timeout,
            )
        except EasyPayError:
            raise
        except Exception as e:
            # Custom transports may raise anything
            raise TransportError(
                message=f"Easypay request failed: {e}",
                code="REQUEST_ERROR",
            ) from e

    def parse_response(self, response: TransportResponse) -> str:
        """
        Extract the redirect URL from an Easypay response.

        Args:
            response: Completed HTTP exchange

        Returns:
            Validated absolute redirect URL

        Raises:
            ProcessorRejectedError: Non-2xx status or an ``error`` field
            MalformedResponseError: Body is not a JSON object or has no usable ``url``
        """
        if not response.is_success:
            data = self._decode_quietly(response)
            raise ProcessorRejectedError(
                message=self._error_message(data) or f"Easypay returned HTTP {response.status_code}",
                code=f"HTTP_{response.status_code}",
                response=data,
            )

        try:
            data = response.json()
        except ValueError:
            raise MalformedResponseError(
                message="Response body is not valid JSON",
                code="INVALID_JSON",
            ) from None

        if not isinstance(data, dict):
            raise MalformedResponseError(
                message="Response body is not a JSON object",
                code="INVALID_JSON",
            )

        if data.get(self.FIELD_ERROR):
            raise ProcessorRejectedError(
                message=self._error_message(data) or "Easypay rejected the payment",
                code=str(data.get("code") or "REJECTED"),
                response=data,
            )

        url = data.get(self.FIELD_URL)
        if not isinstance(url, str) or not url.strip():
            raise MalformedResponseError(
                message="No url in Easypay response",
                code="NO_URL",
                response=data,
            )

        url = url.strip()
        if not is_absolute_url(url, self.redirect_schemes):
            raise MalformedResponseError(
                message="Easypay returned an invalid redirect url",
                code="INVALID_URL",
                response=data,
            )
        return url

    @staticmethod
    def _decode_quietly(response: TransportResponse) -> dict:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @classmethod
    def _error_message(cls, data: dict) -> str:
        error = data.get(cls.FIELD_ERROR)
        if isinstance(error, dict):
            return str(error.get("message") or error.get("code") or "")
        if error:
            return str(error)
        return str(data.get("message") or "")


@lru_cache(maxsize=None)
def get_default_client() -> PaymentInitiationClient:
    """
    Client built from Django settings, created on first use.

    Import this for convenience: from easypay_gateway.client import get_default_client
    """
    return PaymentInitiationClient()


@receiver(setting_changed)
def _reset_default_client(sender, setting: str, **kwargs) -> None:
    if setting.startswith("EASYPAY_") or setting == "DEBUG":
        get_default_client.cache_clear()
