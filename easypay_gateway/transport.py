"""
HTTP transport for the Easypay API.

The client depends only on the ``Transport`` protocol, so tests and hosts can
inject their own. ``RequestsTransport`` is the default and keeps a pooled
``requests.Session`` with TLS verification enabled.

Usage:
    from easypay_gateway.transport import RequestsTransport

    transport = RequestsTransport()
    response = transport.get(url, params={"paymentId": "15"}, auth=None, timeout=5.0)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import requests

from .exceptions import TransportError
from .utils import redact_url

logger: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportResponse:
    """Status, body and headers of a completed HTTP exchange."""

    status_code: int
    text: str
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        """Decode the body. Raises ValueError if it is not JSON."""
        return json.loads(self.text)


class Transport(Protocol):
    """Anything that can perform one GET and report the outcome."""

    def get(
        self,
        url: str,
        *,
        params: Mapping[str, str],
        auth: tuple[str, str] | None,
        timeout: float,
    ) -> TransportResponse:
        """
        Perform a GET request.

        Raises:
            TransportError: If no HTTP response was received
        """
        ...


class RequestsTransport:
    """
    ``requests``-based transport.

    Attributes:
        session: Shared session (connection pool)
        verify: Whether TLS certificates are verified
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        insecure_skip_tls_verify: bool = False,
    ):
        """
        Args:
            session: Session to reuse (default: a new one)
            insecure_skip_tls_verify: Disable certificate verification.
                Test environments only; never enable in production.
        """
        self.session = session or requests.Session()
        self.verify = not insecure_skip_tls_verify

        if insecure_skip_tls_verify:
            logger.warning(
                "Easypay TLS certificate verification is DISABLED",
                extra={"transport": self.__class__.__name__},
            )

    def get(
        self,
        url: str,
        *,
        params: Mapping[str, str],
        auth: tuple[str, str] | None,
        timeout: float,
    ) -> TransportResponse:
        try:
            response = self.session.get(
                url,
                params=dict(params),
                auth=auth,
                timeout=timeout,
                verify=self.verify,
                headers={"Accept": "application/json"},
            )
        except requests.exceptions.SSLError as e:
            raise TransportError(
                message=f"TLS error: {e}",
                code="TLS_ERROR",
            ) from e
        except requests.exceptions.Timeout:
            raise TransportError(
                message="API request timeout",
                code="TIMEOUT",
            ) from None
        except requests.exceptions.ConnectionError as e:
            raise TransportError(
                message=f"Connection failed: {e}",
                code="CONNECTION_ERROR",
            ) from e
        except requests.exceptions.RequestException as e:
            raise TransportError(
                message=f"API request failed: {e}",
                code="REQUEST_ERROR",
            ) from e

        logger.debug(
            "Easypay HTTP response received",
            extra={
                "url": redact_url(url),
                "status_code": response.status_code,
            },
        )

        return TransportResponse(
            status_code=response.status_code,
            text=response.text,
            headers=dict(response.headers),
        )

    def close(self) -> None:
        self.session.close()
