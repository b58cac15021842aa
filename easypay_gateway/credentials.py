"""
Credential providers for the Easypay API.

Easypay authenticates with HTTP basic auth. Credentials are looked up on every
request so they can be rotated without restarting, and they never become part
of the endpoint URL.

Usage:
    from easypay_gateway.credentials import StaticCredentialProvider

    client = PaymentInitiationClient(
        endpoint="https://easypay.ge/api/create-payment-url",
        credentials=StaticCredentialProvider("merchant", "secret"),
    )
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from django.conf import settings


@runtime_checkable
class CredentialProvider(Protocol):
    """Supplies basic-auth material at call time."""

    def get_auth(self) -> tuple[str, str] | None:
        """Return ``(username, password)`` or None for anonymous requests."""
        ...


class StaticCredentialProvider:
    """Fixed username and password, e.g. loaded from a secret store at startup."""

    def __init__(self, username: str, password: str):
        self._username = username
        self._password = password

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(username={self._username!r}, password='***')"

    def get_auth(self) -> tuple[str, str] | None:
        if not self._username:
            return None
        return (self._username, self._password)


class SettingsCredentialProvider:
    """
    Reads EASYPAY_USERNAME and EASYPAY_PASSWORD from Django settings.

    Settings are read on every call, so ``override_settings`` and runtime
    changes take effect immediately.
    """

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"

    def get_auth(self) -> tuple[str, str] | None:
        username = getattr(settings, "EASYPAY_USERNAME", "")
        if not username:
            return None
        return (username, getattr(settings, "EASYPAY_PASSWORD", ""))
