"""
Cart adapters for Easypay checkout.

The gateway only needs to empty the cart once an order is finalized.
Shops with their own cart pass any object with ``empty_cart()``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from django.contrib.sessions.backends.base import SessionBase


@runtime_checkable
class Cart(Protocol):
    def empty_cart(self) -> None: ...


class SessionCart:
    """Cart stored under one key of the Django session."""

    def __init__(self, session: SessionBase, key: str = "cart"):
        self.session = session
        self.key = key

    def empty_cart(self) -> None:
        if self.key in self.session:
            del self.session[self.key]
            self.session.modified = True
