"""
pytest fixtures for django-easypay-gateway tests.

Provides reusable test fixtures for:
- Order model instances
- Fake HTTP transport (call recording, scripted outcomes)
- Initiation clients and gateways
- Easypay API response mocks
"""

from unittest.mock import MagicMock

import pytest
import responses

from easypay_gateway.client import PaymentInitiationClient, get_default_client
from easypay_gateway.credentials import StaticCredentialProvider
from easypay_gateway.gateway import EasyPayGateway
from easypay_gateway.models import OrderStatus
from tests.doubles import ENDPOINT, FakeCart, FakeTransport, json_response


@pytest.fixture(autouse=True)
def _clear_default_client():
    """Each test gets a default client built from its own settings."""
    get_default_client.cache_clear()
    yield
    get_default_client.cache_clear()


@pytest.fixture
def order(db):
    """Create a pending test order."""
    from tests.models import Order

    order = Order.create_test_order(description="Test order fixture")
    order.save()
    return order


@pytest.fixture
def on_hold_order(db):
    """Create an order already awaiting payment."""
    from tests.models import Order

    order = Order.create_test_order(
        total="19.90",
        status=OrderStatus.ON_HOLD,
        status_note="Awaiting payment",
        description="On-hold order fixture",
    )
    order.save()
    return order


@pytest.fixture
def fake_transport():
    """A FakeTransport that answers with a valid payment URL."""
    return FakeTransport(json_response({"url": "https://pay.example/x"}))


@pytest.fixture
def fake_sleep():
    return MagicMock()


@pytest.fixture
def fake_client(fake_transport, fake_sleep):
    """Client wired to the fake transport."""
    return PaymentInitiationClient(
        endpoint=ENDPOINT,
        transport=fake_transport,
        credentials=StaticCredentialProvider("merchant", "s3cret-test"),
        sleep=fake_sleep,
    )


@pytest.fixture
def easypay_client():
    """Client using the real requests transport (mock HTTP with responses)."""
    return PaymentInitiationClient(
        endpoint=ENDPOINT,
        credentials=StaticCredentialProvider("merchant", "s3cret-test"),
        timeout=5,
    )


@pytest.fixture
def gateway(easypay_client):
    """Gateway using the requests-backed client."""
    return EasyPayGateway(client=easypay_client)


@pytest.fixture
def cart():
    return FakeCart()


# ============================================================
# Easypay API Response Mocks
# ============================================================


@pytest.fixture
def mock_url_success():
    """Mock successful payment URL response."""
    return {"url": "https://easypay.example/pay/abc"}


@pytest.fixture
def mock_url_missing():
    """Mock response without a url field."""
    return {"status": "ok"}


@pytest.fixture
def mock_rejected():
    """Mock response where Easypay refuses the payment."""
    return {"error": "Merchant is not active", "code": "MERCHANT_INACTIVE"}


# ============================================================
# responses library helpers
# ============================================================


@pytest.fixture
def mocked_responses():
    """
    Activate responses mock for HTTP requests.

    Usage:
        def test_api(mocked_responses, mock_url_success):
            mocked_responses.add(
                responses.GET,
                "https://easypay.example/api/create-payment-url",
                json=mock_url_success,
                status=200,
            )
            # ... test code
    """
    with responses.RequestsMock() as rsps:
        yield rsps


# ============================================================
# Signal Test Fixtures
# ============================================================


@pytest.fixture
def signal_receiver():
    """
    Factory for creating signal receivers that track calls.

    Usage:
        def test_signal(signal_receiver):
            receiver = signal_receiver()
            payment_initiated.connect(receiver.handler)
            # ... trigger signal
            assert receiver.called
            assert receiver.call_count == 1
    """

    def _create_receiver():
        receiver = MagicMock()
        receiver.called = False
        receiver.call_count = 0
        receiver.last_kwargs = None

        def handler(sender, **kwargs):
            receiver.called = True
            receiver.call_count += 1
            receiver.last_kwargs = kwargs

        receiver.handler = handler
        return receiver

    return _create_receiver
