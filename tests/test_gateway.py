"""
Tests for EasyPayGateway.

Tests cover:
- Display settings and availability
- Step 1: request_payment_url (on-hold, redirect URL recording)
- Step 2: finalize_order (stock reduced exactly once, cart emptied)
- process_payment: step 2 only after success
- Thank-you page and email instructions
"""

from decimal import Decimal

import pytest
import requests
import responses
from freezegun import freeze_time

from easypay_gateway.gateway import EasyPayGateway
from easypay_gateway.models import OrderStatus
from easypay_gateway.results import Failure, FailureKind, Success
from tests.doubles import ENDPOINT, FakeCart


def _reload(order):
    return order.__class__.objects.get(pk=order.pk)


# ============================================================
# Settings Tests
# ============================================================


class TestGatewaySettings:
    """Tests for gateway display settings."""

    def test_identity(self):
        gateway = EasyPayGateway()

        assert gateway.id == "easypay_gateway"
        assert gateway.method_title == "Easypay"
        assert gateway.has_fields is False

    def test_defaults(self, settings):
        del settings.EASYPAY_GATEWAY

        gateway = EasyPayGateway()

        assert gateway.enabled is True
        assert gateway.title == "Easypay Payment"
        assert gateway.description == "Please remit payment to Store Name upon pickup or delivery."

    def test_instructions_fall_back_to_description(self):
        gateway = EasyPayGateway(options={"description": "Pay on the next page."})

        assert gateway.instructions == "Pay on the next page."

    def test_explicit_empty_instructions_kept(self):
        gateway = EasyPayGateway(options={"description": "Pay on the next page.", "instructions": ""})

        assert gateway.instructions == ""

    def test_settings_override(self):
        gateway = EasyPayGateway()

        assert gateway.instructions.startswith("Complete payment on the Easypay page.")

    def test_available_when_enabled_and_configured(self):
        assert EasyPayGateway().is_available() is True

    def test_unavailable_when_disabled(self):
        assert EasyPayGateway(options={"enabled": False}).is_available() is False

    def test_unavailable_without_endpoint(self, settings):
        settings.EASYPAY_ENDPOINT = ""

        assert EasyPayGateway().is_available() is False

    def test_client_created_lazily(self, settings):
        """Constructing the gateway never needs a configured endpoint."""
        settings.EASYPAY_ENDPOINT = ""

        gateway = EasyPayGateway()

        assert gateway.enabled is True


# ============================================================
# Step 1: request_payment_url
# ============================================================


class TestRequestPaymentUrl:
    """Tests for request_payment_url()."""

    @responses.activate
    @freeze_time("2026-03-01 12:00:00")
    def test_success_marks_on_hold_and_records_url(self, gateway, order, mock_url_success):
        responses.add(responses.GET, ENDPOINT, json=mock_url_success, status=200)

        result = gateway.request_payment_url(order)

        assert result == Success(redirect_url="https://easypay.example/pay/abc")
        refreshed = _reload(order)
        assert refreshed.status == OrderStatus.ON_HOLD
        assert refreshed.status_note == "Awaiting payment"
        assert refreshed.redirect_url == "https://easypay.example/pay/abc"
        assert refreshed.payment_requested_at is not None

    @responses.activate
    def test_sends_order_pk_and_total(self, gateway, order, mock_url_success):
        responses.add(responses.GET, ENDPOINT, json=mock_url_success, status=200)

        gateway.request_payment_url(order)

        assert f"paymentId={order.pk}&amount=52.75" in responses.calls[0].request.url

    @responses.activate
    def test_does_not_touch_stock(self, gateway, order, mock_url_success):
        responses.add(responses.GET, ENDPOINT, json=mock_url_success, status=200)

        gateway.request_payment_url(order)

        refreshed = _reload(order)
        assert refreshed.stock_reductions == 0
        assert refreshed.stock_reduced is False

    @responses.activate
    def test_failure_keeps_order_on_hold_without_url(self, gateway, order):
        responses.add(responses.GET, ENDPOINT, json={"status": "ok"}, status=200)

        result = gateway.request_payment_url(order)

        assert isinstance(result, Failure)
        refreshed = _reload(order)
        assert refreshed.status == OrderStatus.ON_HOLD
        assert refreshed.redirect_url == ""

    @responses.activate
    def test_on_hold_order_not_updated_again(self, gateway, on_hold_order, mock_url_success):
        responses.add(responses.GET, ENDPOINT, json=mock_url_success, status=200)
        on_hold_order.status_note = "Customer retried"
        on_hold_order.save()

        gateway.request_payment_url(on_hold_order)

        assert _reload(on_hold_order).status_note == "Customer retried"

    @responses.activate
    def test_failed_order_back_on_hold(self, gateway, order, mock_url_success):
        responses.add(responses.GET, ENDPOINT, json=mock_url_success, status=200)
        order.update_status(OrderStatus.FAILED)

        gateway.request_payment_url(order)

        assert _reload(order).status == OrderStatus.ON_HOLD


class TestOrderNotAwaitingPayment:
    """Orders past payment are never sent to Easypay."""

    @pytest.mark.parametrize(
        "status",
        [OrderStatus.COMPLETED, OrderStatus.PROCESSING, OrderStatus.CANCELLED],
    )
    def test_refused_without_contacting_easypay(self, fake_client, fake_transport, order, status):
        order.update_status(status)
        gateway = EasyPayGateway(client=fake_client)

        result = gateway.request_payment_url(order)

        assert result == Failure(
            kind=FailureKind.PROCESSOR_REJECTED,
            detail="order is not awaiting payment",
            code="INVALID_ORDER_STATE",
        )
        assert fake_transport.call_count == 0
        refreshed = _reload(order)
        assert refreshed.status == status
        assert refreshed.redirect_url == ""

    @pytest.mark.parametrize("status", [OrderStatus.COMPLETED, OrderStatus.CANCELLED])
    def test_process_payment_leaves_stock_and_cart(self, fake_client, fake_transport, order, cart, status):
        order.update_status(status)
        gateway = EasyPayGateway(client=fake_client)

        outcome = gateway.process_payment(order, cart)

        assert outcome["result"] == "failure"
        assert outcome["code"] == "INVALID_ORDER_STATE"
        assert fake_transport.call_count == 0
        refreshed = _reload(order)
        assert refreshed.stock_reductions == 0
        assert refreshed.stock_reduced is False
        assert cart.emptied == 0

    def test_on_hold_order_still_payable(self, fake_client, fake_transport, on_hold_order):
        gateway = EasyPayGateway(client=fake_client)

        assert gateway.request_payment_url(on_hold_order).ok
        assert fake_transport.call_count == 1


# ============================================================
# Step 2: finalize_order
# ============================================================


class TestFinalizeOrder:
    """Tests for finalize_order()."""

    @freeze_time("2026-03-01 12:00:00")
    def test_reduces_stock_and_empties_cart(self, gateway, on_hold_order, cart):
        assert gateway.finalize_order(on_hold_order, cart) is True

        refreshed = _reload(on_hold_order)
        assert refreshed.stock_reductions == 1
        assert refreshed.stock_reduced is True
        assert refreshed.finalized_at.isoformat() == "2026-03-01T12:00:00+00:00"
        assert on_hold_order.stock_reduced is True
        assert cart.emptied == 1

    def test_stock_reduced_exactly_once(self, gateway, on_hold_order, cart):
        """Repeated finalization never reduces stock twice."""
        assert gateway.finalize_order(on_hold_order, cart) is True
        assert gateway.finalize_order(on_hold_order, cart) is False
        assert gateway.finalize_order(_reload(on_hold_order), cart) is False

        assert _reload(on_hold_order).stock_reductions == 1

    def test_repeat_still_empties_cart(self, gateway, on_hold_order):
        """Recovering after a crash between the steps still empties the cart."""
        gateway.finalize_order(on_hold_order)
        cart = FakeCart()

        gateway.finalize_order(on_hold_order, cart)

        assert cart.emptied == 1

    def test_without_cart(self, gateway, on_hold_order):
        assert gateway.finalize_order(on_hold_order) is True

    def test_stale_instance_does_not_reduce_twice(self, gateway, on_hold_order):
        stale = _reload(on_hold_order)

        gateway.finalize_order(on_hold_order)
        result = gateway.finalize_order(stale)

        assert result is False
        assert _reload(on_hold_order).stock_reductions == 1

    def test_failing_stock_hook_rolls_back(self, gateway, on_hold_order, monkeypatch):
        from tests.models import Order

        def broken(self):
            raise RuntimeError("inventory service down")

        monkeypatch.setattr(Order, "reduce_stock", broken)

        with pytest.raises(RuntimeError):
            gateway.finalize_order(on_hold_order)

        assert _reload(on_hold_order).stock_reduced is False


# ============================================================
# process_payment
# ============================================================


class TestProcessPayment:
    """Tests for process_payment()."""

    @responses.activate
    def test_success(self, gateway, order, cart, mock_url_success):
        responses.add(responses.GET, ENDPOINT, json=mock_url_success, status=200)

        outcome = gateway.process_payment(order, cart)

        assert outcome == {"result": "success", "redirect": "https://easypay.example/pay/abc"}
        refreshed = _reload(order)
        assert refreshed.status == OrderStatus.ON_HOLD
        assert refreshed.stock_reductions == 1
        assert cart.emptied == 1

    @responses.activate
    def test_timeout_leaves_stock_and_cart(self, gateway, order, cart):
        """A transport failure never reduces stock or empties the cart."""
        responses.add(responses.GET, ENDPOINT, body=requests.exceptions.ConnectTimeout("timed out"))

        outcome = gateway.process_payment(order, cart)

        assert outcome["result"] == "failure"
        assert outcome["kind"] == FailureKind.TRANSPORT_ERROR
        assert outcome["code"] == "TIMEOUT"
        assert "Payment could not be initiated" in outcome["message"]
        refreshed = _reload(order)
        assert refreshed.stock_reductions == 0
        assert refreshed.stock_reduced is False
        assert cart.emptied == 0

    @responses.activate
    @pytest.mark.parametrize(
        "body, status, kind",
        [
            ({"status": "ok"}, 200, FailureKind.MALFORMED_RESPONSE),
            ({"error": "denied"}, 200, FailureKind.PROCESSOR_REJECTED),
            ({}, 502, FailureKind.PROCESSOR_REJECTED),
        ],
    )
    def test_failures_leave_stock_and_cart(self, gateway, order, cart, body, status, kind):
        responses.add(responses.GET, ENDPOINT, json=body, status=status)

        outcome = gateway.process_payment(order, cart)

        assert outcome["kind"] == kind
        assert _reload(order).stock_reductions == 0
        assert cart.emptied == 0

    def test_invalid_total_fails_without_network(self, gateway, order, cart):
        order.total = Decimal("-1.00")

        with responses.RequestsMock() as rsps:
            outcome = gateway.process_payment(order, cart)
            assert len(rsps.calls) == 0

        assert outcome["result"] == "failure"
        assert outcome["code"] == "INVALID_REQUEST"
        assert cart.emptied == 0

    @responses.activate
    def test_retry_after_failure_finalizes_once(self, gateway, order, cart, mock_url_success):
        responses.add(responses.GET, ENDPOINT, body=requests.exceptions.ConnectionError("refused"))
        responses.add(responses.GET, ENDPOINT, json=mock_url_success, status=200)
        responses.add(responses.GET, ENDPOINT, json=mock_url_success, status=200)

        assert gateway.process_payment(order, cart)["result"] == "failure"
        assert gateway.process_payment(order, cart)["result"] == "success"
        assert gateway.process_payment(order, cart)["result"] == "success"

        assert _reload(order).stock_reductions == 1


# ============================================================
# Instructions
# ============================================================


class TestInstructions:
    """Tests for thank-you page and email instructions."""

    def test_thankyou_instructions_html(self):
        gateway = EasyPayGateway(options={"instructions": "Line one\nLine two\n\nNext paragraph"})

        html = gateway.thankyou_instructions()

        assert html == "<p>Line one<br>Line two</p>\n\n<p>Next paragraph</p>"

    def test_thankyou_instructions_escaped(self):
        gateway = EasyPayGateway(options={"instructions": "<script>alert(1)</script>"})

        assert "<script>" not in gateway.thankyou_instructions()

    def test_thankyou_instructions_empty(self):
        gateway = EasyPayGateway(options={"instructions": ""})

        assert gateway.thankyou_instructions() == ""

    def test_email_instructions_for_customer(self, on_hold_order):
        gateway = EasyPayGateway(options={"instructions": "Pay within 24 hours."})

        assert gateway.email_instructions(on_hold_order, sent_to_admin=False) == "<p>Pay within 24 hours.</p>\n"

    def test_email_instructions_plain_text(self, on_hold_order):
        gateway = EasyPayGateway(options={"instructions": "Pay within 24 hours."})

        text = gateway.email_instructions(on_hold_order, sent_to_admin=False, plain_text=True)

        assert text == "Pay within 24 hours.\n"

    def test_no_email_instructions_for_admin(self, on_hold_order):
        gateway = EasyPayGateway(options={"instructions": "Pay within 24 hours."})

        assert gateway.email_instructions(on_hold_order, sent_to_admin=True) == ""

    def test_no_email_instructions_for_other_gateway(self, on_hold_order):
        gateway = EasyPayGateway(options={"instructions": "Pay within 24 hours."})
        on_hold_order.payment_method = "cheque"

        assert gateway.email_instructions(on_hold_order, sent_to_admin=False) == ""

    def test_no_email_instructions_unless_on_hold(self, order):
        gateway = EasyPayGateway(options={"instructions": "Pay within 24 hours."})

        assert gateway.email_instructions(order, sent_to_admin=False) == ""

    def test_no_email_instructions_when_empty(self, on_hold_order):
        gateway = EasyPayGateway(options={"instructions": ""})

        assert gateway.email_instructions(on_hold_order, sent_to_admin=False) == ""
