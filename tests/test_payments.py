from __future__ import annotations

import hashlib
import hmac
import json
import re

import httpx
import pytest

from storefront.errors import PaymentError
from storefront.services.payments import API_BASE, THEME_COLOR, GatewayOrder, RazorpayGateway


def _client(handler) -> httpx.Client:
    return httpx.Client(base_url=API_BASE, transport=httpx.MockTransport(handler))


def test_demo_mode_mints_local_order() -> None:
    gateway = RazorpayGateway("rzp_test_key", "")
    order = gateway.create_order(410, receipt="rcpt_1")

    assert gateway.demo_mode
    assert re.fullmatch(r"order_\d+_[a-z0-9]{5}", order.id)
    assert order.amount == 41000
    assert order.currency == "INR"
    assert gateway.verify_signature(order.id, "pay_1", "")


def test_create_order_posts_to_gateway() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "order_abc", "amount": 41000, "currency": "INR", "receipt": "rcpt_1"})

    gateway = RazorpayGateway("rzp_test_key", "shh", http_client=_client(handler))
    order = gateway.create_order(410, receipt="rcpt_1")

    assert order == GatewayOrder(id="order_abc", amount=41000, currency="INR", receipt="rcpt_1")
    assert seen["path"] == "/v1/orders"
    assert seen["body"] == {"amount": 41000, "currency": "INR", "receipt": "rcpt_1", "payment_capture": 1}


def test_gateway_rejection_raises_payment_error() -> None:
    gateway = RazorpayGateway(
        "rzp_test_key",
        "shh",
        http_client=_client(lambda request: httpx.Response(400, json={"error": {"description": "bad amount"}})),
    )
    with pytest.raises(PaymentError, match="rejected"):
        gateway.create_order(410, receipt="rcpt_1")


def test_gateway_network_failure_raises_payment_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    gateway = RazorpayGateway("rzp_test_key", "shh", http_client=_client(handler))
    with pytest.raises(PaymentError, match="unavailable"):
        gateway.create_order(410, receipt="rcpt_1")


def test_verify_signature() -> None:
    gateway = RazorpayGateway("rzp_test_key", "shh")
    good = hmac.new(b"shh", b"order_abc|pay_xyz", hashlib.sha256).hexdigest()

    assert gateway.verify_signature("order_abc", "pay_xyz", good)
    assert not gateway.verify_signature("order_abc", "pay_other", good)
    assert not gateway.verify_signature("order_abc", "pay_xyz", "")


def test_checkout_options() -> None:
    gateway = RazorpayGateway("rzp_test_key", "")
    order = GatewayOrder(id="order_1", amount=41000, currency="INR")
    options = gateway.checkout_options(
        order,
        customer={"name": "Asha", "email": "asha@example.com", "phone": "9884388147"},
        notes={"city": "Chennai"},
    )

    assert options["key"] == "rzp_test_key"
    assert options["amount"] == 41000
    assert options["order_id"] == "order_1"
    assert options["prefill"] == {"name": "Asha", "email": "asha@example.com", "contact": "9884388147"}
    assert options["notes"] == {"city": "Chennai"}
    assert options["theme"]["color"] == THEME_COLOR
