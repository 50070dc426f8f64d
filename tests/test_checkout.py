from __future__ import annotations

import hashlib
import hmac
import sqlite3

import pytest

from storefront.db import sqlite as db
from storefront.errors import PaymentError, ValidationError
from storefront.services.cart import Cart
from storefront.services.catalog import get_product
from storefront.services.checkout import CheckoutForm, CheckoutService, PendingPayment, validate_step
from storefront.services.orders import OrderService
from storefront.services.payments import RazorpayGateway


def _form(method: str = "cod") -> CheckoutForm:
    return CheckoutForm.from_mapping(
        {
            "name": "Asha",
            "email": "asha@example.com",
            "phone": "+91 9884388147",
            "address": "12 Gandhi Street",
            "city": "Chennai",
            "state": "Tamil Nadu",
            "pincode": "600073",
            "payment_method": method,
        }
    )


def _cart() -> Cart:
    cart = Cart()
    tomato = get_product("tomato")
    for _ in range(3):
        cart.add_item(tomato)
    return cart


class FailingOrders(OrderService):
    def create_order(self, payload, payment=None):
        raise ValidationError("data store unavailable")


def test_validate_step_cleans_values() -> None:
    assert validate_step(1, {"name": " Asha ", "email": "A@Example.com", "phone": "98843 88147"}) == {
        "name": "Asha",
        "email": "a@example.com",
        "phone": "9884388147",
    }


@pytest.mark.parametrize(
    ("step", "data"),
    [
        (1, {"name": "", "email": "a@example.com", "phone": "9884388147"}),
        (1, {"name": "A", "email": "nope", "phone": "9884388147"}),
        (1, {"name": "A", "email": "a@example.com", "phone": "12345"}),
        (2, {"address": "x", "city": "Chennai", "state": "TN", "pincode": "60007"}),
        (3, {"payment_method": "cheque"}),
        (4, {}),
    ],
)
def test_validate_step_rejects(step: int, data: dict) -> None:
    with pytest.raises(ValidationError):
        validate_step(step, data)


def test_cod_order_uses_cart_pricing_and_clears_cart(user) -> None:
    cart = _cart()
    order = CheckoutService(cart, OrderService(user), RazorpayGateway("k", "")).place_cod_order(_form())

    assert cart.is_empty
    assert order["subtotal"] == 120
    assert order["delivery_fee"] == 50
    assert order["total_amount"] == 170
    assert order["payment_method"] == "cod"
    assert order["items"] == [
        {"id": "tomato", "name": "Tomato", "price": 40, "quantity": 3, "image": "/static/img/tomato.jpg", "unit": "1 kg"}
    ]
    payment = db.get_payment_details_by_order_id(order["id"])
    assert (payment["payment_method"], payment["status"], payment["amount"]) == ("cod", "pending", 170)


def test_failed_order_leaves_cart_intact(user) -> None:
    cart = _cart()
    with pytest.raises(ValidationError):
        CheckoutService(cart, FailingOrders(user), RazorpayGateway("k", "")).place_cod_order(_form())
    assert cart.item_count == 3


def test_empty_cart_cannot_check_out(user) -> None:
    service = CheckoutService(Cart(), OrderService(user), RazorpayGateway("k", ""))
    with pytest.raises(ValidationError, match="empty"):
        service.place_cod_order(_form())
    with pytest.raises(ValidationError):
        service.begin_online_payment(_form("online"))


def test_online_payment_happy_path(user) -> None:
    cart = _cart()
    service = CheckoutService(cart, OrderService(user), RazorpayGateway("k", ""))
    form = _form("online")

    pending = service.begin_online_payment(form)
    assert cart.item_count == 3
    assert pending.gateway_order.amount == 17000
    assert pending.options["prefill"]["contact"] == "+919884388147"

    restored = PendingPayment.from_dict(pending.to_dict())
    order = service.complete_online_payment(
        form,
        restored,
        {"razorpay_payment_id": "pay_1", "razorpay_order_id": pending.gateway_order.id, "razorpay_signature": ""},
    )

    assert cart.is_empty
    assert order["payment_status"] == "paid"
    assert order["razorpay_order_id"] == pending.gateway_order.id
    payment = db.get_payment_details_by_order_id(order["id"])
    assert payment["payment_method"] == "razorpay"
    assert payment["status"] == "completed"
    assert payment["gateway_response"]["razorpay_payment_id"] == "pay_1"


def test_bad_signature_keeps_cart_and_creates_nothing(user) -> None:
    cart = _cart()
    gateway = RazorpayGateway("k", "shh")
    service = CheckoutService(cart, OrderService(user), gateway)
    pending = PendingPayment.from_dict(
        {"gateway_order": {"id": "order_1", "amount": 17000, "currency": "INR", "receipt": "r"}, "options": {}}
    )

    with pytest.raises(PaymentError):
        service.complete_online_payment(
            _form("online"),
            pending,
            {"razorpay_payment_id": "pay_1", "razorpay_order_id": "order_1", "razorpay_signature": "forged"},
        )
    assert cart.item_count == 3
    assert db.list_recent_orders() == []

    good = hmac.new(b"shh", b"order_1|pay_1", hashlib.sha256).hexdigest()
    order = service.complete_online_payment(
        _form("online"),
        pending,
        {"razorpay_payment_id": "pay_1", "razorpay_order_id": "order_1", "razorpay_signature": good},
    )
    assert order["razorpay_payment_id"] == "pay_1"
    assert cart.is_empty


def test_mismatched_gateway_order_is_rejected(user) -> None:
    cart = _cart()
    service = CheckoutService(cart, OrderService(user), RazorpayGateway("k", ""))
    pending = service.begin_online_payment(_form("online"))
    with pytest.raises(PaymentError):
        service.complete_online_payment(
            _form("online"), pending, {"razorpay_payment_id": "pay_1", "razorpay_order_id": "order_other"}
        )
    assert cart.item_count == 3


def test_dismissed_payment_persists_nothing(user) -> None:
    cart = _cart()
    service = CheckoutService(cart, OrderService(user), RazorpayGateway("k", ""))
    pending = service.begin_online_payment(_form("online"))
    service.cancel_online_payment(pending)

    assert cart.item_count == 3
    assert db.list_recent_orders() == []


def test_cart_changed_during_payment_is_rejected(user) -> None:
    cart = _cart()
    service = CheckoutService(cart, OrderService(user), RazorpayGateway("k", ""))
    pending = service.begin_online_payment(_form("online"))

    apple = get_product("apple")
    for _ in range(20):
        cart.add_item(apple)

    with pytest.raises(PaymentError, match="cart changed"):
        service.complete_online_payment(
            _form("online"), pending, {"razorpay_payment_id": "pay_1", "razorpay_order_id": pending.gateway_order.id}
        )
    assert cart.item_count == 23
    assert db.list_recent_orders() == []


def test_failed_payment_details_write_rolls_back_order(user, monkeypatch) -> None:
    def broken(*args, **kwargs):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(db, "_insert_payment_row", broken)
    cart = _cart()
    service = CheckoutService(cart, OrderService(user), RazorpayGateway("k", ""))

    with pytest.raises(sqlite3.OperationalError):
        service.place_cod_order(_form())
    assert cart.item_count == 3
    assert db.list_recent_orders() == []

    pending = service.begin_online_payment(_form("online"))
    with pytest.raises(sqlite3.OperationalError):
        service.complete_online_payment(
            _form("online"), pending, {"razorpay_payment_id": "pay_1", "razorpay_order_id": pending.gateway_order.id}
        )
    assert cart.item_count == 3
    assert db.list_recent_orders() == []


def test_repeated_payment_completion_records_one_order(user) -> None:
    cart = _cart()
    service = CheckoutService(cart, OrderService(user), RazorpayGateway("k", ""))
    pending = service.begin_online_payment(_form("online"))
    response = {"razorpay_payment_id": "pay_1", "razorpay_order_id": pending.gateway_order.id}

    first = service.complete_online_payment(_form("online"), pending, response)
    again = service.complete_online_payment(_form("online"), pending, response)

    assert again["id"] == first["id"]
    assert len(db.list_recent_orders()) == 1
