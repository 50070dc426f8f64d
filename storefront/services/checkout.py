"""Checkout: three linear steps, then either cash-on-delivery or a
gateway payment. The cart is cleared only after the order row exists."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional

from storefront.config import settings
from storefront.constants import DEFAULT_CITY, DEFAULT_STATE, PAYMENT_COD, PAYMENT_METHODS, PAYMENT_ONLINE
from storefront.errors import PaymentError, ValidationError
from storefront.services.cart import Cart
from storefront.services.orders import OrderService
from storefront.services.payments import GatewayOrder, RazorpayGateway
from storefront.utils.validators import require_text, validate_email, validate_phone, validate_pincode

logger = logging.getLogger(__name__)

STEPS = {1: "Information", 2: "Delivery", 3: "Payment"}
STEP_FIELDS = {
    1: ("name", "email", "phone"),
    2: ("address", "city", "state", "pincode"),
    3: ("payment_method",),
}


def validate_step(step: int, data: Mapping[str, Any]) -> Dict[str, str]:
    if step not in STEP_FIELDS:
        raise ValidationError(f"Unknown checkout step: {step}")
    out: Dict[str, str] = {}
    if step == 1:
        out["name"] = require_text(data.get("name", ""), "Full name")
        out["email"] = validate_email(data.get("email", ""))
        out["phone"] = validate_phone(data.get("phone", ""))
    elif step == 2:
        out["address"] = require_text(data.get("address", ""), "Address")
        out["city"] = require_text(data.get("city", ""), "City")
        out["state"] = require_text(data.get("state", ""), "State")
        out["pincode"] = validate_pincode(data.get("pincode", ""))
    else:
        method = (data.get("payment_method") or "").strip()
        if method not in PAYMENT_METHODS:
            raise ValidationError("Choose a payment method")
        out["payment_method"] = method
    return out


@dataclass
class CheckoutForm:
    name: str
    email: str
    phone: str
    address: str
    city: str = DEFAULT_CITY
    state: str = DEFAULT_STATE
    pincode: str = ""
    payment_method: str = PAYMENT_COD

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> CheckoutForm:
        cleaned: Dict[str, str] = {}
        for step in STEP_FIELDS:
            cleaned.update(validate_step(step, data))
        return cls(**cleaned)

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def new_draft(name: str = "", email: str = "") -> Dict[str, Any]:
    return {
        "step": 1,
        "name": name,
        "email": email,
        "phone": "",
        "address": "",
        "city": DEFAULT_CITY,
        "state": DEFAULT_STATE,
        "pincode": "",
        "payment_method": PAYMENT_COD,
    }


@dataclass
class PendingPayment:
    gateway_order: GatewayOrder
    options: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"gateway_order": asdict(self.gateway_order), "options": self.options}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PendingPayment:
        return cls(gateway_order=GatewayOrder(**data["gateway_order"]), options=dict(data["options"]))


class CheckoutService:
    def __init__(self, cart: Cart, orders: OrderService, gateway: RazorpayGateway) -> None:
        self.cart = cart
        self.orders = orders
        self.gateway = gateway

    def _require_items(self) -> None:
        if self.cart.is_empty:
            raise ValidationError("Your cart is empty")

    def _order_payload(self, form: CheckoutForm, **extra: Any) -> Dict[str, Any]:
        pricing = self.cart.pricing
        payload = {
            "customer_name": form.name,
            "customer_email": form.email,
            "customer_phone": form.phone,
            "delivery_address": form.address,
            "city": form.city,
            "state": form.state,
            "pincode": form.pincode,
            "items": self.cart.to_order_items(),
            "subtotal": pricing.subtotal,
            "delivery_fee": pricing.delivery_fee,
            "total_amount": pricing.total,
            "payment_method": form.payment_method,
        }
        payload.update(extra)
        return payload

    def place_cod_order(self, form: CheckoutForm) -> Dict[str, Any]:
        self._require_items()
        order = self.orders.create_order(
            self._order_payload(form, payment_method=PAYMENT_COD),
            payment={
                "payment_method": PAYMENT_COD,
                "amount": self.cart.pricing.total,
                "currency": settings.currency,
                "status": "pending",
            },
        )
        self.cart.clear()
        return order

    def begin_online_payment(self, form: CheckoutForm) -> PendingPayment:
        self._require_items()
        total = self.cart.pricing.total
        receipt = f"rcpt_{self.orders.user.id[:8]}" if self.orders.user else "rcpt"
        gateway_order = self.gateway.create_order(total, receipt=receipt)
        options = self.gateway.checkout_options(
            gateway_order,
            customer={"name": form.name, "email": form.email, "phone": form.phone},
            notes={"address": form.address, "city": form.city, "state": form.state, "pincode": form.pincode},
        )
        logger.info("Gateway order %s opened for %s", gateway_order.id, total)
        return PendingPayment(gateway_order=gateway_order, options=options)

    def complete_online_payment(
        self,
        form: CheckoutForm,
        pending: PendingPayment,
        response: Mapping[str, str],
    ) -> Dict[str, Any]:
        payment_id = response.get("razorpay_payment_id", "")
        order_id = response.get("razorpay_order_id") or pending.gateway_order.id
        if order_id != pending.gateway_order.id:
            raise PaymentError("Payment does not match the pending order")
        if not payment_id or not self.gateway.verify_signature(order_id, payment_id, response.get("razorpay_signature", "")):
            raise PaymentError("Payment verification failed")

        existing = self.orders.find_order_by_payment_id(payment_id)
        if existing is not None:
            logger.info("Payment %s already recorded as order %s", payment_id, existing["order_number"])
            self.cart.clear()
            return existing

        self._require_items()
        pricing = self.cart.pricing
        if pricing.amount_minor != pending.gateway_order.amount:
            logger.warning(
                "Payment %s of %s does not match cart amount %s",
                payment_id,
                pending.gateway_order.amount,
                pricing.amount_minor,
            )
            raise PaymentError("Your cart changed during payment. Please contact support with your payment id.")

        order = self.orders.create_order(
            self._order_payload(
                form,
                payment_method=PAYMENT_ONLINE,
                razorpay_order_id=order_id,
                razorpay_payment_id=payment_id,
            ),
            payment={
                "payment_method": "razorpay",
                "amount": pricing.total,
                "currency": settings.currency,
                "status": "completed",
                "gateway_response": dict(response),
            },
        )
        self.cart.clear()
        return order

    def cancel_online_payment(self, pending: Optional[PendingPayment]) -> None:
        if pending is not None:
            logger.info("Gateway order %s dismissed", pending.gateway_order.id)
