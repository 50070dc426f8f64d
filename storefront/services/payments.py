"""Razorpay hosted checkout.

Server side we only mint gateway orders and verify the signature the
checkout modal hands back; the modal itself runs in the browser.
Without a key secret the gateway runs in demo mode: order ids are minted
locally and every signature is accepted.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import string
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from storefront.config import settings
from storefront.constants import MINOR_UNITS
from storefront.errors import PaymentError

logger = logging.getLogger(__name__)

API_BASE = "https://api.razorpay.com/v1"
CHECKOUT_JS = "https://checkout.razorpay.com/v1/checkout.js"
THEME_COLOR = "#16a34a"


@dataclass(frozen=True)
class GatewayOrder:
    id: str
    amount: int  # paise
    currency: str
    receipt: str = ""


class RazorpayGateway:
    def __init__(
        self,
        key_id: str,
        key_secret: str,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 15.0,
    ) -> None:
        self.key_id = key_id
        self.key_secret = key_secret
        self._client = http_client
        self._timeout = timeout

    @property
    def demo_mode(self) -> bool:
        return not self.key_secret

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=API_BASE,
                auth=(self.key_id, self.key_secret),
                timeout=self._timeout,
            )
        return self._client

    def create_order(self, amount: int, receipt: str, currency: Optional[str] = None) -> GatewayOrder:
        currency = currency or settings.currency
        amount_minor = int(amount) * MINOR_UNITS
        if self.demo_mode:
            suffix = "".join(secrets.choice(string.ascii_lowercase + string.digits) for _ in range(5))
            order_id = f"order_{int(time.time() * 1000)}_{suffix}"
            return GatewayOrder(id=order_id, amount=amount_minor, currency=currency, receipt=receipt)

        try:
            resp = self._http().post(
                "/orders",
                json={
                    "amount": amount_minor,
                    "currency": currency,
                    "receipt": receipt,
                    "payment_capture": 1,
                },
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Razorpay order creation rejected: %s %s", e.response.status_code, e.response.text)
            raise PaymentError("Payment gateway rejected the order") from e
        except httpx.HTTPError as e:
            logger.error("Razorpay order creation failed: %s", e)
            raise PaymentError("Payment gateway is unavailable") from e

        body = resp.json()
        return GatewayOrder(
            id=body["id"],
            amount=int(body["amount"]),
            currency=body.get("currency", currency),
            receipt=body.get("receipt", receipt),
        )

    def checkout_options(
        self,
        order: GatewayOrder,
        customer: Dict[str, str],
        notes: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        return {
            "key": self.key_id,
            "amount": order.amount,
            "currency": order.currency,
            "name": settings.shop_name,
            "description": "Fresh Vegetables & Fruits",
            "order_id": order.id,
            "prefill": {
                "name": customer.get("name", ""),
                "email": customer.get("email", ""),
                "contact": customer.get("phone", ""),
            },
            "notes": notes or {},
            "theme": {"color": THEME_COLOR},
        }

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if self.demo_mode:
            return True
        body = f"{order_id}|{payment_id}".encode("utf-8")
        expected = hmac.new(self.key_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature or "")

    def close(self) -> None:
        if self._client is not None:
            self._client.close()


def gateway_from_settings() -> RazorpayGateway:
    return RazorpayGateway(settings.razorpay_key_id, settings.razorpay_key_secret)
