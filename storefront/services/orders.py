"""Order data store: orders, payment details and shipping addresses."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from storefront.config import settings
from storefront.constants import (
    DEFAULT_COUNTRY,
    ORDER_STATUSES,
    PAYMENT_DETAIL_STATUSES,
    PAYMENT_METHODS,
    PAYMENT_ONLINE,
)
from storefront.db import sqlite as db
from storefront.errors import NotAuthenticated, OrderNotFound, ValidationError
from storefront.services.auth import UserProfile

logger = logging.getLogger(__name__)


def generate_order_number(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    millis = str(int(now.timestamp() * 1000))
    return f"{now.strftime('%Y%m%d')}-{millis[-4:]}"


def _check_order_status(status: str) -> str:
    if status not in ORDER_STATUSES:
        raise ValidationError(f"Unknown order status: {status}")
    return status


def _payment_values(payload: Dict[str, Any]) -> Dict[str, Any]:
    status = payload.get("status") or "pending"
    if status not in PAYMENT_DETAIL_STATUSES:
        raise ValidationError(f"Unknown payment status: {status}")
    return {
        "payment_method": payload["payment_method"],
        "amount": payload["amount"],
        "currency": payload.get("currency") or settings.currency,
        "status": status,
        "gateway_response": payload.get("gateway_response"),
    }


def track_order(reference: str) -> Dict[str, Any]:
    """Public lookup by customer email (latest order) or by order number."""
    reference = (reference or "").strip()
    if not reference:
        raise OrderNotFound(reference)
    if "@" in reference:
        order = db.find_latest_order_by_email(reference)
    else:
        order = db.find_order_by_number(reference)
    if order is None:
        raise OrderNotFound(reference)
    return order


def list_recent_orders(limit: int = 10) -> List[Dict[str, Any]]:
    return db.list_recent_orders(limit)


def set_order_status(order_number: str, status: str) -> Dict[str, Any]:
    """Staff-side status change, not scoped to a customer."""
    order = db.find_order_by_number(order_number)
    if order is None:
        raise OrderNotFound(order_number)
    updated = db.update_order_status(order["id"], _check_order_status(status))
    logger.info("Order %s status -> %s", order_number, status)
    return updated


class OrderService:
    def __init__(self, user: Optional[UserProfile]) -> None:
        self.user = user

    def _require_user(self) -> UserProfile:
        if self.user is None:
            raise NotAuthenticated()
        return self.user

    # ---------------- orders ----------------

    def create_order(self, payload: Dict[str, Any], payment: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Insert the order; ``payment`` details, when given, are written in the same transaction."""
        user = self._require_user()
        method = payload.get("payment_method")
        if method not in PAYMENT_METHODS:
            raise ValidationError(f"Unknown payment method: {method}")
        if not payload.get("items"):
            raise ValidationError("Order has no items")

        data = dict(payload)
        data["order_number"] = generate_order_number()
        data["payment_status"] = "paid" if method == PAYMENT_ONLINE else "pending"
        data["order_status"] = "placed"
        order = db.insert_order(user.id, data, _payment_values(payment) if payment is not None else None)
        logger.info("Order %s created for %s (%s, total=%s)", order["order_number"], user.id, method, order["total_amount"])
        return order

    def find_order_by_payment_id(self, razorpay_payment_id: str) -> Optional[Dict[str, Any]]:
        user = self._require_user()
        return db.find_order_by_payment_id(user.id, razorpay_payment_id)

    def list_orders_for_user(self) -> List[Dict[str, Any]]:
        user = self._require_user()
        return db.list_orders_for_user(user.id)

    def get_order(self, order_id: int) -> Dict[str, Any]:
        user = self._require_user()
        order = db.get_order_for_user(order_id, user.id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def update_order_status(self, order_id: int, status: str) -> Dict[str, Any]:
        user = self._require_user()
        order = db.update_order_status(order_id, _check_order_status(status), user_id=user.id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    # ---------------- payment details ----------------

    def create_payment_details(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        order = self.get_order(payload["order_id"])
        return db.insert_payment_details(order_id=order["id"], **_payment_values(payload))

    def update_payment_details(self, payment_id: int, **fields: Any) -> Dict[str, Any]:
        if "status" in fields and fields["status"] not in PAYMENT_DETAIL_STATUSES:
            raise ValidationError(f"Unknown payment status: {fields['status']}")
        row = db.get_payment_details(payment_id)
        if row is None:
            raise ValidationError("Payment details not found")
        self.get_order(row["order_id"])
        return db.update_payment_details(payment_id, **fields)

    def get_payment_details_by_order_id(self, order_id: int) -> Optional[Dict[str, Any]]:
        order = self.get_order(order_id)
        return db.get_payment_details_by_order_id(order["id"])

    # ---------------- shipping addresses ----------------

    def create_shipping_address(self, data: Dict[str, Any]) -> Dict[str, Any]:
        user = self._require_user()
        data = dict(data)
        data.setdefault("country", DEFAULT_COUNTRY)
        return db.insert_shipping_address(user.id, data)

    def list_shipping_addresses(self) -> List[Dict[str, Any]]:
        user = self._require_user()
        return db.list_shipping_addresses(user.id)

    def update_shipping_address(self, address_id: int, **fields: Any) -> Dict[str, Any]:
        user = self._require_user()
        row = db.update_shipping_address(address_id, user.id, **fields)
        if row is None:
            raise ValidationError("Address not found")
        return row

    def delete_shipping_address(self, address_id: int) -> None:
        user = self._require_user()
        db.delete_shipping_address(address_id, user.id)

    def set_default_address(self, address_id: int) -> None:
        user = self._require_user()
        if not db.set_default_address(address_id, user.id):
            raise ValidationError("Address not found")
