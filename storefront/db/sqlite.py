from __future__ import annotations

import json
import os
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional

from storefront.config import settings

_ORDER_COLUMNS = (
    "order_number",
    "customer_name",
    "customer_email",
    "customer_phone",
    "delivery_address",
    "city",
    "state",
    "pincode",
    "items",
    "subtotal",
    "delivery_fee",
    "total_amount",
    "payment_method",
    "payment_status",
    "order_status",
    "razorpay_order_id",
    "razorpay_payment_id",
)
_USER_UPDATABLE = ("name", "phone", "email")
_ADDRESS_UPDATABLE = ("address_line1", "address_line2", "city", "state", "pincode", "country", "is_default")
_PAYMENT_UPDATABLE = ("payment_method", "amount", "currency", "status", "gateway_response")


def _connect() -> sqlite3.Connection:
    db_dir = os.path.dirname(settings.db_path)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)
    conn = sqlite3.connect(settings.db_path)
    conn.row_factory = sqlite3.Row
    return conn


def _now() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def init_db() -> None:
    conn = _connect()
    try:
        with open(os.path.join(os.path.dirname(__file__), "schema.sql"), "r", encoding="utf-8") as f:
            conn.executescript(f.read())
        conn.commit()
    finally:
        conn.close()


def _order_row(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    d = dict(row)
    d["items"] = json.loads(d["items"] or "[]")
    return d


def _payment_row(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    d = dict(row)
    if d.get("gateway_response"):
        d["gateway_response"] = json.loads(d["gateway_response"])
    return d


def _product_row(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    d = dict(row)
    d["in_stock"] = bool(d["in_stock"])
    d["featured"] = bool(d["featured"])
    return d


# ---------------- products ----------------

def list_products(category: Optional[str] = None, query: Optional[str] = None) -> List[Dict[str, Any]]:
    sql = "SELECT * FROM products WHERE 1=1"
    params: list[Any] = []
    if category:
        sql += " AND category = ?"
        params.append(category)
    if query:
        like = f"%{query.strip().lower()}%"
        sql += " AND (lower(name) LIKE ? OR lower(description) LIKE ? OR lower(category) LIKE ?)"
        params.extend([like, like, like])
    sql += " ORDER BY category, name"

    conn = _connect()
    try:
        rows = conn.execute(sql, params).fetchall()
        return [_product_row(r) for r in rows]
    finally:
        conn.close()


def get_product(product_id: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute("SELECT * FROM products WHERE id = ?", (product_id,)).fetchone()
        return _product_row(row)
    finally:
        conn.close()


def add_product(
    product_id: str,
    name: str,
    price: int,
    unit: str,
    category: str,
    image: str = "",
    description: str = "",
    original_price: Optional[int] = None,
) -> None:
    conn = _connect()
    try:
        conn.execute(
            "INSERT OR REPLACE INTO products(id, name, price, original_price, image, unit, category, description) "
            "VALUES(?,?,?,?,?,?,?,?)",
            (product_id, name, int(price), original_price, image, unit, category, description),
        )
        conn.commit()
    finally:
        conn.close()


def set_in_stock(product_id: str, in_stock: bool) -> bool:
    conn = _connect()
    try:
        cur = conn.execute("UPDATE products SET in_stock = ? WHERE id = ?", (1 if in_stock else 0, product_id))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


# ---------------- users ----------------

def create_user(user_id: str, email: str, name: str, password_hash: str = "", phone: str = "") -> Dict[str, Any]:
    created_at = _now()
    conn = _connect()
    try:
        conn.execute(
            "INSERT INTO users(id, email, name, phone, password_hash, created_at, updated_at) VALUES(?,?,?,?,?,?,?)",
            (user_id, email, name, phone, password_hash, created_at, created_at),
        )
        conn.commit()
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return dict(row)
    finally:
        conn.close()


def get_user(user_id: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def get_user_by_email(email: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute("SELECT * FROM users WHERE lower(email) = lower(?)", (email,)).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def update_user(user_id: str, **fields: Any) -> Optional[Dict[str, Any]]:
    updates = {k: v for k, v in fields.items() if k in _USER_UPDATABLE and v is not None}
    conn = _connect()
    try:
        if updates:
            cols = ", ".join(f"{k} = ?" for k in updates)
            conn.execute(
                f"UPDATE users SET {cols}, updated_at = ? WHERE id = ?",
                (*updates.values(), _now(), user_id),
            )
            conn.commit()
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


# ---------------- orders ----------------

def _insert_order_row(conn: sqlite3.Connection, user_id: str, data: Dict[str, Any]) -> int:
    created_at = _now()
    values = {k: data.get(k) for k in _ORDER_COLUMNS}
    values["items"] = json.dumps(values["items"] or [], ensure_ascii=False)
    values["payment_status"] = values["payment_status"] or "pending"
    values["order_status"] = values["order_status"] or "placed"

    cols = ", ".join(("user_id", *values.keys(), "created_at", "updated_at"))
    marks = ",".join("?" * (len(values) + 3))
    cur = conn.execute(
        f"INSERT INTO orders({cols}) VALUES({marks})",
        (user_id, *values.values(), created_at, created_at),
    )
    return cur.lastrowid


def insert_order(user_id: str, data: Dict[str, Any], payment: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Insert an order, and its payment details row when given, in one transaction."""
    conn = _connect()
    try:
        conn.execute("BEGIN")
        order_id = _insert_order_row(conn, user_id, data)
        if payment is not None:
            _insert_payment_row(conn, order_id, **payment)
        conn.commit()
        row = conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,)).fetchone()
        return _order_row(row)
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def list_orders_for_user(user_id: str) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute(
            "SELECT * FROM orders WHERE user_id = ? ORDER BY created_at DESC, id DESC",
            (user_id,),
        ).fetchall()
        return [_order_row(r) for r in rows]
    finally:
        conn.close()


def get_order_for_user(order_id: int, user_id: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute(
            "SELECT * FROM orders WHERE id = ? AND user_id = ?",
            (order_id, user_id),
        ).fetchone()
        return _order_row(row)
    finally:
        conn.close()


def find_order_by_number(order_number: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute(
            "SELECT * FROM orders WHERE order_number = ? ORDER BY id DESC LIMIT 1",
            (order_number,),
        ).fetchone()
        return _order_row(row)
    finally:
        conn.close()


def find_order_by_payment_id(user_id: str, razorpay_payment_id: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute(
            "SELECT * FROM orders WHERE user_id = ? AND razorpay_payment_id = ? ORDER BY id DESC LIMIT 1",
            (user_id, razorpay_payment_id),
        ).fetchone()
        return _order_row(row)
    finally:
        conn.close()


def find_latest_order_by_email(email: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute(
            "SELECT * FROM orders WHERE lower(customer_email) = lower(?) ORDER BY created_at DESC, id DESC LIMIT 1",
            (email,),
        ).fetchone()
        return _order_row(row)
    finally:
        conn.close()


def update_order_status(order_id: int, status: str, user_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    sql = "UPDATE orders SET order_status = ?, updated_at = ? WHERE id = ?"
    params: list[Any] = [status, _now(), order_id]
    if user_id is not None:
        sql += " AND user_id = ?"
        params.append(user_id)

    conn = _connect()
    try:
        cur = conn.execute(sql, params)
        conn.commit()
        if cur.rowcount == 0:
            return None
        row = conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,)).fetchone()
        return _order_row(row)
    finally:
        conn.close()


def list_recent_orders(limit: int = 10) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute(
            "SELECT * FROM orders ORDER BY created_at DESC, id DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [_order_row(r) for r in rows]
    finally:
        conn.close()


# ---------------- payment details ----------------

def _insert_payment_row(
    conn: sqlite3.Connection,
    order_id: int,
    payment_method: str,
    amount: int,
    currency: str,
    status: str,
    gateway_response: Optional[Dict[str, Any]] = None,
) -> int:
    created_at = _now()
    raw = json.dumps(gateway_response) if gateway_response is not None else None
    cur = conn.execute(
        """
        INSERT INTO payment_details(order_id, payment_method, amount, currency, status, gateway_response, created_at, updated_at)
        VALUES(?,?,?,?,?,?,?,?)
        """,
        (order_id, payment_method, amount, currency, status, raw, created_at, created_at),
    )
    return cur.lastrowid


def insert_payment_details(
    order_id: int,
    payment_method: str,
    amount: int,
    currency: str,
    status: str,
    gateway_response: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    conn = _connect()
    try:
        payment_id = _insert_payment_row(conn, order_id, payment_method, amount, currency, status, gateway_response)
        conn.commit()
        row = conn.execute("SELECT * FROM payment_details WHERE id = ?", (payment_id,)).fetchone()
        return _payment_row(row)
    finally:
        conn.close()


def get_payment_details(payment_id: int) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute("SELECT * FROM payment_details WHERE id = ?", (payment_id,)).fetchone()
        return _payment_row(row)
    finally:
        conn.close()


def update_payment_details(payment_id: int, **fields: Any) -> Optional[Dict[str, Any]]:
    updates = {k: v for k, v in fields.items() if k in _PAYMENT_UPDATABLE and v is not None}
    if "gateway_response" in updates:
        updates["gateway_response"] = json.dumps(updates["gateway_response"])
    conn = _connect()
    try:
        if updates:
            cols = ", ".join(f"{k} = ?" for k in updates)
            conn.execute(
                f"UPDATE payment_details SET {cols}, updated_at = ? WHERE id = ?",
                (*updates.values(), _now(), payment_id),
            )
            conn.commit()
        row = conn.execute("SELECT * FROM payment_details WHERE id = ?", (payment_id,)).fetchone()
        return _payment_row(row)
    finally:
        conn.close()


def get_payment_details_by_order_id(order_id: int) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute(
            "SELECT * FROM payment_details WHERE order_id = ? ORDER BY id DESC LIMIT 1",
            (order_id,),
        ).fetchone()
        return _payment_row(row)
    finally:
        conn.close()


# ---------------- shipping addresses ----------------

def _address_row(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    d = dict(row)
    d["is_default"] = bool(d["is_default"])
    return d


def clear_default_addresses(conn: sqlite3.Connection, user_id: str) -> None:
    conn.execute(
        "UPDATE shipping_addresses SET is_default = 0 WHERE user_id = ? AND is_default = 1",
        (user_id,),
    )


def insert_shipping_address(user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    created_at = _now()
    conn = _connect()
    try:
        conn.execute("BEGIN")
        if data.get("is_default"):
            clear_default_addresses(conn, user_id)
        cur = conn.execute(
            """
            INSERT INTO shipping_addresses(user_id, address_line1, address_line2, city, state, pincode, country, is_default, created_at, updated_at)
            VALUES(?,?,?,?,?,?,?,?,?,?)
            """,
            (
                user_id,
                data["address_line1"],
                data.get("address_line2"),
                data["city"],
                data["state"],
                data["pincode"],
                data.get("country") or "India",
                1 if data.get("is_default") else 0,
                created_at,
                created_at,
            ),
        )
        conn.commit()
        row = conn.execute("SELECT * FROM shipping_addresses WHERE id = ?", (cur.lastrowid,)).fetchone()
        return _address_row(row)
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def list_shipping_addresses(user_id: str) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute(
            "SELECT * FROM shipping_addresses WHERE user_id = ? ORDER BY is_default DESC, created_at DESC, id DESC",
            (user_id,),
        ).fetchall()
        return [_address_row(r) for r in rows]
    finally:
        conn.close()


def update_shipping_address(address_id: int, user_id: str, **fields: Any) -> Optional[Dict[str, Any]]:
    updates = {k: v for k, v in fields.items() if k in _ADDRESS_UPDATABLE and v is not None}
    if "is_default" in updates:
        updates["is_default"] = 1 if updates["is_default"] else 0
    conn = _connect()
    try:
        conn.execute("BEGIN")
        if updates.get("is_default"):
            clear_default_addresses(conn, user_id)
        if updates:
            cols = ", ".join(f"{k} = ?" for k in updates)
            cur = conn.execute(
                f"UPDATE shipping_addresses SET {cols}, updated_at = ? WHERE id = ? AND user_id = ?",
                (*updates.values(), _now(), address_id, user_id),
            )
            if cur.rowcount == 0:
                # not this user's address: keep the current default
                conn.rollback()
                return None
        conn.commit()
        row = conn.execute(
            "SELECT * FROM shipping_addresses WHERE id = ? AND user_id = ?",
            (address_id, user_id),
        ).fetchone()
        return _address_row(row)
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def delete_shipping_address(address_id: int, user_id: str) -> bool:
    conn = _connect()
    try:
        cur = conn.execute(
            "DELETE FROM shipping_addresses WHERE id = ? AND user_id = ?",
            (address_id, user_id),
        )
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def set_default_address(address_id: int, user_id: str) -> bool:
    conn = _connect()
    try:
        conn.execute("BEGIN")
        clear_default_addresses(conn, user_id)
        cur = conn.execute(
            "UPDATE shipping_addresses SET is_default = 1, updated_at = ? WHERE id = ? AND user_id = ?",
            (_now(), address_id, user_id),
        )
        if cur.rowcount == 0:
            # unknown address: keep the current default
            conn.rollback()
            return False
        conn.commit()
        return True
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
