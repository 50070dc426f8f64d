from __future__ import annotations

import os
from typing import Any, Dict

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from storefront.config import settings
from storefront.utils.formatters import order_status_label


def generate_receipt_pdf(order: Dict[str, Any]) -> str:
    os.makedirs(settings.export_dir, exist_ok=True)

    filename = f"receipt_{order['order_number']}_{order['id']}.pdf"
    path = os.path.join(settings.export_dir, filename)

    c = canvas.Canvas(path, pagesize=A4)
    w, h = A4

    y = h - 50
    c.setFont("Helvetica-Bold", 14)
    c.drawString(40, y, f"{settings.shop_name} - ORDER #{order['order_number']}")
    y -= 20

    c.setFont("Helvetica", 11)
    c.drawString(40, y, f"Customer: {order['customer_name']} <{order['customer_email']}>")
    y -= 16
    c.drawString(40, y, f"Phone: {order['customer_phone']}")
    y -= 16
    address = f"{order['delivery_address']}, {order['city']}, {order['state']} {order['pincode']}"
    c.drawString(40, y, f"Deliver to: {address[:80]}")
    y -= 16
    c.drawString(40, y, f"Date: {order['created_at']}")
    y -= 16
    c.drawString(
        40,
        y,
        f"Payment: {order['payment_method'].upper()} ({order['payment_status']}) | "
        f"Status: {order_status_label(order['order_status'])}",
    )
    y -= 24

    # header
    c.setFont("Helvetica-Bold", 10)
    c.drawString(40, y, "Item")
    c.drawString(310, y, "Qty")
    c.drawString(360, y, "Price")
    c.drawString(440, y, "Total")
    y -= 10
    c.line(40, y, 550, y)
    y -= 16

    c.setFont("Helvetica", 10)
    for it in order["items"]:
        item_name = f"{it['name']} ({it.get('unit', '')})"
        c.drawString(40, y, item_name[:45])
        c.drawRightString(340, y, str(int(it["quantity"])))
        c.drawRightString(420, y, f"{int(it['price'])}")
        c.drawRightString(550, y, f"{int(it['price']) * int(it['quantity'])}")
        y -= 14
        if y < 80:
            c.showPage()
            y = h - 50
            c.setFont("Helvetica", 10)

    y -= 10
    c.line(40, y, 550, y)
    y -= 18
    c.drawRightString(550, y, f"Subtotal: {int(order['subtotal'])} {settings.currency}")
    y -= 14
    fee = int(order["delivery_fee"])
    c.drawRightString(550, y, f"Delivery: {fee} {settings.currency}" if fee else "Delivery: Free")
    y -= 18
    c.setFont("Helvetica-Bold", 12)
    c.drawRightString(550, y, f"TOTAL: {int(order['total_amount'])} {settings.currency}")

    c.save()
    return path
