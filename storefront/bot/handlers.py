import logging
import sqlite3
import re

from aiogram import Router
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.types import FSInputFile, Message, ReplyKeyboardRemove

from storefront.bot.keyboards import categories_kb, main_kb
from storefront.bot.states import ProductAdd
from storefront.config import settings
from storefront.constants import CATEGORIES, ORDER_STATUSES
from storefront.db.sqlite import add_product, init_db, list_products, set_in_stock
from storefront.errors import StorefrontError
from storefront.services.backup import make_backup
from storefront.services.orders import list_recent_orders, set_order_status, track_order
from storefront.utils.formatters import money, order_status_label
from storefront.utils.validators import require_positive_number

logger = logging.getLogger(__name__)

router = Router()

DEFAULT_ORDERS_LIMIT = 10


def _is_admin(message: Message) -> bool:
    try:
        return int(message.from_user.id) == int(settings.admin_id)
    except (AttributeError, TypeError, ValueError):
        return False


def _normalize_product_id(text: str) -> str:
    t = text.strip().lower().replace(" ", "-")
    return re.sub(r"[^a-z0-9\-]", "", t)


def _parse_price(text: str) -> int:
    return int(text.strip().replace("₹", "").replace(",", ""))


def _order_line(o: dict) -> str:
    return (
        f"• <b>#{o['order_number']}</b> {o['customer_name']} — {money(o['total_amount'])} "
        f"| {o['payment_method'].upper()}/{o['payment_status']} | {order_status_label(o['order_status'])}"
    )


def _order_text(o: dict) -> str:
    lines = [
        f"<b>Order #{o['order_number']}</b> ({o['created_at']})",
        f"Customer: {o['customer_name']} · {o['customer_phone']} · {o['customer_email']}",
        f"Address: {o['delivery_address']}, {o['city']}, {o['state']} {o['pincode']}",
        "",
    ]
    for it in o["items"]:
        lines.append(f"  • {it['name']} ({it['unit']}) × {it['quantity']} = {money(it['price'] * it['quantity'])}")
    lines += [
        "",
        f"Subtotal: {money(o['subtotal'])} · Delivery: {money(o['delivery_fee'])}",
        f"<b>Total: {money(o['total_amount'])}</b>",
        f"Payment: {o['payment_method'].upper()} ({o['payment_status']})",
        f"Status: {order_status_label(o['order_status'])}",
    ]
    return "\n".join(lines)


@router.message(Command("start"))
async def cmd_start(message: Message):
    if not _is_admin(message):
        return
    init_db()
    await message.answer(f"✅ {settings.shop_name} admin bot is running", reply_markup=main_kb())


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    await state.clear()
    await message.answer("❎ Cancelled.", reply_markup=ReplyKeyboardRemove())


@router.message(Command("help"))
async def cmd_help(message: Message):
    if not _is_admin(message):
        return

    text = (
        f"<b>{settings.shop_name} — admin commands</b>\n\n"
        "<b>General</b>\n"
        "/start — start\n"
        "/cancel — cancel input\n"
        "/help — this help\n"
        "/ping — health check\n"
        "/backup — database + receipts backup\n\n"
        "<b>Orders</b>\n"
        "/orders [N] — latest orders\n"
        "/order NUMBER — order details\n"
        f"/status NUMBER STATUS — set status ({', '.join(ORDER_STATUSES)})\n\n"
        "<b>Catalogue</b>\n"
        "/products — list products\n"
        "/product_add — add product wizard\n"
        "/stock_on ID — mark in stock\n"
        "/stock_off ID — mark out of stock\n"
    )
    await message.answer(text)


@router.message(Command("ping"))
async def cmd_ping(message: Message):
    if not _is_admin(message):
        return
    await message.answer("pong ✅")


@router.message(Command("backup"))
async def cmd_backup(message: Message):
    if not _is_admin(message):
        return
    try:
        file_path = make_backup()
    except OSError as e:
        logger.exception("Backup failed")
        await message.answer(f"❌ Backup failed: {e}")
        return
    await message.answer_document(FSInputFile(file_path))


# ---------------- orders ----------------

@router.message(Command("orders"))
async def cmd_orders(message: Message):
    if not _is_admin(message):
        return

    parts = (message.text or "").split()
    limit = DEFAULT_ORDERS_LIMIT
    if len(parts) >= 2:
        try:
            limit = max(1, int(parts[1]))
        except ValueError:
            await message.answer("Format: /orders [N]")
            return

    rows = list_recent_orders(limit)
    if not rows:
        await message.answer("No orders yet.")
        return
    await message.answer("\n".join(["<b>Latest orders:</b>"] + [_order_line(o) for o in rows]))


@router.message(Command("order"))
async def cmd_order(message: Message):
    if not _is_admin(message):
        return

    parts = (message.text or "").split()
    if len(parts) != 2:
        await message.answer("Format: /order NUMBER")
        return
    try:
        order = track_order(parts[1])
    except StorefrontError as e:
        await message.answer(f"❌ {e.message}")
        return
    await message.answer(_order_text(order))


@router.message(Command("status"))
async def cmd_status(message: Message):
    if not _is_admin(message):
        return

    parts = (message.text or "").split()
    if len(parts) != 3:
        await message.answer(f"Format: /status NUMBER STATUS\nStatuses: {', '.join(ORDER_STATUSES)}")
        return

    _, number, status = parts
    try:
        order = set_order_status(number, status.lower())
    except StorefrontError as e:
        await message.answer(f"❌ {e.message}")
        return
    await message.answer(f"✅ Order #{order['order_number']}: {order_status_label(order['order_status'])}")


# ---------------- catalogue ----------------

@router.message(Command("products"))
async def cmd_products(message: Message):
    if not _is_admin(message):
        return
    init_db()
    rows = list_products()
    if not rows:
        await message.answer("No products yet. Add one: /product_add")
        return
    lines = ["<b>Products:</b>"]
    for r in rows:
        mark = "✅" if r["in_stock"] else "⛔"
        lines.append(f"{mark} <code>{r['id']}</code> — {r['name']} ({r['category']}) {money(r['price'])} / {r['unit']}")
    await message.answer("\n".join(lines))


async def _toggle_stock(message: Message, in_stock: bool) -> None:
    parts = (message.text or "").split()
    if len(parts) != 2:
        await message.answer("Format: /stock_on ID or /stock_off ID")
        return
    if not set_in_stock(parts[1], in_stock):
        await message.answer("❌ Product not found")
        return
    await message.answer(f"✅ {parts[1]}: {'in stock' if in_stock else 'out of stock'}")


@router.message(Command("stock_on"))
async def cmd_stock_on(message: Message):
    if not _is_admin(message):
        return
    await _toggle_stock(message, True)


@router.message(Command("stock_off"))
async def cmd_stock_off(message: Message):
    if not _is_admin(message):
        return
    await _toggle_stock(message, False)


@router.message(Command("product_add"))
async def cmd_product_add(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    init_db()
    await state.clear()
    await state.set_state(ProductAdd.waiting_id)
    await message.answer(
        "Adding a product.\n\n1/5) Enter the product ID (for example: beetroot)\nCancel: /cancel",
        reply_markup=ReplyKeyboardRemove(),
    )


@router.message(ProductAdd.waiting_id)
async def product_add_id(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    product_id = _normalize_product_id(message.text or "")
    if not product_id:
        await message.answer("ID must contain letters or digits. Cancel: /cancel")
        return

    await state.update_data(product_id=product_id)
    await state.set_state(ProductAdd.waiting_name)
    await message.answer(f"2/5) Enter the display name for <code>{product_id}</code>\nCancel: /cancel")


@router.message(ProductAdd.waiting_name)
async def product_add_name(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    name = (message.text or "").strip()
    if not name or name.startswith("/"):
        await message.answer("Enter the name as text. Cancel: /cancel")
        return

    await state.update_data(name=name)
    await state.set_state(ProductAdd.waiting_category)
    await message.answer("3/5) Choose a category", reply_markup=categories_kb())


@router.message(ProductAdd.waiting_category)
async def product_add_category(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    category = (message.text or "").strip()
    if category not in CATEGORIES:
        await message.answer("Pick one of the buttons. Cancel: /cancel", reply_markup=categories_kb())
        return

    await state.update_data(category=category)
    await state.set_state(ProductAdd.waiting_price)
    await message.answer("4/5) Enter the price in rupees (for example: 45)", reply_markup=ReplyKeyboardRemove())


@router.message(ProductAdd.waiting_price)
async def product_add_price(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    try:
        price = _parse_price(message.text or "")
        require_positive_number(price, "price")
    except ValueError:
        await message.answer("Price must be a whole number above 0, for example: 45")
        return

    await state.update_data(price=price)
    await state.set_state(ProductAdd.waiting_unit)
    await message.answer("5/5) Enter the unit (for example: 1 kg, 500 g, 1 bunch)")


@router.message(ProductAdd.waiting_unit)
async def product_add_unit(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    unit = (message.text or "").strip() or "1 kg"
    data = await state.get_data()
    try:
        add_product(data["product_id"], data["name"], data["price"], unit, data["category"])
    except sqlite3.Error as e:
        logger.exception("Product add failed")
        await message.answer(f"❌ Could not add product: {e}")
        return
    finally:
        await state.clear()

    await message.answer(
        f"✅ Product added: <code>{data['product_id']}</code> {data['name']} — {money(data['price'])} / {unit}",
        reply_markup=main_kb(),
    )
