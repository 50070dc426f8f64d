from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote

from fastapi import FastAPI, Form, Request
from fastapi.responses import FileResponse, HTMLResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from starlette.middleware.sessions import SessionMiddleware

from storefront.config import settings
from storefront.constants import FREE_DELIVERY_THRESHOLD, MAX_LINE_QUANTITY, PAYMENT_ONLINE
from storefront.db.sqlite import init_db
from storefront.errors import OrderNotFound, PaymentError, StorefrontError
from storefront.services import catalog
from storefront.services.auth import AuthEvents, IdentityProvider, UserProfile
from storefront.services.cart import Cart, CartRegistry
from storefront.services.checkout import (
    STEPS,
    CheckoutForm,
    CheckoutService,
    PendingPayment,
    new_draft,
    validate_step,
)
from storefront.services.invoice_pdf import generate_receipt_pdf
from storefront.services.notifications import AUTO_HIDE_SECONDS, NotificationQueue
from storefront.services.orders import OrderService, track_order
from storefront.services.payments import CHECKOUT_JS, gateway_from_settings
from storefront.services.pricing import amount_to_free_delivery
from storefront.utils.formatters import money, order_status_label

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"

CHECKOUT_KEY = "checkout"
PENDING_PAYMENT_KEY = "pending_payment"
SESSION_ID_KEY = "sid"


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title=settings.shop_name, lifespan=lifespan)
app.add_middleware(SessionMiddleware, secret_key=settings.session_secret, same_site="lax")

app.state.carts = CartRegistry()
app.state.auth_events = AuthEvents()
app.state.gateway = gateway_from_settings()

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.filters["money"] = money
templates.env.filters["status_label"] = order_status_label

if STATIC_DIR.exists():
    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")


def _log_auth_event(event: str, user: Optional[UserProfile]) -> None:
    logger.info("Auth state changed: %s %s", event, user.id if user else "-")


app.state.auth_events.subscribe(_log_auth_event)


# ---------------- helpers ----------------

def _session_id(request: Request) -> str:
    sid = request.session.get(SESSION_ID_KEY)
    if not sid:
        sid = request.session[SESSION_ID_KEY] = uuid.uuid4().hex
    return sid


def _cart(request: Request) -> Cart:
    return request.app.state.carts.get(_session_id(request))


def _peek_cart(request: Request) -> Cart:
    return request.app.state.carts.peek(_session_id(request))


def _release_cart(request: Request) -> None:
    if _peek_cart(request).is_empty:
        request.app.state.carts.discard(_session_id(request))


def _identity(request: Request) -> IdentityProvider:
    return IdentityProvider(request.session, request.app.state.auth_events)


def _notify(request: Request) -> NotificationQueue:
    return NotificationQueue(request.session)


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


def _login_redirect(next_url: str) -> RedirectResponse:
    return _redirect(f"/login?next={quote(next_url)}")


def _safe_next(next_url: str, default: str = "/") -> str:
    # only local paths, never another host
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return default


def _render(request: Request, name: str, ctx: dict[str, Any], status_code: int = 200) -> HTMLResponse:
    cart = _peek_cart(request)
    base = {
        "request": request,
        "user": _identity(request).current_user(),
        "cart": cart,
        "categories": catalog.categories(),
        "notifications": _notify(request).drain(),
        "auto_hide_ms": AUTO_HIDE_SECONDS * 1000,
        "shop_name": settings.shop_name,
        "free_delivery_threshold": FREE_DELIVERY_THRESHOLD,
    }
    base.update(ctx)
    return templates.TemplateResponse(request, name, base, status_code=status_code)


def _checkout_service(request: Request, user: UserProfile) -> CheckoutService:
    return CheckoutService(_peek_cart(request), OrderService(user), request.app.state.gateway)


def _draft(request: Request, user: UserProfile) -> dict[str, Any]:
    draft = request.session.get(CHECKOUT_KEY)
    if not draft:
        draft = new_draft(user.name, user.email)
        draft["phone"] = user.phone
        addresses = OrderService(user).list_shipping_addresses()
        if addresses and addresses[0]["is_default"]:
            a = addresses[0]
            line = ", ".join(x for x in (a["address_line1"], a.get("address_line2")) if x)
            draft.update(address=line, city=a["city"], state=a["state"], pincode=a["pincode"])
        request.session[CHECKOUT_KEY] = draft
    return dict(draft)


@app.get("/ping")
def ping():
    return {"status": "ok"}


@app.get("/", response_class=HTMLResponse)
def index(request: Request):
    return _render(request, "index.html", {"featured": catalog.featured_products()})


@app.get("/contact", response_class=HTMLResponse)
def contact(request: Request):
    return _render(request, "contact.html", {})


# ---------------- products ----------------

@app.get("/products", response_class=HTMLResponse)
def products(request: Request, category: Optional[str] = None, q: Optional[str] = None):
    rows = catalog.list_products(category=category or None, query=q or None)
    return _render(
        request,
        "products.html",
        {"products": rows, "selected_category": category or "", "query": q or ""},
    )


@app.get("/product/{product_id}", response_class=HTMLResponse)
def product_detail(request: Request, product_id: str):
    product = catalog.get_product(product_id)
    if product is None:
        return _render(request, "not_found.html", {"what": "Product"}, status_code=404)
    return _render(request, "product.html", {"product": product})


# ---------------- cart ----------------

@app.get("/cart", response_class=HTMLResponse)
def cart_view(request: Request):
    cart = _peek_cart(request)
    return _render(
        request,
        "cart.html",
        {
            "pricing": cart.pricing,
            "to_free_delivery": amount_to_free_delivery(cart.subtotal),
        },
    )


@app.post("/cart/add")
def cart_add(
    request: Request,
    product_id: str = Form(...),
    quantity: int = Form(1),
    next: str = Form("/cart"),
):
    product = catalog.get_product(product_id)
    notify = _notify(request)
    if product is None:
        notify.show("Product not found", "error")
        return _redirect("/products")
    if not product.in_stock:
        notify.show(f"{product.name} is out of stock", "error")
        return _redirect(_safe_next(next, f"/product/{product.id}"))

    line = _peek_cart(request).find(product.id)
    in_cart = line.quantity if line is not None else 0
    quantity = max(1, quantity)
    if in_cart + quantity > MAX_LINE_QUANTITY:
        notify.show(f"You can order at most {MAX_LINE_QUANTITY} of {product.name}", "error")
        return _redirect(_safe_next(next, f"/product/{product.id}"))

    cart = _cart(request)
    for _ in range(quantity):
        cart.add_item(product)
    notify.show(f"{product.name} added to cart!", "info")
    return _redirect(_safe_next(next, "/cart"))


@app.post("/cart/update")
def cart_update(request: Request, product_id: str = Form(...), quantity: int = Form(...)):
    if quantity > MAX_LINE_QUANTITY:
        _notify(request).show(f"You can order at most {MAX_LINE_QUANTITY} of an item", "error")
        return _redirect("/cart")
    _peek_cart(request).update_quantity(product_id, quantity)
    _release_cart(request)
    return _redirect("/cart")


@app.post("/cart/remove")
def cart_remove(request: Request, product_id: str = Form(...)):
    _peek_cart(request).remove_item(product_id)
    _release_cart(request)
    return _redirect("/cart")


# ---------------- checkout ----------------

@app.get("/checkout", response_class=HTMLResponse)
def checkout_get(request: Request):
    user = _identity(request).current_user()
    if user is None:
        return _login_redirect("/checkout")
    cart = _peek_cart(request)
    if cart.is_empty:
        return _redirect("/cart")
    draft = _draft(request, user)
    return _render(
        request,
        "checkout.html",
        {"draft": draft, "step": draft["step"], "steps": STEPS, "pricing": cart.pricing},
    )


@app.post("/checkout/next")
async def checkout_next(request: Request):
    user = _identity(request).current_user()
    if user is None:
        return _login_redirect("/checkout")
    form = await request.form()
    draft = _draft(request, user)
    step = int(draft["step"])
    for key, value in form.items():
        if key in draft and key != "step":
            draft[key] = str(value)
    try:
        draft.update(validate_step(step, draft))
        draft["step"] = min(step + 1, max(STEPS))
    except StorefrontError as e:
        _notify(request).show(e.message, "error")
    request.session[CHECKOUT_KEY] = draft
    return _redirect("/checkout")


@app.post("/checkout/back")
def checkout_back(request: Request):
    user = _identity(request).current_user()
    if user is None:
        return _login_redirect("/checkout")
    draft = _draft(request, user)
    draft["step"] = max(1, int(draft["step"]) - 1)
    request.session[CHECKOUT_KEY] = draft
    return _redirect("/checkout")


@app.post("/checkout/place")
def checkout_place(request: Request, payment_method: str = Form(...)):
    user = _identity(request).current_user()
    if user is None:
        return _login_redirect("/checkout")
    notify = _notify(request)
    draft = _draft(request, user)
    draft["payment_method"] = payment_method
    request.session[CHECKOUT_KEY] = draft

    service = _checkout_service(request, user)
    try:
        form = CheckoutForm.from_mapping(draft)
        if form.payment_method == PAYMENT_ONLINE:
            pending = service.begin_online_payment(form)
            request.session[PENDING_PAYMENT_KEY] = pending.to_dict()
            return _redirect("/checkout/payment")
        order = service.place_cod_order(form)
    except StorefrontError as e:
        logger.warning("Order placement failed for %s: %s", user.id, e.message)
        notify.show(e.message, "error")
        return _redirect("/checkout")
    except sqlite3.Error:
        logger.exception("Order placement failed for %s", user.id)
        notify.show("Order placement failed. Please try again.", "error")
        return _redirect("/checkout")

    _release_cart(request)
    request.session.pop(CHECKOUT_KEY, None)
    notify.show("Order placed successfully! Pay on delivery.", "success")
    return _redirect(f"/orders/{order['id']}?placed=1")


@app.get("/checkout/payment", response_class=HTMLResponse)
def checkout_payment(request: Request):
    user = _identity(request).current_user()
    if user is None:
        return _login_redirect("/checkout")
    raw = request.session.get(PENDING_PAYMENT_KEY)
    if not raw:
        return _redirect("/checkout")
    pending = PendingPayment.from_dict(raw)
    return _render(
        request,
        "payment.html",
        {
            "options_json": json.dumps(pending.options),
            "checkout_js": CHECKOUT_JS,
            "pending": pending,
            "demo_mode": request.app.state.gateway.demo_mode,
        },
    )


@app.post("/checkout/payment/success")
def checkout_payment_success(
    request: Request,
    razorpay_payment_id: str = Form(...),
    razorpay_order_id: str = Form(""),
    razorpay_signature: str = Form(""),
):
    user = _identity(request).current_user()
    if user is None:
        return _login_redirect("/checkout")
    notify = _notify(request)
    raw = request.session.get(PENDING_PAYMENT_KEY)
    if not raw:
        notify.show("No payment in progress", "error")
        return _redirect("/checkout")

    pending = PendingPayment.from_dict(raw)
    response = {
        "razorpay_payment_id": razorpay_payment_id,
        "razorpay_order_id": razorpay_order_id or pending.gateway_order.id,
        "razorpay_signature": razorpay_signature,
    }
    service = _checkout_service(request, user)
    try:
        form = CheckoutForm.from_mapping(_draft(request, user))
        order = service.complete_online_payment(form, pending, response)
    except PaymentError as e:
        logger.warning("Payment %s rejected: %s", razorpay_payment_id, e.message)
        request.session.pop(PENDING_PAYMENT_KEY, None)
        notify.show(e.message, "error")
        return _redirect("/checkout")
    except (StorefrontError, sqlite3.Error):
        logger.exception("Payment %s captured but order processing failed", razorpay_payment_id)
        notify.show("Payment successful but order processing failed. Please contact support.", "error")
        return _redirect("/checkout")

    request.session.pop(PENDING_PAYMENT_KEY, None)
    _release_cart(request)
    request.session.pop(CHECKOUT_KEY, None)
    notify.show("Payment successful! Order placed.", "success")
    return _redirect(f"/orders/{order['id']}?placed=1")


@app.post("/checkout/payment/dismiss")
def checkout_payment_dismiss(request: Request):
    raw = request.session.pop(PENDING_PAYMENT_KEY, None)
    user = _identity(request).current_user()
    if user is not None and raw:
        _checkout_service(request, user).cancel_online_payment(PendingPayment.from_dict(raw))
    _notify(request).show("Payment cancelled. Please try again.", "error")
    return _redirect("/checkout")


# ---------------- orders ----------------

@app.get("/my-orders", response_class=HTMLResponse)
def my_orders(request: Request):
    user = _identity(request).current_user()
    if user is None:
        return _login_redirect("/my-orders")
    orders = OrderService(user).list_orders_for_user()
    return _render(request, "my_orders.html", {"orders": orders})


@app.get("/orders/{order_id}", response_class=HTMLResponse)
def order_detail(request: Request, order_id: int, placed: int = 0):
    user = _identity(request).current_user()
    if user is None:
        return _login_redirect(f"/orders/{order_id}")
    service = OrderService(user)
    try:
        order = service.get_order(order_id)
    except OrderNotFound:
        return _render(request, "not_found.html", {"what": "Order"}, status_code=404)
    payment = service.get_payment_details_by_order_id(order_id)
    return _render(request, "order.html", {"order": order, "payment": payment, "placed": bool(placed)})


@app.get("/orders/{order_id}/receipt.pdf", response_class=FileResponse)
def order_receipt(request: Request, order_id: int):
    user = _identity(request).current_user()
    if user is None:
        return _login_redirect(f"/orders/{order_id}")
    try:
        order = OrderService(user).get_order(order_id)
    except OrderNotFound:
        return _render(request, "not_found.html", {"what": "Order"}, status_code=404)
    path = generate_receipt_pdf(order)
    return FileResponse(path, filename=Path(path).name, media_type="application/pdf")


@app.get("/track-order", response_class=HTMLResponse)
def track_order_view(request: Request, ref: str = ""):
    order = None
    error = ""
    if ref:
        try:
            order = track_order(ref)
        except OrderNotFound as e:
            error = e.message
    return _render(request, "track_order.html", {"ref": ref, "order": order, "error": error})


# ---------------- account ----------------

@app.get("/login", response_class=HTMLResponse)
def login_get(request: Request, next: str = "/"):
    return _render(request, "login.html", {"next": _safe_next(next), "email": ""})


@app.post("/login")
def login_post(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    next: str = Form("/"),
):
    try:
        user = _identity(request).sign_in(email, password)
    except StorefrontError as e:
        _notify(request).show(e.message, "error")
        return _render(request, "login.html", {"next": _safe_next(next), "email": email}, status_code=400)
    _notify(request).show(f"Welcome back, {user.name}!", "success")
    return _redirect(_safe_next(next))


@app.get("/register", response_class=HTMLResponse)
def register_get(request: Request, next: str = "/"):
    return _render(request, "register.html", {"next": _safe_next(next), "name": "", "email": ""})


@app.post("/register")
def register_post(
    request: Request,
    name: str = Form(...),
    email: str = Form(...),
    password: str = Form(...),
    confirm_password: str = Form(...),
    next: str = Form("/"),
):
    ctx = {"next": _safe_next(next), "name": name, "email": email}
    if password != confirm_password:
        _notify(request).show("Passwords do not match", "error")
        return _render(request, "register.html", ctx, status_code=400)
    try:
        user = _identity(request).sign_up(email, password, name)
    except StorefrontError as e:
        _notify(request).show(e.message, "error")
        return _render(request, "register.html", ctx, status_code=400)
    _notify(request).show(f"Account created. Welcome, {user.name}!", "success")
    return _redirect(_safe_next(next))


@app.post("/logout")
def logout(request: Request):
    _identity(request).sign_out()
    request.session.pop(CHECKOUT_KEY, None)
    request.session.pop(PENDING_PAYMENT_KEY, None)
    _notify(request).show("Signed out", "info")
    return _redirect("/")


@app.get("/account", response_class=HTMLResponse)
def account(request: Request):
    user = _identity(request).current_user()
    if user is None:
        return _login_redirect("/account")
    addresses = OrderService(user).list_shipping_addresses()
    return _render(request, "account.html", {"profile": user, "addresses": addresses})


@app.post("/account/profile")
def account_profile(request: Request, name: str = Form(...), phone: str = Form("")):
    identity = _identity(request)
    user = identity.current_user()
    if user is None:
        return _login_redirect("/account")
    try:
        identity.update_user_profile(user.id, name=name.strip() or None, phone=phone.strip())
        _notify(request).show("Profile updated", "success")
    except StorefrontError as e:
        _notify(request).show(e.message, "error")
    return _redirect("/account")


@app.post("/account/addresses")
def account_address_add(
    request: Request,
    address_line1: str = Form(...),
    address_line2: str = Form(""),
    city: str = Form(...),
    state: str = Form(...),
    pincode: str = Form(...),
    is_default: bool = Form(False),
):
    user = _identity(request).current_user()
    if user is None:
        return _login_redirect("/account")
    try:
        validate_step(2, {"address": address_line1, "city": city, "state": state, "pincode": pincode})
        OrderService(user).create_shipping_address(
            {
                "address_line1": address_line1.strip(),
                "address_line2": address_line2.strip() or None,
                "city": city.strip(),
                "state": state.strip(),
                "pincode": pincode.strip(),
                "is_default": is_default,
            }
        )
        _notify(request).show("Address saved", "success")
    except StorefrontError as e:
        _notify(request).show(e.message, "error")
    return _redirect("/account")


@app.post("/account/addresses/{address_id}/default")
def account_address_default(request: Request, address_id: int):
    user = _identity(request).current_user()
    if user is None:
        return _login_redirect("/account")
    try:
        OrderService(user).set_default_address(address_id)
    except StorefrontError as e:
        _notify(request).show(e.message, "error")
    return _redirect("/account")


@app.post("/account/addresses/{address_id}/delete")
def account_address_delete(request: Request, address_id: int):
    user = _identity(request).current_user()
    if user is None:
        return _login_redirect("/account")
    OrderService(user).delete_shipping_address(address_id)
    return _redirect("/account")
