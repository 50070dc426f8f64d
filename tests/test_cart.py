from __future__ import annotations

import pytest

from storefront.services.cart import (
    AddItem,
    Cart,
    CartRegistry,
    ClearCart,
    RemoveItem,
    UpdateQuantity,
)
from storefront.services.catalog import Product


def make_product(product_id: str = "p", price: int = 120, **kwargs) -> Product:
    defaults = {
        "name": product_id.title(),
        "image": f"/static/img/{product_id}.jpg",
        "unit": "1 kg",
        "category": "Vegetables",
    }
    defaults.update(kwargs)
    return Product(id=product_id, price=price, **defaults)


def test_repeated_add_increments_single_line() -> None:
    cart = Cart()
    product = make_product("tomato", 40)
    for k in range(1, 6):
        cart.add_item(product)
        assert cart.item_count == k
        assert len(cart) == 1
        assert cart.find("tomato").quantity == k


def test_distinct_products_keep_insertion_order() -> None:
    a = make_product("a", 30)
    b = make_product("b", 70)
    cart = Cart().add_item(a).add_item(b)

    assert [it.product_id for it in cart] == ["a", "b"]
    assert cart.subtotal == 100
    assert cart.item_count == 2


def test_line_item_copies_product_descriptor() -> None:
    product = make_product("carrot", 60, unit="500 g", category="Vegetables", image="/img/c.jpg")
    item = Cart().add_item(product).find("carrot")

    assert item.name == "Carrot"
    assert item.unit_price == 60
    assert item.unit == "500 g"
    assert item.image_ref == "/img/c.jpg"
    assert item.category == "Vegetables"
    assert item.quantity == 1


@pytest.mark.parametrize("quantity", [0, -1, -10])
def test_update_quantity_non_positive_removes(quantity: int) -> None:
    cart = Cart().add_item(make_product("a")).add_item(make_product("b"))
    cart.update_quantity("a", quantity)

    assert cart.find("a") is None
    assert [it.product_id for it in cart] == ["b"]


def test_update_quantity_zero_matches_remove() -> None:
    updated = Cart().add_item(make_product("a")).add_item(make_product("b")).update_quantity("a", 0)
    removed = Cart().add_item(make_product("a")).add_item(make_product("b")).remove_item("a")
    assert updated == removed


def test_update_quantity_is_absolute() -> None:
    cart = Cart().add_item(make_product("a", 10)).add_item(make_product("a", 10))
    cart.update_quantity("a", 7)
    assert cart.find("a").quantity == 7
    assert cart.subtotal == 70


def test_update_quantity_unknown_id_is_noop() -> None:
    cart = Cart().add_item(make_product("a", 10))
    before = (cart.item_count, cart.subtotal, list(cart.items))
    cart.update_quantity("missing", 3)
    assert (cart.item_count, cart.subtotal, list(cart.items)) == before


def test_remove_unknown_id_is_noop() -> None:
    cart = Cart().add_item(make_product("a", 10)).add_item(make_product("b", 5))
    snapshot = Cart(items=[*cart.items])
    cart.remove_item("missing")
    assert cart == snapshot
    assert cart.pricing == snapshot.pricing


def test_clear_empties_cart() -> None:
    cart = Cart().add_item(make_product("a", 10)).add_item(make_product("b", 5))
    cart.clear()
    assert cart.is_empty
    assert cart.item_count == 0
    assert cart.subtotal == 0


def test_dispatch_accepts_commands_directly() -> None:
    product = make_product("a", 10)
    cart = Cart()
    cart.dispatch(AddItem(product)).dispatch(AddItem(product))
    cart.dispatch(UpdateQuantity("a", 4))
    assert cart.item_count == 4
    cart.dispatch(RemoveItem("a"))
    assert cart.is_empty
    cart.dispatch(AddItem(product)).dispatch(ClearCart())
    assert cart.is_empty


def test_dispatch_rejects_unknown_command() -> None:
    with pytest.raises(TypeError):
        Cart().dispatch("ADD_ITEM")


def test_out_of_stock_product_is_accepted_by_engine() -> None:
    cart = Cart().add_item(make_product("drumstick", 80, in_stock=False))
    assert cart.item_count == 1


def test_end_to_end_pricing_walkthrough() -> None:
    product = make_product("p", 120)
    cart = Cart()
    for _ in range(3):
        cart.add_item(product)

    assert cart.item_count == 3
    assert cart.subtotal == 360
    assert cart.pricing.delivery_fee == 50
    assert cart.pricing.total == 410

    cart.update_quantity("p", 5)
    assert cart.subtotal == 600
    assert cart.pricing.delivery_fee == 0
    assert cart.pricing.total == 600

    cart.remove_item("p")
    assert cart.item_count == 0


def test_to_order_items_shape() -> None:
    cart = Cart().add_item(make_product("a", 10)).add_item(make_product("a", 10))
    assert cart.to_order_items() == [
        {"id": "a", "name": "A", "price": 10, "quantity": 2, "image": "/static/img/a.jpg", "unit": "1 kg"}
    ]


def test_registry_keeps_one_cart_per_session() -> None:
    registry = CartRegistry()
    registry.get("s1").add_item(make_product("a"))

    assert registry.get("s1").item_count == 1
    assert registry.get("s2").is_empty
    assert len(registry) == 2

    registry.discard("s1")
    assert registry.get("s1").is_empty


def test_registry_peek_does_not_store_empty_carts() -> None:
    registry = CartRegistry()
    assert registry.peek("s1").is_empty
    assert len(registry) == 0

    registry.get("s1").add_item(make_product("a"))
    assert registry.peek("s1").item_count == 1
    assert len(registry) == 1
