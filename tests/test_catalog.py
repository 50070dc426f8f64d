from __future__ import annotations

from storefront.db import sqlite as db
from storefront.services import catalog


def test_seeded_catalogue() -> None:
    products = catalog.list_products()
    ids = {p.id for p in products}
    assert {"tomato", "banana", "spinach"} <= ids
    assert all(p.price > 0 for p in products)


def test_filter_by_category() -> None:
    fruits = catalog.list_products(category="Fruits")
    assert fruits
    assert {p.category for p in fruits} == {"Fruits"}


def test_search_is_case_insensitive() -> None:
    found = catalog.list_products(query="MANGO")
    assert [p.id for p in found] == ["mango"]


def test_get_product_and_savings() -> None:
    tomato = catalog.get_product("tomato")
    assert tomato.price == 40
    assert tomato.savings == 10
    assert catalog.get_product("onion").savings == 0
    assert catalog.get_product("nope") is None


def test_featured_products() -> None:
    assert all(p.featured for p in catalog.featured_products())
    assert "tomato" in {p.id for p in catalog.featured_products()}


def test_stock_toggle() -> None:
    assert catalog.get_product("drumstick").in_stock is False
    assert db.set_in_stock("drumstick", True)
    assert catalog.get_product("drumstick").in_stock is True
    assert not db.set_in_stock("missing", True)


def test_add_product_appears_in_category() -> None:
    db.add_product("beetroot", "Beetroot", 50, "1 kg", "Vegetables", description="Deep red beets")
    assert "beetroot" in {p.id for p in catalog.list_products(category="Vegetables")}
