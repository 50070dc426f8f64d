from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from storefront.constants import CATEGORIES
from storefront.db import sqlite as db


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price: int
    image: str
    unit: str
    category: str
    in_stock: bool = True
    description: str = ""
    original_price: Optional[int] = None
    featured: bool = False

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> Product:
        return cls(
            id=str(row["id"]),
            name=row["name"],
            price=int(row["price"]),
            image=row.get("image") or "",
            unit=row.get("unit") or "",
            category=row["category"],
            in_stock=bool(row.get("in_stock", True)),
            description=row.get("description") or "",
            original_price=row.get("original_price"),
            featured=bool(row.get("featured", False)),
        )

    @property
    def savings(self) -> int:
        if self.original_price is None:
            return 0
        return max(0, self.original_price - self.price)


def list_products(category: Optional[str] = None, query: Optional[str] = None) -> List[Product]:
    return [Product.from_row(r) for r in db.list_products(category=category, query=query)]


def get_product(product_id: str) -> Optional[Product]:
    row = db.get_product(product_id)
    return Product.from_row(row) if row else None


def featured_products() -> List[Product]:
    return [p for p in list_products() if p.featured]


def categories() -> List[str]:
    return list(CATEGORIES.keys())
