"""Session-scoped shopping cart.

The cart is mutated only through four commands (:class:`AddItem`,
:class:`UpdateQuantity`, :class:`RemoveItem`, :class:`ClearCart`) handled by
:meth:`Cart.dispatch`. Totals are derived from ``items`` on every read.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Union

from storefront.services.catalog import Product
from storefront.services.pricing import PricingResult, price_subtotal


@dataclass
class LineItem:
    product_id: str
    name: str
    unit_price: int
    image_ref: str
    unit: str
    category: str
    quantity: int = 1

    @classmethod
    def from_product(cls, product: Product) -> LineItem:
        return cls(
            product_id=product.id,
            name=product.name,
            unit_price=product.price,
            image_ref=product.image,
            unit=product.unit,
            category=product.category,
        )

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class AddItem:
    product: Product


@dataclass(frozen=True)
class UpdateQuantity:
    product_id: str
    quantity: int


@dataclass(frozen=True)
class RemoveItem:
    product_id: str


@dataclass(frozen=True)
class ClearCart:
    pass


CartCommand = Union[AddItem, UpdateQuantity, RemoveItem, ClearCart]


@dataclass
class Cart:
    items: List[LineItem] = field(default_factory=list)

    def __iter__(self) -> Iterator[LineItem]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def find(self, product_id: str) -> Optional[LineItem]:
        for it in self.items:
            if it.product_id == product_id:
                return it
        return None

    # ---------------- commands ----------------

    def dispatch(self, command: CartCommand) -> Cart:
        if isinstance(command, AddItem):
            existing = self.find(command.product.id)
            if existing is not None:
                existing.quantity += 1
            else:
                self.items.append(LineItem.from_product(command.product))
        elif isinstance(command, UpdateQuantity):
            if command.quantity <= 0:
                return self.dispatch(RemoveItem(command.product_id))
            existing = self.find(command.product_id)
            if existing is not None:
                existing.quantity = command.quantity
        elif isinstance(command, RemoveItem):
            self.items = [it for it in self.items if it.product_id != command.product_id]
        elif isinstance(command, ClearCart):
            self.items = []
        else:
            raise TypeError(f"unknown cart command: {command!r}")
        return self

    def add_item(self, product: Product) -> Cart:
        return self.dispatch(AddItem(product))

    def update_quantity(self, product_id: str, quantity: int) -> Cart:
        return self.dispatch(UpdateQuantity(product_id, int(quantity)))

    def remove_item(self, product_id: str) -> Cart:
        return self.dispatch(RemoveItem(product_id))

    def clear(self) -> Cart:
        return self.dispatch(ClearCart())

    # ---------------- derived ----------------

    @property
    def item_count(self) -> int:
        return sum(it.quantity for it in self.items)

    @property
    def subtotal(self) -> int:
        return sum(it.line_total for it in self.items)

    @property
    def pricing(self) -> PricingResult:
        return price_subtotal(self.subtotal)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def to_order_items(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": it.product_id,
                "name": it.name,
                "price": it.unit_price,
                "quantity": it.quantity,
                "image": it.image_ref,
                "unit": it.unit,
            }
            for it in self.items
        ]


class CartRegistry:
    """Carts of the live browsing sessions, keyed by session id.

    Owned by the web application; carts are not persisted and vanish with
    the process or when discarded.
    """

    def __init__(self) -> None:
        self._carts: Dict[str, Cart] = {}

    def get(self, session_id: str) -> Cart:
        cart = self._carts.get(session_id)
        if cart is None:
            cart = self._carts[session_id] = Cart()
        return cart

    def peek(self, session_id: str) -> Cart:
        """The session's cart for reading; an empty one is not stored."""
        cart = self._carts.get(session_id)
        return cart if cart is not None else Cart()

    def discard(self, session_id: str) -> None:
        self._carts.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._carts)
