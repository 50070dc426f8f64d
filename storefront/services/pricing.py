from __future__ import annotations

from dataclasses import dataclass

from storefront.constants import FLAT_DELIVERY_FEE, FREE_DELIVERY_THRESHOLD, MINOR_UNITS


@dataclass(frozen=True)
class PricingResult:
    subtotal: int
    delivery_fee: int
    total: int

    @property
    def amount_minor(self) -> int:
        return self.total * MINOR_UNITS


def delivery_fee_for(subtotal: int) -> int:
    return 0 if subtotal >= FREE_DELIVERY_THRESHOLD else FLAT_DELIVERY_FEE


def price_subtotal(subtotal: int) -> PricingResult:
    # an empty cart still carries the flat fee; checkout refuses empty carts upstream
    fee = delivery_fee_for(subtotal)
    return PricingResult(subtotal=subtotal, delivery_fee=fee, total=subtotal + fee)


def amount_to_free_delivery(subtotal: int) -> int:
    return max(0, FREE_DELIVERY_THRESHOLD - subtotal)
