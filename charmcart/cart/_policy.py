"""
Cart policies — limits and pricing.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal


@dataclass(frozen=True, slots=True)
class CartPolicy:
    """
    Cart limits.

    `max_items` counts lines, not units.
    """

    max_items: int = 50
    max_quantity_per_item: int = 10
    max_unit_price: Decimal = Decimal("10000")
    max_history: int = 20

    def with_max_items(self, max_items: int) -> CartPolicy:
        return replace(self, max_items=max_items)

    def with_max_quantity(self, max_quantity: int) -> CartPolicy:
        return replace(self, max_quantity_per_item=max_quantity)

    def with_max_unit_price(self, price: Decimal) -> CartPolicy:
        return replace(self, max_unit_price=Decimal(price))

    def with_history(self, depth: int) -> CartPolicy:
        return replace(self, max_history=depth)


@dataclass(frozen=True, slots=True)
class PricingPolicy:
    tax_rate: Decimal = Decimal("0.08")
    free_shipping_threshold: Decimal = Decimal("75")
    standard_shipping: Decimal = Decimal("12.99")
    currency: str = "USD"

    def with_tax_rate(self, rate: Decimal) -> PricingPolicy:
        return replace(self, tax_rate=Decimal(rate))

    def with_shipping(
        self,
        *,
        fee: Decimal | None = None,
        free_over: Decimal | None = None,
    ) -> PricingPolicy:
        """
        Example:
            .with_shipping(fee=Decimal("9.99"), free_over=Decimal("100"))
        """
        return replace(
            self,
            standard_shipping=self.standard_shipping if fee is None else Decimal(fee),
            free_shipping_threshold=(
                self.free_shipping_threshold if free_over is None else Decimal(free_over)
            ),
        )


__all__ = ("CartPolicy", "PricingPolicy")
