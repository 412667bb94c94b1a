"""
Pricing — pure summary computation.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from decimal import Decimal

from charmcart._types import money
from charmcart.cart._policy import PricingPolicy
from charmcart.cart._types import CartItem, CartSummary

type DiscountRule = Callable[[Sequence[CartItem], Decimal], Decimal]
"""(items, subtotal) -> discount amount."""


def no_discount(items: Sequence[CartItem], subtotal: Decimal) -> Decimal:
    return Decimal("0")


def summarize(
    items: Sequence[CartItem],
    pricing: PricingPolicy | None = None,
    discount_rule: DiscountRule = no_discount,
) -> CartSummary:
    """
    Compute totals for a list of lines.

    Each component is rounded half-up to cents. An empty cart ships free.
    """
    pricing = pricing or PricingPolicy()

    subtotal = money(sum((i.total_price for i in items), Decimal("0")))
    tax = money(subtotal * pricing.tax_rate)
    if not items or subtotal >= pricing.free_shipping_threshold:
        shipping = money(0)
    else:
        shipping = money(pricing.standard_shipping)
    discount = money(discount_rule(items, subtotal))
    total = money(subtotal + tax + shipping - discount)

    return CartSummary(
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        discount=discount,
        total=total,
        item_count=sum(i.quantity for i in items),
        currency=pricing.currency,
    )


__all__ = ("DiscountRule", "no_discount", "summarize")
