"""
Cart — in-memory cart state, pricing and snapshots.

    from charmcart import cart as K

    store = K.CartStateStore(K.CartPolicy(), K.PricingPolicy())
    store.add_item(K.Product("charm1", "Heart", Decimal("25.00")), 2)
    store.get_cart_summary()   # subtotal 50.00, tax 4.00, shipping 12.99, total 66.99
"""

from charmcart.cart._types import (
    DesignComponent,
    DesignSnapshot,
    Product,
    CartItem,
    CartSummary,
    CartSnapshot,
)
from charmcart.cart._policy import CartPolicy, PricingPolicy
from charmcart.cart._pricing import DiscountRule, no_discount, summarize
from charmcart.cart._codec import (
    SCHEMA_VERSION,
    item_to_dict,
    summary_to_dict,
    snapshot_to_dict,
    item_from_dict,
    snapshot_from_dict,
)
from charmcart.cart._store import CartStateStore

__all__ = (
    "DesignComponent",
    "DesignSnapshot",
    "Product",
    "CartItem",
    "CartSummary",
    "CartSnapshot",
    "CartPolicy",
    "PricingPolicy",
    "DiscountRule",
    "no_discount",
    "summarize",
    "SCHEMA_VERSION",
    "item_to_dict",
    "summary_to_dict",
    "snapshot_to_dict",
    "item_from_dict",
    "snapshot_from_dict",
    "CartStateStore",
)
