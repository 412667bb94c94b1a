"""
Cart types — items, designs, summaries, snapshots.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any

from charmcart._types import money

# ═══════════════════════════════════════════════════════════════════════════════
# Design
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class DesignComponent:
    """One charm placed on the canvas."""

    inventory_id: str
    placement: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class DesignSnapshot:
    """
    Frozen copy of a canvas design.

    Only `inventory_ids` matters to the engine: each component holds
    one unit of its inventory item at checkout.
    """

    components: tuple[DesignComponent, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def inventory_ids(self) -> tuple[str, ...]:
        return tuple(c.inventory_id for c in self.components)


# ═══════════════════════════════════════════════════════════════════════════════
# Product (input) / CartItem (line)
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Product:
    """What the storefront hands to `add_item`."""

    id: str
    title: str
    price: Decimal
    description: str = ""
    image_url: str | None = None
    category: str | None = None
    is_custom_design: bool = False
    design: DesignSnapshot | None = None


@dataclass(frozen=True, slots=True)
class CartItem:
    cart_item_id: str
    product_id: str
    title: str
    unit_price: Decimal
    quantity: int
    added_at: datetime
    last_updated: datetime
    is_custom_design: bool = False
    design: DesignSnapshot | None = None
    description: str = ""
    image_url: str | None = None
    category: str | None = None

    @property
    def total_price(self) -> Decimal:
        return money(self.unit_price * self.quantity)

    def same_line_as(self, other: CartItem | Product) -> bool:
        """Stock lines with one product id collapse; custom designs never do."""
        if self.is_custom_design or other.is_custom_design:
            return False
        other_id = other.product_id if isinstance(other, CartItem) else other.id
        return self.product_id == other_id

    def with_quantity(self, quantity: int, at: datetime) -> CartItem:
        return replace(self, quantity=quantity, last_updated=at)


# ═══════════════════════════════════════════════════════════════════════════════
# Summary / Snapshot
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CartSummary:
    """Derived totals. Always recomputed from the item list."""

    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    item_count: int
    currency: str = "USD"

    @property
    def has_items(self) -> bool:
        return self.item_count > 0


@dataclass(frozen=True, slots=True)
class CartSnapshot:
    """Unit of persistence and of undo/redo history."""

    items: tuple[CartItem, ...]
    summary: CartSummary
    version: int
    last_updated: datetime
    session_id: str | None = None
    user_id: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.items

    def find(self, cart_item_id: str) -> CartItem | None:
        return next((i for i in self.items if i.cart_item_id == cart_item_id), None)


__all__ = (
    "DesignComponent",
    "DesignSnapshot",
    "Product",
    "CartItem",
    "CartSummary",
    "CartSnapshot",
)
