"""
Order types — orders, items, reservations and collaborator payloads.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from charmcart.cart import CartSummary, DesignSnapshot

# ═══════════════════════════════════════════════════════════════════════════════
# Statuses
# ═══════════════════════════════════════════════════════════════════════════════


class OrderStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(StrEnum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ProductionStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"


# ═══════════════════════════════════════════════════════════════════════════════
# Checkout input
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Address:
    line1: str
    city: str
    state: str
    postal_code: str
    country: str = "US"
    line2: str | None = None


@dataclass(frozen=True, slots=True)
class CustomerInfo:
    email: str
    name: str
    phone: str | None = None
    user_id: str | None = None
    notes: str | None = None
    special_instructions: str | None = None


@dataclass(frozen=True, slots=True)
class PaymentInfo:
    payment_method_id: str
    payment_intent_id: str | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Inventory
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class InventoryItem:
    id: str
    status: str
    available_quantity: int
    price: Decimal
    title: str = ""

    @property
    def is_active(self) -> bool:
        return self.status == "active"


@dataclass(frozen=True, slots=True)
class ReservationOutcome:
    success: bool
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ReservedUnit:
    inventory_id: str
    quantity: int


@dataclass(frozen=True, slots=True)
class Reservation:
    """Transient hold. Always committed or released."""

    reservation_id: str
    units: tuple[ReservedUnit, ...]


# ═══════════════════════════════════════════════════════════════════════════════
# Order
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class OrderTotals:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    currency: str = "USD"

    @classmethod
    def from_summary(cls, summary: CartSummary) -> OrderTotals:
        return cls(
            subtotal=summary.subtotal,
            tax=summary.tax,
            shipping=summary.shipping,
            discount=summary.discount,
            total=summary.total,
            currency=summary.currency,
        )


@dataclass(frozen=True, slots=True)
class Order:
    id: str
    order_number: str
    status: OrderStatus
    payment_status: PaymentStatus
    customer: CustomerInfo
    shipping_address: Address
    billing_address: Address
    totals: OrderTotals
    reservation_id: str
    created_at: datetime
    updated_at: datetime
    payment_intent_id: str | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None

    @property
    def user_id(self) -> str | None:
        return self.customer.user_id


@dataclass(frozen=True, slots=True)
class OrderItem:
    id: str
    order_id: str
    product_id: str
    item_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    used_inventory_items: tuple[str, ...]
    production_status: ProductionStatus
    is_custom_design: bool = False
    design: DesignSnapshot | None = None
    image_url: str | None = None


@dataclass(frozen=True, slots=True)
class PaymentResult:
    status: PaymentStatus
    payment_intent_id: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class PlacedOrder:
    """Everything `create_order` produced."""

    order: Order
    items: tuple[OrderItem, ...]
    reservation: Reservation
    payment: PaymentResult | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Availability
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class QuantityIssue:
    cart_item_id: str
    requested: int
    available: int


@dataclass(frozen=True, slots=True)
class PriceChange:
    cart_item_id: str
    cart_price: Decimal
    current_price: Decimal


@dataclass(frozen=True, slots=True)
class AvailabilityReport:
    unavailable: tuple[str, ...] = ()
    quantity_issues: tuple[QuantityIssue, ...] = ()
    price_changes: tuple[PriceChange, ...] = ()

    @property
    def ok(self) -> bool:
        return not (self.unavailable or self.quantity_issues or self.price_changes)


__all__ = (
    "OrderStatus",
    "PaymentStatus",
    "ProductionStatus",
    "Address",
    "CustomerInfo",
    "PaymentInfo",
    "InventoryItem",
    "ReservationOutcome",
    "ReservedUnit",
    "Reservation",
    "OrderTotals",
    "Order",
    "OrderItem",
    "PaymentResult",
    "PlacedOrder",
    "QuantityIssue",
    "PriceChange",
    "AvailabilityReport",
)
