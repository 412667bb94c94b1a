"""
In-memory collaborators — inventory, orders, payments.

Note: Только для single-instance / тестов.
Failure switches (`fail_reserve_on`, `decline`, ...) let callers exercise
every rollback path without a real backend.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict
from dataclasses import replace
from decimal import Decimal

from charmcart.errors import TransientError
from charmcart.order._types import (
    InventoryItem,
    Order,
    OrderItem,
    PaymentInfo,
    PaymentResult,
    PaymentStatus,
    ReservationOutcome,
)

# ═══════════════════════════════════════════════════════════════════════════════
# Inventory
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryInventory:
    """
    Holds reduce `available_quantity` immediately. Release gives the
    units back; commit forgets the hold so the decrement sticks.
    """

    def __init__(self, items: list[InventoryItem] | None = None) -> None:
        self._items: dict[str, InventoryItem] = {i.id: i for i in items or ()}
        self._holds: dict[str, list[tuple[str, int]]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self.fail_reserve_on: set[str] = set()
        self.fail_release = False
        self.available = True
        self.released: list[str] = []
        self.committed: list[str] = []

    def add(
        self,
        inventory_id: str,
        quantity: int,
        price: Decimal | str = "0",
        *,
        status: str = "active",
        title: str = "",
    ) -> InventoryItem:
        item = InventoryItem(
            id=inventory_id,
            status=status,
            available_quantity=quantity,
            price=Decimal(price),
            title=title or inventory_id,
        )
        self._items[inventory_id] = item
        return item

    def holds(self, reservation_id: str) -> list[tuple[str, int]]:
        return list(self._holds.get(reservation_id, ()))

    @property
    def outstanding(self) -> dict[str, list[tuple[str, int]]]:
        return {rid: list(h) for rid, h in self._holds.items() if h}

    async def reserve_inventory(
        self, inventory_id: str, quantity: int, reservation_id: str
    ) -> ReservationOutcome:
        async with self._lock:
            if not self.available:
                raise TransientError("Inventory service unavailable")
            if inventory_id in self.fail_reserve_on:
                return ReservationOutcome(False, f"Reservation rejected for {inventory_id}")

            item = self._items.get(inventory_id)
            if item is None:
                return ReservationOutcome(False, f"Item not found: {inventory_id}")
            if not item.is_active:
                return ReservationOutcome(False, f"Item not available: {inventory_id}")
            if item.available_quantity < quantity:
                return ReservationOutcome(
                    False,
                    f"Insufficient stock for {inventory_id}. "
                    f"Available: {item.available_quantity}, Required: {quantity}",
                )

            self._items[inventory_id] = replace(
                item, available_quantity=item.available_quantity - quantity
            )
            self._holds[reservation_id].append((inventory_id, quantity))
            return ReservationOutcome(True)

    async def release_inventory_reservation(self, reservation_id: str) -> None:
        async with self._lock:
            if self.fail_release:
                raise TransientError("Inventory service unavailable")
            for inventory_id, quantity in self._holds.pop(reservation_id, ()):
                item = self._items[inventory_id]
                self._items[inventory_id] = replace(
                    item, available_quantity=item.available_quantity + quantity
                )
            self.released.append(reservation_id)

    async def commit_inventory_reservation(self, reservation_id: str) -> None:
        async with self._lock:
            self._holds.pop(reservation_id, None)
            self.committed.append(reservation_id)

    async def get_inventory_item(self, inventory_id: str) -> InventoryItem | None:
        async with self._lock:
            if not self.available:
                raise TransientError("Inventory service unavailable")
            return self._items.get(inventory_id)


# ═══════════════════════════════════════════════════════════════════════════════
# Orders
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryOrderRepository:
    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._items: dict[str, list[OrderItem]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self.fail_item_create = False

    async def create_order(self, order: Order) -> Order:
        async with self._lock:
            self._orders[order.id] = order
            return order

    async def create_order_item(self, item: OrderItem) -> OrderItem:
        async with self._lock:
            if self.fail_item_create:
                raise RuntimeError("Order item insert rejected: invalid payload")
            self._items[item.order_id].append(item)
            return item

    async def update_order(self, order: Order) -> Order:
        async with self._lock:
            self._orders[order.id] = order
            return order

    async def get_order(self, order_id: str) -> Order | None:
        async with self._lock:
            return self._orders.get(order_id)

    async def get_order_by_number(self, order_number: str) -> Order | None:
        async with self._lock:
            return next((o for o in self._orders.values() if o.order_number == order_number), None)

    async def list_user_orders(self, user_id: str) -> list[Order]:
        async with self._lock:
            return [o for o in self._orders.values() if o.user_id == user_id]

    async def list_order_items(self, order_id: str) -> list[OrderItem]:
        async with self._lock:
            return list(self._items.get(order_id, ()))


# ═══════════════════════════════════════════════════════════════════════════════
# Payments
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryPaymentGateway:
    """Succeeds unless `decline` is set or `error` is given."""

    def __init__(self) -> None:
        self.decline = False
        self.error: Exception | None = None
        self.charges: list[tuple[str, Decimal]] = []
        self.calls = 0

    async def process_payment(self, order: Order, payment_info: PaymentInfo) -> PaymentResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        if self.decline:
            return PaymentResult(
                status=PaymentStatus.FAILED,
                payment_intent_id=payment_info.payment_intent_id,
                error="Payment declined by card issuer",
            )
        self.charges.append((order.order_number, order.totals.total))
        return PaymentResult(
            status=PaymentStatus.SUCCEEDED,
            payment_intent_id=payment_info.payment_intent_id or f"pi_{uuid.uuid4().hex[:16]}",
        )


__all__ = (
    "MemoryInventory",
    "MemoryOrderRepository",
    "MemoryPaymentGateway",
)
