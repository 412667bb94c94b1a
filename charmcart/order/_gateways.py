"""
Collaborator contracts consumed by the coordinator.
"""

from __future__ import annotations

from typing import Protocol

from charmcart.order._types import (
    InventoryItem,
    Order,
    OrderItem,
    PaymentInfo,
    PaymentResult,
    ReservationOutcome,
)


class InventoryGateway(Protocol):
    """
    Stock holds keyed by reservation id.

    Note: Reserve/release against one inventory id must be serialized
    by the implementation.
    """

    async def reserve_inventory(
        self, inventory_id: str, quantity: int, reservation_id: str
    ) -> ReservationOutcome: ...

    async def release_inventory_reservation(self, reservation_id: str) -> None: ...

    async def commit_inventory_reservation(self, reservation_id: str) -> None: ...

    async def get_inventory_item(self, inventory_id: str) -> InventoryItem | None: ...


class PaymentGateway(Protocol):
    async def process_payment(self, order: Order, payment_info: PaymentInfo) -> PaymentResult: ...


class OrderRepository(Protocol):
    async def create_order(self, order: Order) -> Order: ...

    async def create_order_item(self, item: OrderItem) -> OrderItem: ...

    async def update_order(self, order: Order) -> Order: ...

    async def get_order(self, order_id: str) -> Order | None: ...

    async def get_order_by_number(self, order_number: str) -> Order | None: ...

    async def list_user_orders(self, user_id: str) -> list[Order]: ...

    async def list_order_items(self, order_id: str) -> list[OrderItem]: ...


__all__ = (
    "InventoryGateway",
    "PaymentGateway",
    "OrderRepository",
)
