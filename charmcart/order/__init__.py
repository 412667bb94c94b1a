"""
Order — checkout transactions with compensating rollback.

    from charmcart import order as O

    coordinator = O.OrderTransactionCoordinator(
        inventory=O.MemoryInventory(),
        orders=O.MemoryOrderRepository(),
        payments=O.MemoryPaymentGateway(),
    )

    placed = await coordinator.create_order(snapshot, customer, address, payment_info=O.PaymentInfo("pm_1"))
    await coordinator.update_order_status(placed.order.id, O.OrderStatus.SHIPPED)
"""

from charmcart.order._types import (
    OrderStatus,
    PaymentStatus,
    ProductionStatus,
    Address,
    CustomerInfo,
    PaymentInfo,
    InventoryItem,
    ReservationOutcome,
    ReservedUnit,
    Reservation,
    OrderTotals,
    Order,
    OrderItem,
    PaymentResult,
    PlacedOrder,
    QuantityIssue,
    PriceChange,
    AvailabilityReport,
)
from charmcart.order._gateways import (
    InventoryGateway,
    PaymentGateway,
    OrderRepository,
)
from charmcart.order._memory import (
    MemoryInventory,
    MemoryOrderRepository,
    MemoryPaymentGateway,
)
from charmcart.order._numbers import (
    OrderNumberGenerator,
    new_reservation_id,
    new_record_id,
)
from charmcart.order._policy import CheckoutPolicy
from charmcart.order._saga import Compensator, RollbackReport, Transaction
from charmcart.order._coordinator import (
    STATUS_TRANSITIONS,
    inventory_demand,
    OrderTransactionCoordinator,
)

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
    "InventoryGateway",
    "PaymentGateway",
    "OrderRepository",
    "MemoryInventory",
    "MemoryOrderRepository",
    "MemoryPaymentGateway",
    "OrderNumberGenerator",
    "new_reservation_id",
    "new_record_id",
    "CheckoutPolicy",
    "Compensator",
    "RollbackReport",
    "Transaction",
    "STATUS_TRANSITIONS",
    "inventory_demand",
    "OrderTransactionCoordinator",
)
