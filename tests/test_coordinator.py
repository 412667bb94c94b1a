import asyncio
import logging
import re
from decimal import Decimal

import pytest

from charmcart.cart import CartSnapshot, CartStateStore
from charmcart.errors import (
    ConflictError,
    NotFoundError,
    PaymentDeclinedError,
    ReservationError,
    TransientError,
    ValidationError,
)
from charmcart.events import Event, EventBus
from charmcart.order import (
    Address,
    CheckoutPolicy,
    CustomerInfo,
    MemoryInventory,
    MemoryOrderRepository,
    MemoryPaymentGateway,
    Order,
    OrderStatus,
    OrderTransactionCoordinator,
    PaymentInfo,
    PaymentStatus,
    ProductionStatus,
)
from charmcart.retry import RetryExecutor

from conftest import FakeClock, charm, custom_design

CARD = PaymentInfo("pm_card_visa")


@pytest.fixture
def cart(store: CartStateStore) -> CartSnapshot:
    store.add_item(charm("charm1", "25.00"), 2)
    store.add_item(charm("charm2", "15.00"), 1)
    return store.snapshot


async def stock(inventory: MemoryInventory, inventory_id: str) -> int:
    item = await inventory.get_inventory_item(inventory_id)
    assert item is not None
    return item.available_quantity


class GatedPayments(MemoryPaymentGateway):
    """Blocks inside process_payment until released."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def process_payment(self, order, payment_info):
        self.entered.set()
        await self.release.wait()
        return await super().process_payment(order, payment_info)


class ExplodingBus:
    def publish(self, event, payload) -> None:
        raise RuntimeError("mailer down")


# ═══════════════════════════════════════════════════════════════════════════════
# Happy path
# ═══════════════════════════════════════════════════════════════════════════════


async def test_order_created_and_paid(
    coordinator: OrderTransactionCoordinator,
    cart: CartSnapshot,
    customer: CustomerInfo,
    address: Address,
    inventory: MemoryInventory,
    payments: MemoryPaymentGateway,
    bus: EventBus,
) -> None:
    placed = await coordinator.create_order(cart, customer, address, payment_info=CARD)

    order = placed.order
    assert re.fullmatch(r"TJC-20261018-\d{4}", order.order_number)
    assert order.status is OrderStatus.PROCESSING
    assert order.payment_status is PaymentStatus.SUCCEEDED
    assert order.billing_address == address
    assert order.totals.subtotal == Decimal("65.00")
    assert order.totals.tax == Decimal("5.20")
    assert order.totals.total == Decimal("83.19")
    assert payments.charges == [(order.order_number, Decimal("83.19"))]

    assert [(i.product_id, i.quantity) for i in placed.items] == [("charm1", 2), ("charm2", 1)]
    assert all(i.production_status is ProductionStatus.COMPLETED for i in placed.items)

    assert await stock(inventory, "charm1") == 8
    assert await stock(inventory, "charm2") == 4
    assert inventory.committed == [placed.reservation.reservation_id]
    assert inventory.outstanding == {}

    assert bus.history(Event.ORDER_CREATED)[0].payload["order_number"] == order.order_number
    confirmation = bus.history(Event.ORDER_CONFIRMATION_REQUESTED)[0].payload
    assert confirmation["customer_email"] == "ada@example.com"


async def test_order_without_payment_stays_pending(
    coordinator: OrderTransactionCoordinator,
    cart: CartSnapshot,
    customer: CustomerInfo,
    address: Address,
) -> None:
    placed = await coordinator.create_order(cart, customer, address)

    assert placed.payment is None
    assert placed.order.status is OrderStatus.PENDING
    assert placed.order.payment_status is PaymentStatus.PENDING


async def test_custom_design_reserves_each_component(
    coordinator: OrderTransactionCoordinator,
    store: CartStateStore,
    customer: CustomerInfo,
    address: Address,
    inventory: MemoryInventory,
) -> None:
    store.add_item(custom_design("bead_a", "chain"))

    placed = await coordinator.create_order(store.snapshot, customer, address)

    (item,) = placed.items
    assert item.is_custom_design
    assert item.production_status is ProductionStatus.PENDING
    assert item.used_inventory_items == ("bead_a", "chain")
    assert [(u.inventory_id, u.quantity) for u in placed.reservation.units] == [("bead_a", 1), ("chain", 1)]
    assert await stock(inventory, "bead_a") == 2
    assert await stock(inventory, "chain") == 2


# ═══════════════════════════════════════════════════════════════════════════════
# Validation
# ═══════════════════════════════════════════════════════════════════════════════


async def test_empty_cart_rejected(
    coordinator: OrderTransactionCoordinator,
    store: CartStateStore,
    customer: CustomerInfo,
    address: Address,
    inventory: MemoryInventory,
) -> None:
    with pytest.raises(ValidationError):
        await coordinator.create_order(store.snapshot, customer, address)
    assert inventory.released == []


async def test_insufficient_stock_reserves_nothing(
    coordinator: OrderTransactionCoordinator,
    store: CartStateStore,
    customer: CustomerInfo,
    address: Address,
    inventory: MemoryInventory,
    orders: MemoryOrderRepository,
) -> None:
    store.add_item(charm("charm1"), 1)
    store.add_item(charm("charm2", "15.00"), 6)

    with pytest.raises(ValidationError, match="Insufficient stock"):
        await coordinator.create_order(store.snapshot, customer, address)

    assert inventory.outstanding == {}
    assert inventory.released == []
    assert await stock(inventory, "charm1") == 10
    assert await orders.list_user_orders("user_42") == []


async def test_payment_info_without_gateway_rejected_before_reserving(
    inventory: MemoryInventory,
    orders: MemoryOrderRepository,
    executor: RetryExecutor,
    bus: EventBus,
    clock: FakeClock,
    cart: CartSnapshot,
    customer: CustomerInfo,
    address: Address,
) -> None:
    coordinator = OrderTransactionCoordinator(inventory, orders, None, executor, bus=bus, clock=clock)

    with pytest.raises(ValidationError, match="no payment gateway"):
        await coordinator.create_order(cart, customer, address, payment_info=CARD)

    assert inventory.outstanding == {}
    assert inventory.released == []
    assert await stock(inventory, "charm1") == 10
    assert await orders.list_user_orders("user_42") == []
    assert bus.history(Event.ORDER_PAYMENT_FAILED) == []


async def test_inactive_design_component_rejected(
    coordinator: OrderTransactionCoordinator,
    store: CartStateStore,
    customer: CustomerInfo,
    address: Address,
    inventory: MemoryInventory,
) -> None:
    inventory.add("bead_c", 5, "2.00", status="discontinued")
    store.add_item(custom_design("bead_a", "bead_c"))

    with pytest.raises(ValidationError, match="bead_c"):
        await coordinator.create_order(store.snapshot, customer, address)
    assert await stock(inventory, "bead_a") == 3


async def test_stock_check_can_be_disabled(
    inventory: MemoryInventory,
    orders: MemoryOrderRepository,
    executor: RetryExecutor,
    store: CartStateStore,
    customer: CustomerInfo,
    address: Address,
) -> None:
    coordinator = OrderTransactionCoordinator(
        inventory, orders, executor=executor, policy=CheckoutPolicy().with_stock_check(False)
    )
    store.add_item(charm("charm2", "15.00"), 6)

    # reservation still refuses the shortfall
    with pytest.raises(ReservationError):
        await coordinator.create_order(store.snapshot, customer, address)
    assert await stock(inventory, "charm2") == 5


# ═══════════════════════════════════════════════════════════════════════════════
# Rollback
# ═══════════════════════════════════════════════════════════════════════════════


async def test_partial_reservation_is_released(
    coordinator: OrderTransactionCoordinator,
    cart: CartSnapshot,
    customer: CustomerInfo,
    address: Address,
    inventory: MemoryInventory,
    orders: MemoryOrderRepository,
) -> None:
    inventory.fail_reserve_on = {"charm2"}

    with pytest.raises(ReservationError):
        await coordinator.create_order(cart, customer, address)

    assert await stock(inventory, "charm1") == 10
    assert inventory.outstanding == {}
    assert len(inventory.released) == 1
    assert await orders.list_user_orders("user_42") == []


async def test_item_write_failure_cancels_order_and_releases(
    coordinator: OrderTransactionCoordinator,
    cart: CartSnapshot,
    customer: CustomerInfo,
    address: Address,
    inventory: MemoryInventory,
    orders: MemoryOrderRepository,
    payments: MemoryPaymentGateway,
) -> None:
    orders.fail_item_create = True

    with pytest.raises(RuntimeError, match="invalid payload"):
        await coordinator.create_order(cart, customer, address, payment_info=CARD)

    (order,) = await orders.list_user_orders("user_42")
    assert order.status is OrderStatus.CANCELLED
    assert payments.charges == []
    assert await stock(inventory, "charm1") == 10
    assert await stock(inventory, "charm2") == 5
    assert inventory.outstanding == {}
    assert inventory.committed == []


async def test_declined_payment_keeps_cancelled_order(
    coordinator: OrderTransactionCoordinator,
    cart: CartSnapshot,
    customer: CustomerInfo,
    address: Address,
    inventory: MemoryInventory,
    orders: MemoryOrderRepository,
    payments: MemoryPaymentGateway,
    bus: EventBus,
) -> None:
    payments.decline = True

    with pytest.raises(PaymentDeclinedError):
        await coordinator.create_order(cart, customer, address, payment_info=CARD)

    (order,) = await orders.list_user_orders("user_42")
    assert order.status is OrderStatus.CANCELLED
    assert order.payment_status is PaymentStatus.FAILED
    assert len(await orders.list_order_items(order.id)) == 2
    assert await stock(inventory, "charm1") == 10
    assert inventory.outstanding == {}
    assert bus.history(Event.ORDER_PAYMENT_FAILED)
    assert bus.history(Event.ORDER_CREATED) == []


async def test_payment_timeout_is_not_retried_and_rolls_back(
    coordinator: OrderTransactionCoordinator,
    cart: CartSnapshot,
    customer: CustomerInfo,
    address: Address,
    inventory: MemoryInventory,
    orders: MemoryOrderRepository,
    payments: MemoryPaymentGateway,
) -> None:
    payments.error = TransientError("payment gateway timeout")

    with pytest.raises(TransientError):
        await coordinator.create_order(cart, customer, address, payment_info=CARD)

    assert payments.calls == 1
    (order,) = await orders.list_user_orders("user_42")
    assert order.status is OrderStatus.CANCELLED
    assert inventory.outstanding == {}


async def test_release_failure_is_logged_and_original_error_kept(
    coordinator: OrderTransactionCoordinator,
    cart: CartSnapshot,
    customer: CustomerInfo,
    address: Address,
    inventory: MemoryInventory,
    orders: MemoryOrderRepository,
    caplog: pytest.LogCaptureFixture,
) -> None:
    orders.fail_item_create = True
    inventory.fail_release = True

    with caplog.at_level(logging.ERROR), pytest.raises(RuntimeError, match="invalid payload"):
        await coordinator.create_order(cart, customer, address)

    assert "Failed to release inventory reservation" in caplog.text
    assert len(inventory.outstanding) == 1


async def test_order_number_collision_rolls_back(
    inventory: MemoryInventory,
    orders: MemoryOrderRepository,
    executor: RetryExecutor,
    clock: FakeClock,
    store: CartStateStore,
    customer: CustomerInfo,
    address: Address,
) -> None:
    coordinator = OrderTransactionCoordinator(
        inventory, orders, executor=executor, clock=clock, order_numbers=lambda: "TJC-20261018-0001"
    )
    store.add_item(charm("charm1"), 1)

    await coordinator.create_order(store.snapshot, customer, address)
    with pytest.raises(ConflictError):
        await coordinator.create_order(store.snapshot, customer, address)

    assert await stock(inventory, "charm1") == 9
    assert inventory.outstanding == {}


# ═══════════════════════════════════════════════════════════════════════════════
# Notifications / concurrency
# ═══════════════════════════════════════════════════════════════════════════════


async def test_notification_failure_does_not_fail_order(
    inventory: MemoryInventory,
    orders: MemoryOrderRepository,
    payments: MemoryPaymentGateway,
    executor: RetryExecutor,
    cart: CartSnapshot,
    customer: CustomerInfo,
    address: Address,
    caplog: pytest.LogCaptureFixture,
) -> None:
    coordinator = OrderTransactionCoordinator(inventory, orders, payments, executor, bus=ExplodingBus())

    with caplog.at_level(logging.ERROR):
        placed = await coordinator.create_order(cart, customer, address, payment_info=CARD)

    assert placed.order.status is OrderStatus.PROCESSING
    assert "Notification order-created failed" in caplog.text


async def test_concurrent_checkout_of_same_cart_conflicts(
    inventory: MemoryInventory,
    orders: MemoryOrderRepository,
    executor: RetryExecutor,
    cart: CartSnapshot,
    customer: CustomerInfo,
    address: Address,
) -> None:
    payments = GatedPayments()
    coordinator = OrderTransactionCoordinator(inventory, orders, payments, executor)

    first = asyncio.create_task(coordinator.create_order(cart, customer, address, payment_info=CARD))
    await payments.entered.wait()

    with pytest.raises(ConflictError):
        await coordinator.create_order(cart, customer, address, payment_info=CARD)

    payments.release.set()
    placed = await first
    assert placed.order.status is OrderStatus.PROCESSING

    # guard is released once the first checkout finishes
    again = await coordinator.create_order(cart, customer, address, payment_info=CARD)
    assert again.order.id != placed.order.id


# ═══════════════════════════════════════════════════════════════════════════════
# Availability / order management
# ═══════════════════════════════════════════════════════════════════════════════


async def test_check_availability_reports_problems(
    coordinator: OrderTransactionCoordinator,
    store: CartStateStore,
    inventory: MemoryInventory,
) -> None:
    inventory.add("charm1", 1, "25.00")
    inventory.add("bead_c", 0, "2.00")
    short = store.add_item(charm("charm1", "25.00"), 2)
    drift = store.add_item(charm("charm2", "14.00"), 1)
    ghost = store.add_item(charm("ghost", "5.00"), 1)
    design = store.add_item(custom_design("bead_a", "bead_c"))

    report = await coordinator.check_availability(store.snapshot)

    assert not report.ok
    assert set(report.unavailable) == {ghost.cart_item_id, design.cart_item_id}
    assert [(q.cart_item_id, q.requested, q.available) for q in report.quantity_issues] == [
        (short.cart_item_id, 2, 1)
    ]
    assert [(p.cart_item_id, p.current_price) for p in report.price_changes] == [
        (drift.cart_item_id, Decimal("15.00"))
    ]


async def test_check_availability_clean_cart(
    coordinator: OrderTransactionCoordinator, cart: CartSnapshot
) -> None:
    assert (await coordinator.check_availability(cart)).ok


async def test_status_transitions(
    coordinator: OrderTransactionCoordinator,
    cart: CartSnapshot,
    customer: CustomerInfo,
    address: Address,
    clock: FakeClock,
    bus: EventBus,
) -> None:
    placed = await coordinator.create_order(cart, customer, address, payment_info=CARD)
    order_id = placed.order.id

    clock.advance(days=1)
    shipped = await coordinator.update_order_status(order_id, OrderStatus.SHIPPED)
    assert shipped.shipped_at == clock.now

    clock.advance(days=2)
    delivered = await coordinator.update_order_status(order_id, OrderStatus.DELIVERED)
    assert delivered.delivered_at == clock.now

    with pytest.raises(ValidationError):
        await coordinator.update_order_status(order_id, OrderStatus.CANCELLED)

    assert [p.payload["status"] for p in bus.history(Event.ORDER_STATUS_UPDATED)] == ["shipped", "delivered"]


async def test_pending_order_cannot_skip_to_delivered(
    coordinator: OrderTransactionCoordinator,
    cart: CartSnapshot,
    customer: CustomerInfo,
    address: Address,
) -> None:
    placed = await coordinator.create_order(cart, customer, address)

    with pytest.raises(ValidationError):
        await coordinator.update_order_status(placed.order.id, OrderStatus.DELIVERED)

    cancelled = await coordinator.update_order_status(placed.order.id, OrderStatus.CANCELLED)
    assert cancelled.status is OrderStatus.CANCELLED


async def test_order_lookups(
    coordinator: OrderTransactionCoordinator,
    store: CartStateStore,
    customer: CustomerInfo,
    address: Address,
    clock: FakeClock,
) -> None:
    store.add_item(charm("charm1"), 1)
    first = await coordinator.create_order(store.snapshot, customer, address)
    clock.advance(hours=1)
    second = await coordinator.create_order(store.snapshot, customer, address, payment_info=CARD)

    newest: list[Order] = await coordinator.get_user_orders("user_42")
    assert [o.id for o in newest] == [second.order.id, first.order.id]
    assert [o.id for o in await coordinator.get_user_orders("user_42", limit=1)] == [second.order.id]
    assert [
        o.id for o in await coordinator.get_user_orders("user_42", status=OrderStatus.PENDING)
    ] == [first.order.id]

    by_number = await coordinator.get_order_by_number(second.order.order_number)
    assert by_number.id == second.order.id
    assert len(await coordinator.get_order_items(first.order.id)) == 1

    with pytest.raises(NotFoundError):
        await coordinator.get_order("missing")
    with pytest.raises(NotFoundError):
        await coordinator.get_order_by_number("TJC-00000000-0000")
