"""
Order transaction coordinator — checkout with compensating rollback.

Pipeline:
    validate → reserve → order header → order items → payment → commit

Validation has no side effects. Every later stage runs inside a
Transaction: once inventory is held, any failure releases it (and
cancels the order header if one was written) before the error
propagates.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from kungfu import Error, Ok

from charmcart._types import Clock, utcnow
from charmcart.cart import CartItem, CartSnapshot, PricingPolicy, summarize
from charmcart.errors import (
    ConflictError,
    NotFoundError,
    PaymentDeclinedError,
    ReservationError,
    ValidationError,
)
from charmcart.events import Event, NotificationBus, NullBus
from charmcart.order._gateways import InventoryGateway, OrderRepository, PaymentGateway
from charmcart.order._numbers import OrderNumberGenerator, new_record_id, new_reservation_id
from charmcart.order._policy import CheckoutPolicy
from charmcart.order._saga import Transaction
from charmcart.order._types import (
    Address,
    AvailabilityReport,
    CustomerInfo,
    InventoryItem,
    Order,
    OrderItem,
    OrderStatus,
    OrderTotals,
    PaymentInfo,
    PaymentResult,
    PaymentStatus,
    PlacedOrder,
    PriceChange,
    ProductionStatus,
    QuantityIssue,
    Reservation,
    ReservedUnit,
)
from charmcart.retry import Operation, RetryExecutor

logger = logging.getLogger(__name__)


STATUS_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def inventory_demand(item: CartItem) -> list[tuple[str, int]]:
    """(inventory_id, units) a cart line consumes."""
    if item.is_custom_design:
        return [(inventory_id, 1) for inventory_id in (item.design.inventory_ids if item.design else ())]
    return [(item.product_id, item.quantity)]


class OrderTransactionCoordinator:
    """
    Example:
        coordinator = OrderTransactionCoordinator(inventory, orders, payments, bus=bus)
        placed = await coordinator.create_order(
            store.snapshot,
            CustomerInfo(email="ada@example.com", name="Ada"),
            Address("1 Main St", "Springfield", "IL", "62701"),
            payment_info=PaymentInfo("pm_card_visa"),
        )
        placed.order.order_number   # "TJC-20261018-0427"
    """

    def __init__(
        self,
        inventory: InventoryGateway,
        orders: OrderRepository,
        payments: PaymentGateway | None = None,
        executor: RetryExecutor | None = None,
        *,
        policy: CheckoutPolicy | None = None,
        pricing: PricingPolicy | None = None,
        bus: NotificationBus | None = None,
        clock: Clock = utcnow,
        order_numbers: Callable[[], str] | None = None,
        reservation_ids: Callable[[], str] = new_reservation_id,
        record_ids: Callable[[], str] = new_record_id,
    ) -> None:
        self._inventory = inventory
        self._orders = orders
        self._payments = payments
        self._executor = executor or RetryExecutor()
        self.policy = policy or CheckoutPolicy()
        self.pricing = pricing or PricingPolicy()
        self._bus = bus or NullBus()
        self._clock = clock
        self._order_numbers = order_numbers or OrderNumberGenerator(
            prefix=self.policy.order_number_prefix, clock=clock
        )
        self._reservation_ids = reservation_ids
        self._record_ids = record_ids
        self._in_flight: set[str] = set()

    # ═══════════════════════════════════════════════════════════════════════════
    # create_order
    # ═══════════════════════════════════════════════════════════════════════════

    async def create_order(
        self,
        cart: CartSnapshot,
        customer: CustomerInfo,
        shipping_address: Address,
        billing_address: Address | None = None,
        payment_info: PaymentInfo | None = None,
    ) -> PlacedOrder:
        guard = self._guard_key(cart, customer)
        if self.policy.guard_in_flight:
            if guard in self._in_flight:
                raise ConflictError("Checkout already in progress for this cart", cart=guard)
            self._in_flight.add(guard)
        try:
            return await self._create_order(
                cart, customer, shipping_address, billing_address, payment_info
            )
        finally:
            self._in_flight.discard(guard)

    async def _create_order(
        self,
        cart: CartSnapshot,
        customer: CustomerInfo,
        shipping_address: Address,
        billing_address: Address | None,
        payment_info: PaymentInfo | None,
    ) -> PlacedOrder:
        payments = self._payments
        if payment_info is not None and payments is None:
            raise ValidationError("Payment info supplied but no payment gateway configured")
        totals = await self.validate_cart(cart)

        reservation = await self.reserve_inventory(cart)
        tx = Transaction()
        tx.record(reservation, self._release_compensator)

        try:
            order = await self._step(
                tx,
                f"create_order_{reservation.reservation_id}",
                lambda: self._write_header(
                    totals, customer, shipping_address, billing_address, payment_info, reservation
                ),
                compensate=self._cancel_compensator,
            )
            items = await self._step(
                tx,
                f"create_order_items_{order.id}",
                lambda: self._write_items(order, cart),
            )
            payment: PaymentResult | None = None
            if payment_info is not None and payments is not None:
                order, payment = await self._charge(order, payments, payment_info)
        except Exception as e:
            report = await tx.rollback()
            logger.error(
                "Checkout failed after reservation %s: %s (compensators run=%d failed=%d)",
                reservation.reservation_id, e, report.compensators_run, report.compensators_failed,
            )
            raise

        await self._commit_reservation(reservation)
        placed = PlacedOrder(order=order, items=tuple(items), reservation=reservation, payment=payment)
        self._notify(Event.ORDER_CREATED, {"order_id": order.id, "order_number": order.order_number})
        self._notify(
            Event.ORDER_CONFIRMATION_REQUESTED,
            {
                "order_id": order.id,
                "order_number": order.order_number,
                "customer_email": customer.email,
                "total": str(order.totals.total),
            },
        )
        logger.info("Order created successfully: %s", order.order_number)
        return placed

    # ═══════════════════════════════════════════════════════════════════════════
    # Stage 1 — validation
    # ═══════════════════════════════════════════════════════════════════════════

    async def validate_cart(self, cart: CartSnapshot) -> OrderTotals:
        """Check the cart without side effects. Returns recomputed totals."""
        if not cart.items:
            raise ValidationError("Cart is empty")

        summary = summarize(cart.items, self.pricing)
        if summary.total <= 0:
            raise ValidationError("Cart total must be greater than zero")

        for item in cart.items:
            if not item.product_id or not item.title:
                raise ValidationError("Invalid cart item", cart_item_id=item.cart_item_id)
            if item.unit_price <= 0:
                raise ValidationError(f"Invalid price for {item.title}", cart_item_id=item.cart_item_id)
            if item.quantity < 1:
                raise ValidationError(f"Invalid quantity for {item.title}", cart_item_id=item.cart_item_id)

            if item.is_custom_design:
                await self._validate_design(item)
            elif self.policy.check_stock:
                await self._validate_stock(item)

        return OrderTotals.from_summary(summary)

    async def _validate_design(self, item: CartItem) -> None:
        if item.design is None or not item.design.components:
            raise ValidationError(f"Custom design has no components: {item.title}")
        for inventory_id in item.design.inventory_ids:
            component = await self._get_inventory_item(inventory_id)
            if component is None or not component.is_active:
                raise ValidationError(
                    f"Design component not available: {inventory_id}",
                    cart_item_id=item.cart_item_id,
                )
            if component.available_quantity < 1:
                raise ValidationError(
                    f"Insufficient stock for design component {inventory_id}",
                    cart_item_id=item.cart_item_id,
                )

    async def _validate_stock(self, item: CartItem) -> None:
        stock = await self._get_inventory_item(item.product_id)
        if stock is None:
            raise ValidationError(f"Item not found: {item.title}", cart_item_id=item.cart_item_id)
        if stock.available_quantity < item.quantity:
            raise ValidationError(
                f"Insufficient stock for {item.title}. "
                f"Available: {stock.available_quantity}, Required: {item.quantity}",
                cart_item_id=item.cart_item_id,
            )

    async def check_availability(self, cart: CartSnapshot) -> AvailabilityReport:
        """Report unavailable lines, stock shortfalls and price drift."""
        unavailable: list[str] = []
        quantity_issues: list[QuantityIssue] = []
        price_changes: list[PriceChange] = []

        for item in cart.items:
            if item.is_custom_design:
                for inventory_id, _ in inventory_demand(item):
                    component = await self._get_inventory_item(inventory_id)
                    if component is None or not component.is_active or component.available_quantity < 1:
                        unavailable.append(item.cart_item_id)
                        break
                continue

            stock = await self._get_inventory_item(item.product_id)
            if stock is None or not stock.is_active:
                unavailable.append(item.cart_item_id)
                continue
            if stock.available_quantity < item.quantity:
                quantity_issues.append(
                    QuantityIssue(item.cart_item_id, item.quantity, stock.available_quantity)
                )
            if stock.price != item.unit_price:
                price_changes.append(PriceChange(item.cart_item_id, item.unit_price, stock.price))

        return AvailabilityReport(
            unavailable=tuple(unavailable),
            quantity_issues=tuple(quantity_issues),
            price_changes=tuple(price_changes),
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Stage 2 — reservation
    # ═══════════════════════════════════════════════════════════════════════════

    async def reserve_inventory(self, cart: CartSnapshot) -> Reservation:
        """
        Hold every unit the cart needs under one reservation id.

        On any failure everything held so far is released before the
        error propagates.
        """
        reservation_id = self._reservation_ids()
        units: list[ReservedUnit] = []
        try:
            for item in cart.items:
                for inventory_id, quantity in inventory_demand(item):
                    outcome = await self._executor.execute(
                        f"reserve_{reservation_id}_{inventory_id}",
                        lambda iid=inventory_id, qty=quantity: self._inventory.reserve_inventory(
                            iid, qty, reservation_id
                        ),
                    )
                    if not outcome.success:
                        raise ReservationError(
                            f"Failed to reserve {item.title}: {outcome.error}",
                            inventory_id=inventory_id,
                            reservation_id=reservation_id,
                        )
                    units.append(ReservedUnit(inventory_id, quantity))
        except Exception:
            await self.release_reservation(reservation_id)
            raise

        return Reservation(reservation_id=reservation_id, units=tuple(units))

    async def release_reservation(self, reservation_id: str) -> bool:
        """Attempt a release. Failure is logged, never raised."""
        try:
            await self._executor.execute(
                f"release_{reservation_id}",
                lambda: self._inventory.release_inventory_reservation(reservation_id),
            )
        except Exception as e:
            logger.error("Failed to release inventory reservation %s: %s", reservation_id, e)
            return False
        logger.info("Released inventory reservation: %s", reservation_id)
        return True

    async def _release_compensator(self, reservation: Reservation) -> None:
        if not await self.release_reservation(reservation.reservation_id):
            raise ReservationError(
                f"Reservation {reservation.reservation_id} could not be released",
                reservation_id=reservation.reservation_id,
            )

    async def _commit_reservation(self, reservation: Reservation) -> None:
        try:
            await self._executor.execute(
                f"commit_{reservation.reservation_id}",
                lambda: self._inventory.commit_inventory_reservation(reservation.reservation_id),
            )
        except Exception as e:
            logger.error("Failed to commit inventory reservation %s: %s", reservation.reservation_id, e)

    # ═══════════════════════════════════════════════════════════════════════════
    # Stage 3 — order header and items
    # ═══════════════════════════════════════════════════════════════════════════

    async def _write_header(
        self,
        totals: OrderTotals,
        customer: CustomerInfo,
        shipping_address: Address,
        billing_address: Address | None,
        payment_info: PaymentInfo | None,
        reservation: Reservation,
    ) -> Order:
        now = self._clock()
        order = Order(
            id=self._record_ids(),
            order_number=await self._unique_order_number(),
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            customer=customer,
            shipping_address=shipping_address,
            billing_address=billing_address or shipping_address,
            totals=totals,
            reservation_id=reservation.reservation_id,
            created_at=now,
            updated_at=now,
            payment_intent_id=payment_info.payment_intent_id if payment_info else None,
        )
        return await self._orders.create_order(order)

    async def _unique_order_number(self) -> str:
        for _ in range(self.policy.order_number_attempts):
            number = self._order_numbers()
            if await self._orders.get_order_by_number(number) is None:
                return number
        raise ConflictError("Could not generate a unique order number")

    async def _write_items(self, order: Order, cart: CartSnapshot) -> list[OrderItem]:
        items: list[OrderItem] = []
        for line in cart.items:
            items.append(
                await self._orders.create_order_item(
                    OrderItem(
                        id=self._record_ids(),
                        order_id=order.id,
                        product_id=line.product_id,
                        item_name=line.title,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                        total_price=line.total_price,
                        used_inventory_items=tuple(iid for iid, _ in inventory_demand(line)),
                        production_status=(
                            ProductionStatus.PENDING if line.is_custom_design else ProductionStatus.COMPLETED
                        ),
                        is_custom_design=line.is_custom_design,
                        design=line.design,
                        image_url=line.image_url,
                    )
                )
            )
        return items

    async def _cancel_compensator(self, order: Order) -> None:
        current = await self._orders.get_order(order.id) or order
        if current.status is OrderStatus.CANCELLED:
            return
        await self._orders.update_order(
            replace(current, status=OrderStatus.CANCELLED, updated_at=self._clock())
        )
        logger.info("Order %s cancelled during rollback", order.order_number)

    # ═══════════════════════════════════════════════════════════════════════════
    # Stage 4 — payment
    # ═══════════════════════════════════════════════════════════════════════════

    async def _charge(
        self, order: Order, payments: PaymentGateway, payment_info: PaymentInfo
    ) -> tuple[Order, PaymentResult]:
        try:
            result = await self._executor.execute(
                f"process_payment_{order.order_number}",
                lambda: payments.process_payment(order, payment_info),
                max_retries=self.policy.payment_retries,
            )
        except Exception as e:
            await self._record_payment(order, PaymentResult(PaymentStatus.FAILED, error=str(e)))
            if self._executor.classifier.is_retryable(e):
                raise
            raise PaymentDeclinedError(f"Payment declined: {e}", order_number=order.order_number) from e

        order = await self._record_payment(order, result)
        if result.status is PaymentStatus.FAILED:
            raise PaymentDeclinedError(
                f"Payment declined: {result.error or 'payment processing failed'}",
                order_number=order.order_number,
            )
        return order, result

    async def _record_payment(self, order: Order, result: PaymentResult) -> Order:
        status = order.status
        if result.status is PaymentStatus.SUCCEEDED:
            status = OrderStatus.PROCESSING
        elif result.status is PaymentStatus.FAILED:
            status = OrderStatus.CANCELLED
            self._notify(
                Event.ORDER_PAYMENT_FAILED,
                {"order_id": order.id, "order_number": order.order_number, "error": result.error},
            )

        updated = replace(
            order,
            status=status,
            payment_status=result.status,
            payment_intent_id=result.payment_intent_id or order.payment_intent_id,
            updated_at=self._clock(),
        )
        return await self._executor.execute(
            f"update_order_payment_{order.id}",
            lambda: self._orders.update_order(updated),
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Order management
    # ═══════════════════════════════════════════════════════════════════════════

    async def get_order(self, order_id: str) -> Order:
        order = await self._executor.execute(
            f"get_order_{order_id}", lambda: self._orders.get_order(order_id)
        )
        if order is None:
            raise NotFoundError(f"Order not found: {order_id}", order_id=order_id)
        return order

    async def get_order_by_number(self, order_number: str) -> Order:
        order = await self._executor.execute(
            f"get_order_by_number_{order_number}",
            lambda: self._orders.get_order_by_number(order_number),
        )
        if order is None:
            raise NotFoundError(f"Order not found: {order_number}", order_number=order_number)
        return order

    async def get_order_items(self, order_id: str) -> list[OrderItem]:
        return await self._executor.execute(
            f"get_order_items_{order_id}", lambda: self._orders.list_order_items(order_id)
        )

    async def get_user_orders(
        self,
        user_id: str,
        *,
        status: OrderStatus | None = None,
        limit: int | None = None,
    ) -> list[Order]:
        """Newest first."""
        orders = await self._executor.execute(
            f"get_user_orders_{user_id}", lambda: self._orders.list_user_orders(user_id)
        )
        if status is not None:
            orders = [o for o in orders if o.status is status]
        orders = sorted(orders, key=lambda o: o.created_at, reverse=True)
        return orders[:limit] if limit is not None else orders

    async def update_order_status(self, order_id: str, status: OrderStatus) -> Order:
        order = await self.get_order(order_id)
        if status not in STATUS_TRANSITIONS[order.status]:
            raise ValidationError(
                f"Invalid status transition: {order.status} -> {status}",
                order_id=order_id,
            )

        now = self._clock()
        changes: dict[str, Any] = {"status": status, "updated_at": now}
        if status is OrderStatus.SHIPPED:
            changes["shipped_at"] = now
        elif status is OrderStatus.DELIVERED:
            changes["delivered_at"] = now

        updated = replace(order, **changes)
        saved = await self._executor.execute(
            f"update_order_status_{order_id}", lambda: self._orders.update_order(updated)
        )
        self._notify(
            Event.ORDER_STATUS_UPDATED,
            {"order_id": order_id, "status": str(status), "previous": str(order.status)},
        )
        return saved

    # ═══════════════════════════════════════════════════════════════════════════
    # Internals
    # ═══════════════════════════════════════════════════════════════════════════

    async def _step[T](
        self,
        tx: Transaction,
        key: str,
        operation: Operation[T],
        *,
        compensate: Callable[[T], Any] | None = None,
    ) -> T:
        match await tx.step(self._executor.lazy(key, operation), compensate):
            case Ok(value):
                return value
            case Error(e):
                raise e

    async def _get_inventory_item(self, inventory_id: str) -> InventoryItem | None:
        return await self._executor.execute(
            f"get_inventory_item_{inventory_id}",
            lambda: self._inventory.get_inventory_item(inventory_id),
        )

    def _notify(self, event: Event, payload: dict[str, Any]) -> None:
        # Notifications never fail a checkout
        try:
            self._bus.publish(event, payload)
        except Exception:
            logger.exception("Notification %s failed", event)

    @staticmethod
    def _guard_key(cart: CartSnapshot, customer: CustomerInfo) -> str:
        owner = cart.user_id or customer.user_id or cart.session_id
        return owner or f"cart:{id(cart)}"


__all__ = (
    "STATUS_TRANSITIONS",
    "inventory_demand",
    "OrderTransactionCoordinator",
)
