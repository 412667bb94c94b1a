"""
Cart session — binds one CartStateStore to the persistence gateway.

The store stays authoritative; the session decides when to write it out
and whose cart (guest or user) it is written to.
"""

from __future__ import annotations

import logging

from charmcart._types import Clock, utcnow
from charmcart.cart import CartSnapshot, CartStateStore, summarize
from charmcart.errors import ValidationError
from charmcart.events import Event, NotificationBus, NullBus
from charmcart.order import (
    Address,
    CustomerInfo,
    OrderTransactionCoordinator,
    PaymentInfo,
    PlacedOrder,
)
from charmcart.persistence import CartPersistenceGateway, SaveTarget

logger = logging.getLogger(__name__)


class CartSession:
    """
    Example:
        session = CartSession(store, gateway, session_id="sess_1", bus=bus)
        await session.load()

        store.add_item(product, 2)
        await session.persist()          # guest cart

        await session.login("user_42")   # guest cart merged into user cart
        placed = await session.checkout(coordinator, customer, address)
    """

    def __init__(
        self,
        store: CartStateStore,
        gateway: CartPersistenceGateway,
        *,
        session_id: str,
        bus: NotificationBus | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self._bus = bus or NullBus()
        self._clock = clock
        store.bind_session(session_id)
        self._persisted: CartSnapshot | None = store.snapshot

    @property
    def session_id(self) -> str:
        sid = self.store.session_id
        if sid is None:
            raise ValidationError("Cart is not bound to a session")
        return sid

    @property
    def user_id(self) -> str | None:
        return self.store.user_id

    @property
    def dirty(self) -> bool:
        """True when the store moved since the last load or persist."""
        return self._persisted is not self.store.snapshot

    # ═══════════════════════════════════════════════════════════════════════════
    # Load / persist
    # ═══════════════════════════════════════════════════════════════════════════

    async def load(self) -> CartSnapshot:
        if self.user_id is not None:
            snapshot = await self.gateway.get_user_cart(self.user_id)
        else:
            snapshot = await self.gateway.get_guest_cart(self.session_id)

        if snapshot is not None:
            self.store.load(snapshot)
        self._persisted = self.store.snapshot
        return self.store.snapshot

    async def persist(self, *, force: bool = False) -> SaveTarget | None:
        """Write the cart out if it changed. Returns where it went."""
        if not force and not self.dirty:
            return None

        snapshot = self.store.snapshot
        if self.user_id is not None:
            await self.gateway.save_user_cart(snapshot, self.user_id)
            target = SaveTarget.REMOTE
        else:
            target = await self.gateway.save_guest_cart(snapshot, self.session_id)

        self._persisted = snapshot
        self._bus.publish(
            Event.CART_SYNCED,
            {"target": str(target), "version": snapshot.version, "user_id": self.user_id},
        )
        return target

    # ═══════════════════════════════════════════════════════════════════════════
    # Identity changes
    # ═══════════════════════════════════════════════════════════════════════════

    async def login(self, user_id: str) -> CartSnapshot:
        """Merge the guest cart into the user's cart and switch to it."""
        if self.user_id is None and self.dirty:
            await self.persist()

        merged = await self.gateway.transfer_guest_cart_to_user(self.session_id, user_id)
        if merged is None:
            merged = await self.gateway.get_user_cart(user_id)

        self.store.bind_user(user_id)
        if merged is not None:
            self.store.load(merged)
        self._persisted = self.store.snapshot

        self._bus.publish(
            Event.CART_USER_LOGGED_IN,
            {"user_id": user_id, "item_count": self.store.snapshot.summary.item_count},
        )
        return self.store.snapshot

    async def logout(self, new_session_id: str | None = None) -> None:
        """Save the user cart and start an empty guest cart."""
        user_id = self.user_id
        if user_id is not None and self.dirty:
            await self.persist()

        session_id = new_session_id or self.session_id
        self.store.bind_user(None)
        self.store.load(
            CartSnapshot(
                items=(),
                summary=summarize((), self.store.pricing),
                version=0,
                last_updated=self._clock(),
                session_id=session_id,
            )
        )
        self._persisted = self.store.snapshot
        self._bus.publish(Event.CART_USER_LOGGED_OUT, {"user_id": user_id})

    # ═══════════════════════════════════════════════════════════════════════════
    # Checkout
    # ═══════════════════════════════════════════════════════════════════════════

    async def checkout(
        self,
        coordinator: OrderTransactionCoordinator,
        customer: CustomerInfo,
        shipping_address: Address,
        billing_address: Address | None = None,
        payment_info: PaymentInfo | None = None,
    ) -> PlacedOrder:
        """Place an order from the current cart, then empty the cart."""
        placed = await coordinator.create_order(
            self.store.snapshot, customer, shipping_address, billing_address, payment_info
        )
        self.store.clear_cart()
        try:
            await self.persist()
        except Exception as e:
            # Order is placed; the stale cart is overwritten on the next persist
            logger.warning("Cart not saved after order %s: %s", placed.order.order_number, e)
        return placed


__all__ = ("CartSession",)
