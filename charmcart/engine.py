"""
Engine — explicit wiring of every component from Settings.

    engine = await build_engine(Settings.from_env(), inventory=my_inventory)
    session = engine.new_session("sess_1")
    session.store.add_item(product)
    await session.persist()
    ...
    await engine.close()
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from charmcart.cart import CartStateStore
from charmcart.events import EventBus, NotificationBus
from charmcart.order import (
    InventoryGateway,
    MemoryInventory,
    MemoryOrderRepository,
    MemoryPaymentGateway,
    OrderRepository,
    OrderTransactionCoordinator,
    PaymentGateway,
)
from charmcart.persistence import (
    CartPersistenceGateway,
    JsonFileStore,
    MemoryKeyValueStore,
    PersistentStore,
    RemoteCartStore,
    SQLAlchemyCartStore,
    create_database,
)
from charmcart.retry import RetryExecutor
from charmcart.session import CartSession
from charmcart.settings import Settings


@dataclass
class Engine:
    settings: Settings
    bus: NotificationBus
    executor: RetryExecutor
    gateway: CartPersistenceGateway
    coordinator: OrderTransactionCoordinator
    db_engine: AsyncEngine | None = None

    def new_store(self) -> CartStateStore:
        return CartStateStore(self.settings.cart, self.settings.pricing, bus=self.bus)

    def new_session(self, session_id: str) -> CartSession:
        return CartSession(self.new_store(), self.gateway, session_id=session_id, bus=self.bus)

    async def close(self) -> None:
        if self.db_engine is not None:
            await self.db_engine.dispose()


async def build_engine(
    settings: Settings | None = None,
    *,
    remote: RemoteCartStore | None = None,
    local: PersistentStore | None = None,
    inventory: InventoryGateway | None = None,
    orders: OrderRepository | None = None,
    payments: PaymentGateway | None = None,
    bus: NotificationBus | None = None,
) -> Engine:
    """
    Build an Engine. Anything not passed in falls back to:
    SQLAlchemy remote store on `settings.database_url`, JSON file (or
    memory) local store, in-memory inventory/orders/payments.
    """
    settings = settings or Settings()
    bus = bus or EventBus()
    executor = RetryExecutor(settings.retry)

    db_engine: AsyncEngine | None = None
    if remote is None:
        session_factory, db_engine = await create_database(settings.database_url)
        remote = SQLAlchemyCartStore(session_factory)
    if local is None:
        local = (
            JsonFileStore(settings.local_store_path)
            if settings.local_store_path
            else MemoryKeyValueStore()
        )

    gateway = CartPersistenceGateway(
        remote,
        local,
        executor,
        policy=settings.persistence,
        pricing=settings.pricing,
    )
    coordinator = OrderTransactionCoordinator(
        inventory or MemoryInventory(),
        orders or MemoryOrderRepository(),
        payments or MemoryPaymentGateway(),
        executor,
        policy=settings.checkout,
        pricing=settings.pricing,
        bus=bus,
    )
    return Engine(
        settings=settings,
        bus=bus,
        executor=executor,
        gateway=gateway,
        coordinator=coordinator,
        db_engine=db_engine,
    )


__all__ = ("Engine", "build_engine")
