from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from charmcart.cart import CartStateStore, DesignComponent, DesignSnapshot, Product
from charmcart.events import EventBus
from charmcart.order import (
    Address,
    CustomerInfo,
    MemoryInventory,
    MemoryOrderRepository,
    MemoryPaymentGateway,
    OrderTransactionCoordinator,
)
from charmcart.persistence import (
    CartPersistenceGateway,
    MemoryKeyValueStore,
    MemoryRemoteCartStore,
)
from charmcart.retry import RetryExecutor, RetryPolicy


@dataclass
class FakeClock:
    now: datetime = field(default_factory=lambda: datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def charm(pid: str = "charm1", price: str = "25.00", **kwargs) -> Product:
    return Product(id=pid, title=kwargs.pop("title", f"Charm {pid}"), price=Decimal(price), **kwargs)


def custom_design(*inventory_ids: str, price: str = "40.00") -> Product:
    design = DesignSnapshot(
        components=tuple(DesignComponent(iid, {"x": n * 10, "y": 0}) for n, iid in enumerate(inventory_ids))
    )
    return Product(
        id="custom_necklace",
        title="Custom necklace",
        price=Decimal(price),
        is_custom_design=True,
        design=design,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bus(clock: FakeClock) -> EventBus:
    return EventBus(clock=clock)


@pytest.fixture
def store(bus: EventBus, clock: FakeClock) -> CartStateStore:
    return CartStateStore(bus=bus, clock=clock, session_id="sess_1")


@pytest.fixture
def executor(clock: FakeClock) -> RetryExecutor:
    return RetryExecutor(RetryPolicy().with_base_delay(seconds=0.001), clock=clock)


@pytest.fixture
def remote() -> MemoryRemoteCartStore:
    return MemoryRemoteCartStore()


@pytest.fixture
def local() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def gateway(
    remote: MemoryRemoteCartStore,
    local: MemoryKeyValueStore,
    executor: RetryExecutor,
    clock: FakeClock,
) -> CartPersistenceGateway:
    return CartPersistenceGateway(remote, local, executor, clock=clock)


@pytest.fixture
def inventory() -> MemoryInventory:
    inv = MemoryInventory()
    inv.add("charm1", 10, "25.00")
    inv.add("charm2", 5, "15.00")
    inv.add("bead_a", 3, "2.00")
    inv.add("bead_b", 3, "2.00")
    inv.add("chain", 3, "20.00")
    return inv


@pytest.fixture
def orders() -> MemoryOrderRepository:
    return MemoryOrderRepository()


@pytest.fixture
def payments() -> MemoryPaymentGateway:
    return MemoryPaymentGateway()


@pytest.fixture
def coordinator(
    inventory: MemoryInventory,
    orders: MemoryOrderRepository,
    payments: MemoryPaymentGateway,
    executor: RetryExecutor,
    bus: EventBus,
    clock: FakeClock,
) -> OrderTransactionCoordinator:
    return OrderTransactionCoordinator(inventory, orders, payments, executor, bus=bus, clock=clock)


@pytest.fixture
def customer() -> CustomerInfo:
    return CustomerInfo(email="ada@example.com", name="Ada Lovelace", user_id="user_42")


@pytest.fixture
def address() -> Address:
    return Address(line1="1 Main St", city="Springfield", state="IL", postal_code="62701")
