import pytest

from charmcart.cart import CartStateStore
from charmcart.errors import ReservationError, TransientError, ValidationError
from charmcart.events import Event, EventBus
from charmcart.order import (
    Address,
    CustomerInfo,
    MemoryInventory,
    OrderStatus,
    OrderTransactionCoordinator,
    PaymentInfo,
)
from charmcart.persistence import CartPersistenceGateway, MemoryRemoteCartStore, SaveTarget
from charmcart.session import CartSession

from conftest import FakeClock, charm


@pytest.fixture
def session(store: CartStateStore, gateway: CartPersistenceGateway, bus: EventBus, clock: FakeClock) -> CartSession:
    return CartSession(store, gateway, session_id="sess_1", bus=bus, clock=clock)


def quantities(store: CartStateStore) -> dict[str, int]:
    return {i.product_id: i.quantity for i in store.items}


async def test_persist_only_when_dirty(session: CartSession, store: CartStateStore, bus: EventBus) -> None:
    assert not session.dirty
    assert await session.persist() is None

    store.add_item(charm("A"), 1)
    assert session.dirty
    assert await session.persist() is SaveTarget.REMOTE
    assert not session.dirty

    assert await session.persist() is None
    assert len(bus.history(Event.CART_SYNCED)) == 1


async def test_load_restores_guest_cart(
    session: CartSession,
    store: CartStateStore,
    gateway: CartPersistenceGateway,
    bus: EventBus,
    clock: FakeClock,
) -> None:
    store.add_item(charm("A"), 2)
    await session.persist()

    fresh = CartSession(CartStateStore(clock=clock), gateway, session_id="sess_1", bus=bus, clock=clock)
    await fresh.load()

    assert quantities(fresh.store) == {"A": 2}
    assert not fresh.dirty


async def test_unbound_store_is_rejected(session: CartSession, store: CartStateStore) -> None:
    store.bind_session(None)

    with pytest.raises(ValidationError, match="not bound"):
        await session.load()


async def test_login_merges_guest_cart_into_user_cart(
    session: CartSession,
    store: CartStateStore,
    gateway: CartPersistenceGateway,
    clock: FakeClock,
    bus: EventBus,
) -> None:
    user_cart = CartStateStore(clock=clock)
    user_cart.add_item(charm("A"), 1)
    user_cart.add_item(charm("B"), 1)
    await gateway.save_user_cart(user_cart.snapshot, "user_42")

    store.add_item(charm("A"), 2)
    await session.login("user_42")

    assert session.user_id == "user_42"
    assert quantities(store) == {"A": 3, "B": 1}
    assert not store.can_undo
    assert await gateway.get_guest_cart("sess_1") is None
    assert bus.history(Event.CART_USER_LOGGED_IN)[0].payload["item_count"] == 4


async def test_login_with_empty_guest_cart_loads_user_cart(
    session: CartSession, store: CartStateStore, gateway: CartPersistenceGateway, clock: FakeClock
) -> None:
    user_cart = CartStateStore(clock=clock)
    user_cart.add_item(charm("B"), 3)
    await gateway.save_user_cart(user_cart.snapshot, "user_42")

    await session.login("user_42")

    assert quantities(store) == {"B": 3}


async def test_user_changes_go_to_user_cart(
    session: CartSession, store: CartStateStore, gateway: CartPersistenceGateway
) -> None:
    await session.login("user_42")
    store.add_item(charm("C"), 1)

    assert await session.persist() is SaveTarget.REMOTE

    saved = await gateway.get_user_cart("user_42")
    assert saved is not None
    assert {i.product_id for i in saved.items} == {"C"}


async def test_logout_saves_user_cart_and_starts_empty(
    session: CartSession, store: CartStateStore, gateway: CartPersistenceGateway, bus: EventBus
) -> None:
    await session.login("user_42")
    store.add_item(charm("C"), 2)

    await session.logout("sess_2")

    assert session.user_id is None
    assert session.session_id == "sess_2"
    assert store.is_empty
    saved = await gateway.get_user_cart("user_42")
    assert saved is not None
    assert {i.product_id: i.quantity for i in saved.items} == {"C": 2}
    assert bus.history(Event.CART_USER_LOGGED_OUT)[0].payload == {"user_id": "user_42"}


async def test_user_save_failure_reaches_caller(
    session: CartSession, store: CartStateStore, remote: MemoryRemoteCartStore
) -> None:
    await session.login("user_42")
    store.add_item(charm("C"), 1)
    remote.available = False

    with pytest.raises(TransientError):
        await session.persist()
    assert session.dirty


async def test_checkout_clears_and_saves_cart(
    session: CartSession,
    store: CartStateStore,
    gateway: CartPersistenceGateway,
    coordinator: OrderTransactionCoordinator,
    customer: CustomerInfo,
    address: Address,
    inventory: MemoryInventory,
) -> None:
    await session.login("user_42")
    store.add_item(charm("charm1"), 2)

    placed = await session.checkout(coordinator, customer, address, payment_info=PaymentInfo("pm_card_visa"))

    assert placed.order.status is OrderStatus.PROCESSING
    assert store.is_empty
    saved = await gateway.get_user_cart("user_42")
    assert saved is not None
    assert saved.items == ()


async def test_failed_checkout_keeps_cart(
    session: CartSession,
    store: CartStateStore,
    coordinator: OrderTransactionCoordinator,
    customer: CustomerInfo,
    address: Address,
    inventory: MemoryInventory,
) -> None:
    inventory.fail_reserve_on = {"charm1"}
    store.add_item(charm("charm1"), 2)

    with pytest.raises(ReservationError):
        await session.checkout(coordinator, customer, address)

    assert quantities(store) == {"charm1": 2}
