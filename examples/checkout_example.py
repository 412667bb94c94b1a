"""
Checkout — order creation with compensating rollback.

Happy path, then three failures that each leave inventory untouched:
short stock at reservation, a declined card, and a broken order-item write.

Run: uv run python -m examples.checkout_example
"""

from decimal import Decimal

from kungfu import Error, Ok

from charmcart import build_engine
from charmcart import errors as X
from charmcart.events import Event
from charmcart.order import MemoryOrderRepository, MemoryPaymentGateway, PaymentInfo
from charmcart.persistence import MemoryKeyValueStore, MemoryRemoteCartStore
from charmcart.settings import Settings
from examples._infra import ADA, HEART, HOME, STAR, banner, bracelet, run, stocked_inventory

CARD = PaymentInfo("pm_card_visa")


async def main() -> None:
    banner("Checkout")

    inventory = stocked_inventory()
    orders = MemoryOrderRepository()
    payments = MemoryPaymentGateway()
    engine = await build_engine(
        Settings(),
        remote=MemoryRemoteCartStore(),
        local=MemoryKeyValueStore(),
        inventory=inventory,
        orders=orders,
        payments=payments,
    )
    engine.bus.subscribe(
        Event.ORDER_CONFIRMATION_REQUESTED,
        lambda p: print(f"  ✉ confirmation for {p['order_number']} → {p['customer_email']}"),
    )

    async def stock(inventory_id: str) -> int:
        item = await inventory.get_inventory_item(inventory_id)
        return item.available_quantity if item else 0

    session = engine.new_session("sess_demo")
    await session.login("user_42")

    # 1. Happy path
    print("\n1. Heart x2 + custom bracelet, paid by card:")
    session.store.add_item(HEART, 2)
    session.store.export_design(bracelet("bead_gold", "bead_pearl", "chain_silver"), "Bracelet", Decimal("29.00"))
    placed = await session.checkout(engine.coordinator, ADA, HOME, payment_info=CARD)
    print(f"  ✓ {placed.order.order_number}  {placed.order.status}  total {placed.order.totals.total}")
    for item in placed.items:
        print(f"    {item.item_name:<12} x{item.quantity}  production {item.production_status}")
    print(f"  heart stock now {await stock('charm_heart')}")

    # 2. Not enough stars: the whole cart is refused, nothing held
    print("\n2. Star x4 (only 3 in stock):")
    session.store.add_item(STAR, 4)
    report = await engine.coordinator.check_availability(session.store.snapshot)
    print(f"  availability ok: {report.ok}  issues: {[(q.requested, q.available) for q in report.quantity_issues]}")
    try:
        await session.checkout(engine.coordinator, ADA, HOME, payment_info=CARD)
    except X.ValidationError as e:
        print(f"  ✗ {e}")
    print(f"  star stock still {await stock('charm_star')}")
    session.store.clear_cart()

    # 3. Card declined: order kept as cancelled, reservation released
    print("\n3. Declined card:")
    payments.decline = True
    session.store.add_item(HEART, 1)
    before = await stock("charm_heart")
    try:
        await session.checkout(engine.coordinator, ADA, HOME, payment_info=CARD)
    except X.PaymentDeclinedError as e:
        print(f"  ✗ {e}")
    print(f"  heart stock {before} → {await stock('charm_heart')}")
    payments.decline = False

    # 4. Order item write fails: header cancelled, reservation released
    print("\n4. Order item write fails:")
    orders.fail_item_create = True
    try:
        await session.checkout(engine.coordinator, ADA, HOME, payment_info=CARD)
    except RuntimeError as e:
        print(f"  ✗ {e}")
    orders.fail_item_create = False
    print(f"  outstanding holds: {inventory.outstanding}")

    # 5. Order history via the retry executor as a Result
    print("\n5. Order history:")
    match await engine.executor.lazy("history", lambda: engine.coordinator.get_user_orders("user_42")):
        case Ok(history):
            for order in history:
                print(f"  {order.order_number}  {order.status:<10} {order.payment_status}")
        case Error(e):
            print(f"  ✗ {e}")

    await engine.close()


if __name__ == "__main__":
    run(main)
