"""
Cart — line merging, limits, undo/redo.

Run: uv run python -m examples.cart_example
"""

from decimal import Decimal

from charmcart import cart as K
from charmcart import errors as X
from charmcart.events import Event, EventBus
from examples._infra import HEART, STAR, banner, bracelet, run


def show(store: K.CartStateStore) -> None:
    for item in store.items:
        kind = "custom" if item.is_custom_design else "stock"
        print(f"  {item.title:<22} x{item.quantity:<3} {item.total_price:>8}  ({kind})")
    s = store.get_cart_summary()
    print(f"  subtotal {s.subtotal}  tax {s.tax}  shipping {s.shipping}  total {s.total}")


async def main() -> None:
    banner("Cart: add / merge / undo")

    bus = EventBus()
    bus.subscribe(Event.CART_UPDATED, lambda p: print(f"  · v{p['version']} {p['cause']} → {p['total']}"))

    store = K.CartStateStore(K.CartPolicy().with_max_quantity(5), bus=bus)

    store.add_item(HEART, 2)
    store.add_item(HEART, 1)  # merged into the same line
    store.add_item(STAR)
    store.export_design(bracelet("bead_gold", "bead_pearl", "bead_gold"), "My bracelet", Decimal("32.00"))
    show(store)

    print("\nOver the per-line limit:")
    try:
        store.add_item(HEART, 3)
    except X.CapacityError as e:
        print(f"  ✗ {e.code}: {e}")

    print("\nUndo twice, redo once:")
    store.undo()
    store.undo()
    store.redo()
    show(store)

    print("\nClear:")
    store.clear_cart()
    show(store)
    print(f"  can undo: {store.can_undo}")


if __name__ == "__main__":
    run(main)
