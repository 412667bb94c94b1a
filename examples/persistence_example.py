"""
Persistence — guest cart survives a backend outage, then merges on login.

Run: uv run python -m examples.persistence_example
"""

import logging

from charmcart import persistence as P
from charmcart.cart import CartStateStore
from charmcart.retry import RetryExecutor, RetryPolicy
from charmcart.session import CartSession
from examples._infra import HEART, STAR, banner, run


async def main() -> None:
    banner("Persistence: outage + login merge")

    session_factory, engine = await P.create_database()
    remote = P.SQLAlchemyCartStore(session_factory)
    flaky = P.MemoryRemoteCartStore()
    local = P.MemoryKeyValueStore()
    executor = RetryExecutor(RetryPolicy().with_max_retries(2).with_base_delay(seconds=0.05))

    try:
        # 1. Returning customer already has a saved cart
        gateway = P.CartPersistenceGateway(remote, local, executor)
        saved = CartStateStore()
        saved.add_item(HEART, 1)
        saved.add_item(STAR, 1)
        await gateway.save_user_cart(saved.snapshot, "user_42")
        print("1. User cart on file: heart x1, star x1")

        # 2. Shopping as a guest while the backend is down
        offline = P.CartPersistenceGateway(flaky, local, executor)
        flaky.available = False
        guest = CartSession(CartStateStore(), offline, session_id="sess_1")
        guest.store.add_item(HEART, 2)
        target = await guest.persist()
        print(f"2. Guest cart saved to: {target} (keys: {local.keys()})")

        # 3. Backend recovers; the local copy is still served
        flaky.available = True
        restored = await offline.get_guest_cart("sess_1")
        print(f"3. Guest cart read back: {[(i.title, i.quantity) for i in restored.items] if restored else None}")

        # 4. Log in on the real backend: guest cart merged into the user cart
        await gateway.save_guest_cart(restored, "sess_1")
        session = CartSession(CartStateStore(), gateway, session_id="sess_1")
        merged = await session.login("user_42")
        print("4. After login:")
        for item in merged.items:
            print(f"   {item.title:<12} x{item.quantity}")
        print(f"   total {merged.summary.total}")

        # 5. Nightly sweep
        removed = await gateway.cleanup_expired_guest_carts()
        stats = await gateway.get_cart_statistics()
        print(f"5. Sweep removed {removed}; user carts {stats.active_user_carts}, value {stats.total_cart_value}")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    run(main, level=logging.INFO)
