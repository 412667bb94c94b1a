"""Shared infrastructure for examples."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from decimal import Decimal

from charmcart.cart import DesignComponent, DesignSnapshot, Product
from charmcart.order import Address, CustomerInfo, MemoryInventory
from charmcart.settings import LOG_FORMAT


# Catalog
HEART = Product("charm_heart", "Heart charm", Decimal("25.00"), category="charms")
STAR = Product("charm_star", "Star charm", Decimal("15.00"), category="charms")


def bracelet(*inventory_ids: str) -> DesignSnapshot:
    return DesignSnapshot(
        components=tuple(
            DesignComponent(iid, {"x": 40 * n, "y": 0, "rotation": 0})
            for n, iid in enumerate(inventory_ids)
        ),
        metadata={"canvas": "bracelet-18cm"},
    )


def stocked_inventory() -> MemoryInventory:
    inventory = MemoryInventory()
    inventory.add("charm_heart", 20, "25.00", title="Heart charm")
    inventory.add("charm_star", 3, "15.00", title="Star charm")
    inventory.add("bead_gold", 50, "2.50", title="Gold bead")
    inventory.add("bead_pearl", 10, "4.00", title="Pearl bead")
    inventory.add("chain_silver", 5, "18.00", title="Silver chain")
    return inventory


ADA = CustomerInfo(email="ada@example.com", name="Ada Lovelace", user_id="user_42")
HOME = Address(line1="12 St James's Square", city="London", state="LDN", postal_code="SW1Y 4JH", country="GB")


# Helpers
def banner(title: str) -> None:
    print(f"\n{'─' * 50}\n{title}\n{'─' * 50}")


def run(main: Callable[[], Coroutine[object, object, None]], *, level: int = logging.WARNING) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    asyncio.run(main())
