"""
Persistence — guest/user cart storage with retry and local fallback.

    from charmcart import persistence as P

    session_factory, _ = await P.create_database()
    gateway = P.CartPersistenceGateway(
        remote=P.SQLAlchemyCartStore(session_factory),
        local=P.JsonFileStore(".carts.json"),
    )

    await gateway.save_guest_cart(snapshot, "sess_1")
    merged = await gateway.transfer_guest_cart_to_user("sess_1", "user_42")
"""

from charmcart.persistence._stores import (
    Record,
    PersistentStore,
    MemoryKeyValueStore,
    JsonFileStore,
    StoredCart,
    RemoteCartStore,
    MemoryRemoteCartStore,
)
from charmcart.persistence._policy import PersistencePolicy
from charmcart.persistence._gateway import (
    SaveTarget,
    CartStatistics,
    CartPersistenceGateway,
)
from charmcart.persistence._sqlalchemy import (
    Base,
    GuestCartTable,
    UserCartTable,
    SQLAlchemyCartStore,
    create_database,
)

__all__ = (
    "Record",
    "PersistentStore",
    "MemoryKeyValueStore",
    "JsonFileStore",
    "StoredCart",
    "RemoteCartStore",
    "MemoryRemoteCartStore",
    "PersistencePolicy",
    "SaveTarget",
    "CartStatistics",
    "CartPersistenceGateway",
    "Base",
    "GuestCartTable",
    "UserCartTable",
    "SQLAlchemyCartStore",
    "create_database",
)
