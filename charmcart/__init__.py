"""
charmcart — cart & order transaction engine for a charm jewelry storefront.

    from charmcart import cart as K          # Cart state, pricing, undo/redo
    from charmcart import persistence as P   # Guest/user cart storage
    from charmcart import order as O         # Checkout with rollback
    from charmcart import retry as R         # Backoff + error classification
    from charmcart import errors as X        # Error taxonomy
"""

from charmcart import errors
from charmcart import retry
from charmcart import events
from charmcart import cart
from charmcart import persistence
from charmcart import order
from charmcart import session
from charmcart.cart import CartStateStore, Product
from charmcart.events import Event, EventBus
from charmcart.order import OrderTransactionCoordinator
from charmcart.persistence import CartPersistenceGateway
from charmcart.retry import RetryExecutor, RetryPolicy
from charmcart.session import CartSession
from charmcart.settings import Settings
from charmcart.engine import Engine, build_engine

__version__ = "0.1.0"

__all__ = (
    "errors",
    "retry",
    "events",
    "cart",
    "persistence",
    "order",
    "session",
    "CartStateStore",
    "Product",
    "Event",
    "EventBus",
    "OrderTransactionCoordinator",
    "CartPersistenceGateway",
    "RetryExecutor",
    "RetryPolicy",
    "CartSession",
    "Settings",
    "Engine",
    "build_engine",
)
