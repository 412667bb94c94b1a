"""
Notification bus — observer interface for cart and order events.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Protocol

from charmcart._types import Clock, utcnow

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Event names
# ═══════════════════════════════════════════════════════════════════════════════


class Event(StrEnum):
    CART_ITEM_ADDED = "cart-item-added"
    CART_ITEM_REMOVED = "cart-item-removed"
    CART_ITEM_UPDATED = "cart-item-updated"
    CART_CLEARED = "cart-cleared"
    CART_UNDONE = "cart-undone"
    CART_REDONE = "cart-redone"
    CART_LOADED = "cart-loaded"
    CART_UPDATED = "cart-updated"
    CART_SYNCED = "cart-synced"
    CART_USER_LOGGED_IN = "cart-user-logged-in"
    CART_USER_LOGGED_OUT = "cart-user-logged-out"
    CART_ERROR = "cart-error"
    ORDER_CREATED = "order-created"
    ORDER_STATUS_UPDATED = "order-status-updated"
    ORDER_PAYMENT_FAILED = "order-payment-failed"
    ORDER_CONFIRMATION_REQUESTED = "order-confirmation-requested"


type Payload = Mapping[str, Any]
type Handler = Callable[[Payload], Awaitable[None] | None]


# ═══════════════════════════════════════════════════════════════════════════════
# Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class NotificationBus(Protocol):
    """Fire-and-forget publisher. Must never raise into the caller."""

    def publish(self, event: str, payload: Payload) -> None: ...


# ═══════════════════════════════════════════════════════════════════════════════
# In-process implementation
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Published:
    event: str
    payload: Payload
    at: datetime


@dataclass
class EventBus:
    """
    In-process observer registry.

    Handlers may be plain or async functions. Async handlers are
    scheduled on the running loop; a handler that fails is logged and
    the remaining handlers still run.

    Example:
        bus = EventBus()
        unsubscribe = bus.subscribe(Event.CART_UPDATED, lambda p: print(p["item_count"]))
        ...
        unsubscribe()
    """

    clock: Clock = utcnow
    history_size: int = 100
    _handlers: dict[str, list[Handler]] = field(default_factory=dict)
    _history: deque[Published] = field(init=False)
    _tasks: set[asyncio.Task[None]] = field(default_factory=set)

    def __post_init__(self) -> None:
        self._history = deque(maxlen=self.history_size)

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        handlers = self._handlers.setdefault(event, [])
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event: str, payload: Payload) -> None:
        self._history.append(Published(event=str(event), payload=payload, at=self.clock()))
        for handler in list(self._handlers.get(event, ())):
            try:
                result = handler(payload)
            except Exception:
                logger.exception("handler for %s failed", event)
                continue
            if asyncio.iscoroutine(result):
                self._schedule(event, result)

    def history(self, event: str | None = None) -> list[Published]:
        if event is None:
            return list(self._history)
        return [p for p in self._history if p.event == event]

    async def drain(self) -> None:
        """Wait for scheduled async handlers."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _schedule(self, event: str, coro: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("async handler for %s dropped: no running event loop", event)
            return
        task: asyncio.Task[None] = loop.create_task(coro)
        self._tasks.add(task)

        def done(t: asyncio.Task[None]) -> None:
            self._tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error("async handler for %s failed", event, exc_info=t.exception())

        task.add_done_callback(done)


class NullBus:
    """Discards everything."""

    def publish(self, event: str, payload: Payload) -> None:
        return None


__all__ = (
    "Event",
    "Payload",
    "Handler",
    "NotificationBus",
    "Published",
    "EventBus",
    "NullBus",
)
