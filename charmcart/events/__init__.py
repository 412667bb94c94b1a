"""
Events — observer interface for cart and order notifications.

    from charmcart.events import EventBus, Event

    bus = EventBus()
    bus.subscribe(Event.ORDER_CREATED, send_receipt)
"""

from charmcart.events._bus import (
    Event,
    Payload,
    Handler,
    NotificationBus,
    Published,
    EventBus,
    NullBus,
)

__all__ = (
    "Event",
    "Payload",
    "Handler",
    "NotificationBus",
    "Published",
    "EventBus",
    "NullBus",
)
