"""
Cart state store — authoritative in-memory cart with undo/redo.

All mutations are synchronous. Each one builds the next snapshot first
and swaps it in only when every check has passed, so a raised error
never leaves a partial change behind.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from charmcart._types import Clock, money, utcnow
from charmcart.cart._codec import item_to_dict
from charmcart.cart._policy import CartPolicy, PricingPolicy
from charmcart.cart._pricing import DiscountRule, no_discount, summarize
from charmcart.cart._types import (
    CartItem,
    CartSnapshot,
    CartSummary,
    DesignSnapshot,
    Product,
)
from charmcart.errors import CapacityError, NotFoundError, ValidationError
from charmcart.events import Event, NotificationBus, NullBus

logger = logging.getLogger(__name__)


def _cart_item_id() -> str:
    return f"cart_item_{uuid.uuid4().hex[:12]}"


class CartStateStore:
    """
    Example:
        store = CartStateStore(bus=bus)
        line = store.add_item(Product("charm1", "Heart", Decimal("25.00")), 2)
        store.update_item_quantity(line.cart_item_id, 3)
        store.undo()   # back to 2
        store.get_cart_summary().total
    """

    def __init__(
        self,
        policy: CartPolicy | None = None,
        pricing: PricingPolicy | None = None,
        *,
        bus: NotificationBus | None = None,
        clock: Clock = utcnow,
        discount_rule: DiscountRule = no_discount,
        id_factory: Callable[[], str] = _cart_item_id,
        session_id: str | None = None,
        user_id: str | None = None,
    ) -> None:
        self.policy = policy or CartPolicy()
        self.pricing = pricing or PricingPolicy()
        self._bus = bus or NullBus()
        self._clock = clock
        self._discount_rule = discount_rule
        self._new_id = id_factory
        self._state = CartSnapshot(
            items=(),
            summary=self._summarize(()),
            version=0,
            last_updated=clock(),
            session_id=session_id,
            user_id=user_id,
        )
        self._undo: deque[CartSnapshot] = deque(maxlen=self.policy.max_history)
        self._redo: deque[CartSnapshot] = deque(maxlen=self.policy.max_history)

    # ═══════════════════════════════════════════════════════════════════════════
    # Read
    # ═══════════════════════════════════════════════════════════════════════════

    @property
    def snapshot(self) -> CartSnapshot:
        return self._state

    @property
    def items(self) -> tuple[CartItem, ...]:
        return self._state.items

    @property
    def is_empty(self) -> bool:
        return self._state.is_empty

    @property
    def session_id(self) -> str | None:
        return self._state.session_id

    @property
    def user_id(self) -> str | None:
        return self._state.user_id

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def get_cart_summary(self) -> CartSummary:
        return self._summarize(self._state.items)

    def get_item(self, cart_item_id: str) -> CartItem | None:
        return self._state.find(cart_item_id)

    def has_product(self, product_id: str) -> bool:
        return any(i.product_id == product_id for i in self._state.items)

    # ═══════════════════════════════════════════════════════════════════════════
    # Mutations
    # ═══════════════════════════════════════════════════════════════════════════

    def add_item(
        self,
        product: Product,
        quantity: int = 1,
        *,
        skip_validation: bool = False,
    ) -> CartItem:
        """
        Add a product, merging into an existing stock line when possible.

        `skip_validation` relaxes product-shape and per-line quantity
        checks. Quantity must still be a positive integer and the line
        limit still applies.
        """
        self._check_quantity(quantity, per_line=not skip_validation)
        price = self._check_product(product, strict=not skip_validation)

        items = self._state.items
        now = self._clock()
        index = next(
            (n for n, existing in enumerate(items) if existing.same_line_as(product)),
            None,
        )

        if index is not None:
            existing = items[index]
            merged = existing.quantity + quantity
            if not skip_validation and merged > self.policy.max_quantity_per_item:
                raise CapacityError(
                    f"Maximum quantity per item is {self.policy.max_quantity_per_item}",
                    cart_item_id=existing.cart_item_id,
                    requested=merged,
                )
            line = existing.with_quantity(merged, now)
            new_items = items[:index] + (line,) + items[index + 1:]
        else:
            if len(items) >= self.policy.max_items:
                raise CapacityError(
                    f"Cart cannot contain more than {self.policy.max_items} items",
                    max_items=self.policy.max_items,
                )
            line = CartItem(
                cart_item_id=self._new_id(),
                product_id=product.id,
                title=product.title,
                description=product.description,
                unit_price=price,
                quantity=quantity,
                image_url=product.image_url,
                category=product.category,
                is_custom_design=product.is_custom_design,
                design=product.design,
                added_at=now,
                last_updated=now,
            )
            new_items = items + (line,)

        self._commit(new_items, now)
        self._publish(Event.CART_ITEM_ADDED, {"item": item_to_dict(line), "quantity": quantity})
        return line

    def remove_item(self, cart_item_id: str) -> CartItem:
        line = self._require(cart_item_id)
        self._commit(
            tuple(i for i in self._state.items if i.cart_item_id != cart_item_id),
            self._clock(),
        )
        self._publish(Event.CART_ITEM_REMOVED, {"item": item_to_dict(line)})
        return line

    def update_item_quantity(self, cart_item_id: str, quantity: int) -> CartItem:
        line = self._require(cart_item_id)
        self._check_quantity(quantity, per_line=True)

        now = self._clock()
        updated = line.with_quantity(quantity, now)
        self._commit(
            tuple(updated if i.cart_item_id == cart_item_id else i for i in self._state.items),
            now,
        )
        self._publish(
            Event.CART_ITEM_UPDATED,
            {
                "item": item_to_dict(updated),
                "old_quantity": line.quantity,
                "new_quantity": quantity,
            },
        )
        return updated

    def clear_cart(self) -> None:
        """Remove every line. No-op (and no history entry) on an empty cart."""
        if self._state.is_empty:
            return
        removed = len(self._state.items)
        self._commit((), self._clock())
        self._publish(Event.CART_CLEARED, {"removed_lines": removed})

    def export_design(
        self,
        design: DesignSnapshot,
        title: str,
        price: Decimal,
        *,
        product_id: str | None = None,
        image_url: str | None = None,
    ) -> CartItem:
        """Add a canvas design as its own line."""
        product = Product(
            id=product_id or f"custom_design_{uuid.uuid4().hex[:12]}",
            title=title,
            price=price,
            description=f"Custom design with {len(design.components)} charms",
            image_url=image_url,
            category="custom",
            is_custom_design=True,
            design=design,
        )
        return self.add_item(product, 1, skip_validation=True)

    # ═══════════════════════════════════════════════════════════════════════════
    # History
    # ═══════════════════════════════════════════════════════════════════════════

    def undo(self) -> bool:
        if not self._undo:
            return False
        self._redo.append(self._state)
        self._state = self._undo.pop()
        self._publish(Event.CART_UNDONE, {"version": self._state.version})
        return True

    def redo(self) -> bool:
        if not self._redo:
            return False
        self._undo.append(self._state)
        self._state = self._redo.pop()
        self._publish(Event.CART_REDONE, {"version": self._state.version})
        return True

    # ═══════════════════════════════════════════════════════════════════════════
    # Identity / loading
    # ═══════════════════════════════════════════════════════════════════════════

    def load(self, snapshot: CartSnapshot) -> None:
        """Replace state with a persisted snapshot. History is reset."""
        self._state = replace(
            snapshot,
            summary=self._summarize(snapshot.items),
            session_id=snapshot.session_id or self._state.session_id,
            user_id=snapshot.user_id or self._state.user_id,
        )
        self._undo.clear()
        self._redo.clear()
        self._publish(Event.CART_LOADED, {"version": self._state.version})

    def bind_user(self, user_id: str | None) -> None:
        self._state = replace(self._state, user_id=user_id)

    def bind_session(self, session_id: str | None) -> None:
        self._state = replace(self._state, session_id=session_id)

    # ═══════════════════════════════════════════════════════════════════════════
    # Internals
    # ═══════════════════════════════════════════════════════════════════════════

    def _summarize(self, items: tuple[CartItem, ...]) -> CartSummary:
        return summarize(items, self.pricing, self._discount_rule)

    def _commit(self, items: tuple[CartItem, ...], at: datetime) -> None:
        self._undo.append(self._state)
        self._redo.clear()
        self._state = replace(
            self._state,
            items=items,
            summary=self._summarize(items),
            version=self._state.version + 1,
            last_updated=at,
        )

    def _publish(self, event: Event, payload: dict[str, Any]) -> None:
        summary = self._state.summary
        self._emit(event, payload)
        self._emit(
            Event.CART_UPDATED,
            {
                "cause": str(event),
                "version": self._state.version,
                "item_count": summary.item_count,
                "total": str(summary.total),
            },
        )

    def _emit(self, event: Event, payload: dict[str, Any]) -> None:
        # State is already committed; a failing bus must not undo that
        try:
            self._bus.publish(event, payload)
        except Exception:
            logger.exception("Cart event %s failed", event)

    def _require(self, cart_item_id: str) -> CartItem:
        line = self._state.find(cart_item_id)
        if line is None:
            raise NotFoundError(f"Item not found in cart: {cart_item_id}", cart_item_id=cart_item_id)
        return line

    def _check_quantity(self, quantity: Any, *, per_line: bool) -> None:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("Quantity must be a positive integer", quantity=quantity)
        if per_line and quantity > self.policy.max_quantity_per_item:
            raise ValidationError(
                f"Maximum quantity per item is {self.policy.max_quantity_per_item}",
                quantity=quantity,
            )

    def _check_product(self, product: Product, *, strict: bool) -> Decimal:
        """Validate and return the unit price rounded to cents."""
        try:
            price = money(product.price)
        except (InvalidOperation, TypeError, ValueError) as e:
            raise ValidationError("Invalid item price", price=str(product.price)) from e
        if not price.is_finite():
            raise ValidationError("Invalid item price", price=str(product.price))
        if not strict:
            return price

        if not isinstance(product.id, str) or not product.id:
            raise ValidationError("Invalid item ID")
        if not isinstance(product.title, str) or not product.title.strip():
            raise ValidationError("Invalid item title", product_id=product.id)
        if price < 0:
            raise ValidationError("Invalid item price", product_id=product.id, price=str(price))
        if price > self.policy.max_unit_price:
            raise ValidationError("Item price exceeds maximum allowed", product_id=product.id)
        return price


__all__ = ("CartStateStore",)
