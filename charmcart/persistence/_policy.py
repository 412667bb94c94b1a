"""
Persistence policy — guest cart lifetime and storage keys.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timedelta


@dataclass(frozen=True, slots=True)
class PersistencePolicy:
    """
    Example:
        policy = PersistencePolicy().with_guest_ttl(days=3).with_key_prefix("shop_cart")
    """

    guest_cart_ttl: timedelta = timedelta(days=7)
    key_prefix: str = "charmcart_shopping_cart"
    sweep_interval: timedelta = timedelta(hours=1)

    def guest_key(self, session_id: str) -> str:
        return f"{self.key_prefix}_guest_{session_id}"

    @property
    def guest_key_prefix(self) -> str:
        return f"{self.key_prefix}_guest_"

    def with_guest_ttl(
        self,
        *,
        days: float | None = None,
        hours: float | None = None,
        delta: timedelta | None = None,
    ) -> PersistencePolicy:
        ttl = delta if delta is not None else timedelta(days=days or 0, hours=hours or 0)
        return replace(self, guest_cart_ttl=ttl)

    def with_key_prefix(self, prefix: str) -> PersistencePolicy:
        return replace(self, key_prefix=prefix)

    def with_sweep_interval(self, *, seconds: float) -> PersistencePolicy:
        return replace(self, sweep_interval=timedelta(seconds=seconds))


__all__ = ("PersistencePolicy",)
