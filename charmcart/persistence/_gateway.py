"""
Cart persistence gateway — durable guest/user carts with merge-on-login.

Guest carts live under a session id and degrade to local storage when the
backend stays unreachable after retries. User carts never degrade: a
failure to read or write them reaches the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from enum import StrEnum

from charmcart._types import Clock, Sleep, money, utcnow
from charmcart.cart import (
    CartItem,
    CartSnapshot,
    PricingPolicy,
    snapshot_from_dict,
    snapshot_to_dict,
    summarize,
)
from charmcart.errors import ValidationError
from charmcart.persistence._policy import PersistencePolicy
from charmcart.persistence._stores import PersistentStore, RemoteCartStore, StoredCart
from charmcart.retry import RetryExecutor

logger = logging.getLogger(__name__)


class SaveTarget(StrEnum):
    REMOTE = "remote"
    LOCAL = "local"


@dataclass(frozen=True, slots=True)
class CartStatistics:
    active_user_carts: int
    active_guest_carts: int
    total_cart_value: Decimal
    average_cart_value: Decimal


@dataclass(frozen=True, slots=True)
class _LocalCart:
    snapshot: CartSnapshot
    saved_at: datetime


# ═══════════════════════════════════════════════════════════════════════════════
# Gateway
# ═══════════════════════════════════════════════════════════════════════════════


class CartPersistenceGateway:
    """
    Example:
        gateway = CartPersistenceGateway(
            remote=SQLAlchemyCartStore(session_factory),
            local=JsonFileStore(".carts.json"),
            executor=RetryExecutor(RetryPolicy()),
        )

        await gateway.save_guest_cart(store.snapshot, session_id)
        merged = await gateway.transfer_guest_cart_to_user(session_id, user_id)
    """

    def __init__(
        self,
        remote: RemoteCartStore,
        local: PersistentStore,
        executor: RetryExecutor | None = None,
        *,
        policy: PersistencePolicy | None = None,
        pricing: PricingPolicy | None = None,
        clock: Clock = utcnow,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._remote = remote
        self._local = local
        self._executor = executor or RetryExecutor()
        self.policy = policy or PersistencePolicy()
        self.pricing = pricing or PricingPolicy()
        self._clock = clock
        self._sleep = sleep

    @property
    def executor(self) -> RetryExecutor:
        return self._executor

    # ═══════════════════════════════════════════════════════════════════════════
    # Guest carts
    # ═══════════════════════════════════════════════════════════════════════════

    async def save_guest_cart(self, snapshot: CartSnapshot, session_id: str) -> SaveTarget:
        """Save remotely; keep a local copy only while the backend is unreachable."""
        now = self._clock()
        data = snapshot_to_dict(replace(snapshot, session_id=session_id))
        try:
            await self._executor.execute(
                f"save_guest_cart_{session_id}",
                lambda: self._remote.save_guest_cart(session_id, data, now),
            )
        except Exception as e:
            if not self._executor.classifier.is_retryable(e):
                raise
            logger.warning("Backend unreachable, guest cart %s kept locally: %s", session_id, e)
            self._local.set(
                self.policy.guest_key(session_id),
                {"saved_at": now.isoformat(), "cart": data},
            )
            return SaveTarget.LOCAL

        self._local.delete(self.policy.guest_key(session_id))
        return SaveTarget.REMOTE

    async def get_guest_cart(self, session_id: str) -> CartSnapshot | None:
        """
        Newest non-expired copy of the guest cart.

        A local copy written during an outage wins over an older remote one.
        """
        local = self._read_local(session_id)
        try:
            stored = await self._executor.execute(
                f"get_guest_cart_{session_id}",
                lambda: self._remote.get_guest_cart(session_id),
            )
        except Exception as e:
            if not self._executor.classifier.is_retryable(e):
                raise
            logger.warning("Backend unreachable, reading guest cart %s locally: %s", session_id, e)
            return local.snapshot if local else None

        if stored is not None and self._expired(stored.updated_at):
            stored = None
        if local is not None and (stored is None or local.saved_at > stored.updated_at):
            return local.snapshot
        return None if stored is None else self._decode(stored)

    async def delete_guest_cart(self, session_id: str) -> bool:
        deleted_locally = self._local.delete(self.policy.guest_key(session_id))
        deleted_remotely = await self._executor.execute(
            f"delete_guest_cart_{session_id}",
            lambda: self._remote.delete_guest_cart(session_id),
        )
        return deleted_locally or deleted_remotely

    # ═══════════════════════════════════════════════════════════════════════════
    # User carts
    # ═══════════════════════════════════════════════════════════════════════════

    async def save_user_cart(self, snapshot: CartSnapshot, user_id: str) -> None:
        now = self._clock()
        data = snapshot_to_dict(replace(snapshot, user_id=user_id, session_id=None))
        await self._executor.execute(
            f"save_user_cart_{user_id}",
            lambda: self._remote.save_user_cart(user_id, data, now),
        )

    async def get_user_cart(self, user_id: str) -> CartSnapshot | None:
        stored = await self._executor.execute(
            f"get_user_cart_{user_id}",
            lambda: self._remote.get_user_cart(user_id),
        )
        return None if stored is None else self._decode(stored)

    async def delete_user_cart(self, user_id: str) -> bool:
        return await self._executor.execute(
            f"delete_user_cart_{user_id}",
            lambda: self._remote.delete_user_cart(user_id),
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Migration
    # ═══════════════════════════════════════════════════════════════════════════

    async def transfer_guest_cart_to_user(
        self,
        session_id: str,
        user_id: str,
    ) -> CartSnapshot | None:
        """
        Merge the guest cart into the user cart and drop the guest cart.

        Returns None when there is no guest cart. If saving the merged cart
        fails the guest cart is left in place and the error propagates.
        """
        guest = await self.get_guest_cart(session_id)
        if guest is None:
            logger.info("No guest cart to transfer for session %s", session_id)
            return None

        user = await self.get_user_cart(user_id)
        merged = replace(self.merge_cart_data(guest, user), user_id=user_id, session_id=None)
        await self.save_user_cart(merged, user_id)

        try:
            await self.delete_guest_cart(session_id)
        except Exception as e:
            # Merged cart is already saved; a leftover guest cart expires on its own
            logger.warning("Guest cart %s not deleted after transfer: %s", session_id, e)

        logger.info("Guest cart %s transferred to user %s", session_id, user_id)
        return merged

    def merge_cart_data(self, guest: CartSnapshot, user: CartSnapshot | None) -> CartSnapshot:
        """
        Fold guest lines into the user's lines.

        Equivalent stock lines add quantities; everything else is appended.
        Totals are recomputed. A summed line may exceed the per-line maximum:
        no units are dropped, further adds to it are refused by the store.
        """
        now = self._clock()
        merged: list[CartItem] = list(user.items) if user else []

        for guest_item in guest.items:
            index = next((n for n, m in enumerate(merged) if m.same_line_as(guest_item)), None)
            if index is None:
                merged.append(replace(guest_item, last_updated=now))
                continue

            existing = merged[index]
            merged[index] = existing.with_quantity(existing.quantity + guest_item.quantity, now)

        items = tuple(merged)
        return CartSnapshot(
            items=items,
            summary=summarize(items, self.pricing),
            version=max(guest.version, user.version if user else 0) + 1,
            last_updated=now,
            user_id=user.user_id if user else None,
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Maintenance
    # ═══════════════════════════════════════════════════════════════════════════

    async def cleanup_expired_guest_carts(self, now: datetime | None = None) -> int:
        """Remove guest carts older than the TTL, locally and remotely."""
        now = now or self._clock()
        removed = 0

        for key in self._local.keys(self.policy.guest_key_prefix):
            saved_at = self._local_saved_at(key)
            if saved_at is None or self._expired(saved_at, now):
                self._local.delete(key)
                removed += 1

        try:
            carts = await self._executor.execute(
                "cleanup_expired_carts",
                self._remote.list_guest_carts,
            )
        except Exception as e:
            if not self._executor.classifier.is_retryable(e):
                raise
            logger.warning("Backend unreachable, remote guest cart sweep skipped: %s", e)
            return removed

        for cart in carts:
            if not self._expired(cart.updated_at, now):
                continue
            try:
                await self._executor.execute(
                    f"delete_guest_cart_{cart.owner_id}",
                    lambda sid=cart.owner_id: self._remote.delete_guest_cart(sid),
                )
            except Exception as e:
                logger.warning("Expired guest cart %s not deleted: %s", cart.owner_id, e)
                continue
            removed += 1

        logger.info("Cleaned up %d expired guest carts", removed)
        return removed

    async def sweep_forever(self, interval: timedelta | None = None) -> None:
        """Run the expiry sweep periodically until cancelled."""
        seconds = (interval or self.policy.sweep_interval).total_seconds()
        while True:
            try:
                await self.cleanup_expired_guest_carts()
            except Exception:
                logger.exception("Guest cart sweep failed")
            await self._sleep(seconds)

    async def get_cart_statistics(self) -> CartStatistics:
        users = await self._executor.execute("cart_statistics_users", self._remote.list_user_carts)
        guests = await self._executor.execute("cart_statistics_guests", self._remote.list_guest_carts)

        totals: list[Decimal] = []
        for stored in [*users, *guests]:
            try:
                totals.append(self._decode(stored).summary.total)
            except ValidationError:
                logger.debug("Skipping unreadable cart %s", stored.owner_id)

        total_value = money(sum(totals, Decimal("0")))
        return CartStatistics(
            active_user_carts=len(users),
            active_guest_carts=len(guests),
            total_cart_value=total_value,
            average_cart_value=money(total_value / len(totals)) if totals else money(0),
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Internals
    # ═══════════════════════════════════════════════════════════════════════════

    def _decode(self, stored: StoredCart) -> CartSnapshot:
        return snapshot_from_dict(stored.payload, self.pricing)

    def _expired(self, updated_at: datetime, now: datetime | None = None) -> bool:
        return updated_at + self.policy.guest_cart_ttl < (now or self._clock())

    def _local_saved_at(self, key: str) -> datetime | None:
        record = self._local.get(key)
        if record is None:
            return None
        try:
            return datetime.fromisoformat(record["saved_at"])
        except (KeyError, TypeError, ValueError):
            return None

    def _read_local(self, session_id: str) -> _LocalCart | None:
        key = self.policy.guest_key(session_id)
        record = self._local.get(key)
        if record is None:
            return None
        saved_at = self._local_saved_at(key)
        if saved_at is None or self._expired(saved_at):
            return None
        try:
            snapshot = snapshot_from_dict(record["cart"], self.pricing)
        except (KeyError, ValidationError) as e:
            logger.warning("Dropping unreadable local guest cart %s: %s", session_id, e)
            self._local.delete(key)
            return None
        return _LocalCart(snapshot=snapshot, saved_at=saved_at)


__all__ = (
    "SaveTarget",
    "CartStatistics",
    "CartPersistenceGateway",
)
