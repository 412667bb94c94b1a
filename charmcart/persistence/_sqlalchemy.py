"""
SQLAlchemy integration — remote cart store on an async engine.

Usage:
    session_factory, engine = await create_database("sqlite+aiosqlite:///carts.db")
    remote = SQLAlchemyCartStore(session_factory)

    gateway = CartPersistenceGateway(remote, JsonFileStore("carts.json"))

Note: OperationalError (lost connection, locked database) surfaces as
TransientError so the retry executor treats it as retryable.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Text, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from charmcart.errors import TransientError
from charmcart.persistence._stores import Record, StoredCart


# ═══════════════════════════════════════════════════════════════════════════════
# Tables
# ═══════════════════════════════════════════════════════════════════════════════


class Base(DeclarativeBase):
    pass


class GuestCartTable(Base):
    __tablename__ = "guest_carts"

    session_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class UserCartTable(Base):
    __tablename__ = "user_carts"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


type CartTable = type[GuestCartTable] | type[UserCartTable]


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _to_stored(owner_id: str, payload: str, updated_at: datetime) -> StoredCart:
    return StoredCart(owner_id=owner_id, payload=json.loads(payload), updated_at=_aware(updated_at))


# ═══════════════════════════════════════════════════════════════════════════════
# Store
# ═══════════════════════════════════════════════════════════════════════════════


class SQLAlchemyCartStore:
    """RemoteCartStore over two tables: guest_carts and user_carts."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except OperationalError as e:
            raise TransientError(f"Cart database unavailable: {e.orig}") from e

    # ── guest ─────────────────────────────────────────────────────────────────

    async def get_guest_cart(self, session_id: str) -> StoredCart | None:
        async with self._session() as session:
            row = await session.get(GuestCartTable, session_id)
            return None if row is None else _to_stored(row.session_id, row.payload, row.updated_at)

    async def save_guest_cart(self, session_id: str, payload: Record, updated_at: datetime) -> None:
        async with self._session() as session:
            await session.merge(
                GuestCartTable(
                    session_id=session_id,
                    payload=json.dumps(payload),
                    updated_at=updated_at.astimezone(timezone.utc),
                )
            )
            await session.commit()

    async def delete_guest_cart(self, session_id: str) -> bool:
        return await self._delete(GuestCartTable, session_id)

    async def list_guest_carts(self) -> list[StoredCart]:
        async with self._session() as session:
            rows = (await session.scalars(select(GuestCartTable))).all()
            return [_to_stored(r.session_id, r.payload, r.updated_at) for r in rows]

    # ── user ──────────────────────────────────────────────────────────────────

    async def get_user_cart(self, user_id: str) -> StoredCart | None:
        async with self._session() as session:
            row = await session.get(UserCartTable, user_id)
            return None if row is None else _to_stored(row.user_id, row.payload, row.updated_at)

    async def save_user_cart(self, user_id: str, payload: Record, updated_at: datetime) -> None:
        async with self._session() as session:
            await session.merge(
                UserCartTable(
                    user_id=user_id,
                    payload=json.dumps(payload),
                    updated_at=updated_at.astimezone(timezone.utc),
                )
            )
            await session.commit()

    async def delete_user_cart(self, user_id: str) -> bool:
        return await self._delete(UserCartTable, user_id)

    async def list_user_carts(self) -> list[StoredCart]:
        async with self._session() as session:
            rows = (await session.scalars(select(UserCartTable))).all()
            return [_to_stored(r.user_id, r.payload, r.updated_at) for r in rows]

    async def _delete(self, table: CartTable, key: str) -> bool:
        async with self._session() as session:
            row = await session.get(table, key)
            if row is None:
                return False
            await session.delete(row)
            await session.commit()
            return True


# ═══════════════════════════════════════════════════════════════════════════════
# Database Setup
# ═══════════════════════════════════════════════════════════════════════════════


async def create_database(
    url: str = "sqlite+aiosqlite:///:memory:",
    *,
    echo: bool = False,
) -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Create tables and return (session_factory, engine)."""
    if ":memory:" in url:
        # One shared connection, otherwise every session sees an empty database
        engine = create_async_engine(url, echo=echo, poolclass=StaticPool)
    else:
        engine = create_async_engine(url, echo=echo)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, expire_on_commit=False), engine


__all__ = (
    "Base",
    "GuestCartTable",
    "UserCartTable",
    "SQLAlchemyCartStore",
    "create_database",
)
