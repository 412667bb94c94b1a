"""
Core types for charmcart.

Re-exports from kungfu + shared aliases.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

from kungfu import Result, Ok, Error, LazyCoroResult

# ═══════════════════════════════════════════════════════════════════════════════
# Time
# ═══════════════════════════════════════════════════════════════════════════════

type Clock = Callable[[], datetime]
"""Returns the current aware datetime. Injected everywhere time matters."""

type Sleep = Callable[[float], Awaitable[None]]
"""asyncio.sleep-compatible coroutine function."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════════
# Money
# ═══════════════════════════════════════════════════════════════════════════════

CENT = Decimal("0.01")


def money(value: Decimal | int | float | str) -> Decimal:
    """Coerce to Decimal rounded half-up to cents."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Result",
    "Ok",
    "Error",
    "LazyCoroResult",
    "Clock",
    "Sleep",
    "utcnow",
    "CENT",
    "money",
)
