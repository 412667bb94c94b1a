"""
Engine error taxonomy.

Every failure the engine raises on purpose is an EngineError subclass.
`retryable` is a class-level fact: the classifier reads it before it
falls back to message matching.
"""

from __future__ import annotations

from typing import Any, ClassVar


# ═══════════════════════════════════════════════════════════════════════════════
# Base
# ═══════════════════════════════════════════════════════════════════════════════


class EngineError(Exception):
    """Base class for engine failures."""

    code: ClassVar[str] = "ENGINE_ERROR"
    retryable: ClassVar[bool] = False

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly payload for notifications."""
        return {"code": self.code, "message": self.message, **self.details}


# ═══════════════════════════════════════════════════════════════════════════════
# Non-retryable
# ═══════════════════════════════════════════════════════════════════════════════


class ValidationError(EngineError):
    """Bad input shape or value."""

    code = "VALIDATION_ERROR"


class CapacityError(EngineError):
    """Cart or per-line limits exceeded."""

    code = "CAPACITY_ERROR"


class NotFoundError(EngineError):
    """Referenced cart line or order does not exist."""

    code = "NOT_FOUND"


class ReservationError(EngineError):
    """Inventory could not be held."""

    code = "RESERVATION_ERROR"


class PaymentDeclinedError(EngineError):
    """Payment gateway rejected the charge. The order is kept as cancelled."""

    code = "PAYMENT_DECLINED"


class ConflictError(EngineError):
    """Checkout for the same cart is already in flight."""

    code = "CONFLICT"


# ═══════════════════════════════════════════════════════════════════════════════
# Retryable
# ═══════════════════════════════════════════════════════════════════════════════


class TransientError(EngineError):
    """Network hiccup, timeout or unavailable backend."""

    code = "TRANSIENT_ERROR"
    retryable = True


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "EngineError",
    "ValidationError",
    "CapacityError",
    "NotFoundError",
    "ReservationError",
    "PaymentDeclinedError",
    "ConflictError",
    "TransientError",
)
