"""
Errors — engine taxonomy and retry classification.

    from charmcart import errors as X

    try:
        store.add_item(product, 11)
    except X.ValidationError as e:
        print(e.code, e.message)

    X.is_retryable(X.TransientError("timeout"))   # True
    X.is_retryable(RuntimeError("Invalid token")) # False
"""

from charmcart.errors._types import (
    EngineError,
    ValidationError,
    CapacityError,
    NotFoundError,
    ReservationError,
    PaymentDeclinedError,
    ConflictError,
    TransientError,
)
from charmcart.errors._classify import (
    NON_RETRYABLE_PATTERNS,
    ErrorClassifier,
    is_retryable,
)

__all__ = (
    "EngineError",
    "ValidationError",
    "CapacityError",
    "NotFoundError",
    "ReservationError",
    "PaymentDeclinedError",
    "ConflictError",
    "TransientError",
    "NON_RETRYABLE_PATTERNS",
    "ErrorClassifier",
    "is_retryable",
)
