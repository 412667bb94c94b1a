"""
Error classification — retryable vs. terminal.
"""

from __future__ import annotations

from dataclasses import dataclass

from charmcart.errors._types import EngineError


NON_RETRYABLE_PATTERNS: tuple[str, ...] = (
    "invalid",
    "unauthorized",
    "forbidden",
    "not found",
    "validation",
    "insufficient stock",
    "payment declined",
)


@dataclass(frozen=True, slots=True)
class ErrorClassifier:
    """
    Maps an exception to retryable / non-retryable.

    Order of decision:
        1. EngineError subclasses answer with their `retryable` flag.
        2. Anything else is matched (case-insensitive) against `patterns`.
        3. Unmatched errors are treated as transient.

    Example:
        classifier = ErrorClassifier().with_patterns("quota exceeded")
        classifier.is_retryable(RuntimeError("Quota exceeded"))  # False
    """

    patterns: tuple[str, ...] = NON_RETRYABLE_PATTERNS

    def is_retryable(self, error: BaseException) -> bool:
        if isinstance(error, EngineError):
            return error.retryable
        message = str(error).lower()
        return not any(pattern in message for pattern in self.patterns)

    def with_patterns(self, *patterns: str) -> ErrorClassifier:
        """Extend the non-retryable pattern list."""
        extra = tuple(p.lower() for p in patterns)
        return ErrorClassifier(patterns=self.patterns + extra)


_default = ErrorClassifier()


def is_retryable(error: BaseException) -> bool:
    """Classify with the default pattern list."""
    return _default.is_retryable(error)


__all__ = (
    "NON_RETRYABLE_PATTERNS",
    "ErrorClassifier",
    "is_retryable",
)
