"""
Compensation ledger for checkout.

Each successful step may record an undo action. When a later step fails
the recorded actions run in reverse order.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from kungfu import Error, LazyCoroResult, Ok, Result

logger = logging.getLogger(__name__)

type Compensator[T] = Callable[[T], Awaitable[None]]
"""Receives the step's result and undoes it."""

type RecordedCompensator = tuple[Any, Compensator[Any]]


@dataclass(frozen=True, slots=True)
class RollbackReport:
    compensators_run: int
    compensators_failed: int

    @property
    def rollback_complete(self) -> bool:
        return self.compensators_failed == 0


class Transaction:
    """
    Example:
        tx = Transaction()
        match await tx.step(reserve(cart), release):
            case Ok(reservation): ...
            case Error(e):
                await tx.rollback()
    """

    def __init__(self) -> None:
        self._compensators: list[RecordedCompensator] = []
        self.steps_executed = 0

    @property
    def compensators_recorded(self) -> int:
        return len(self._compensators)

    async def step[T, E](
        self,
        action: LazyCoroResult[T, E],
        compensate: Compensator[T] | None = None,
    ) -> Result[T, E]:
        """Run one step, recording its compensator on success."""
        result = await action
        match result:
            case Ok(value):
                self.steps_executed += 1
                if compensate is not None:
                    self._compensators.append((value, compensate))
                return Ok(value)
            case Error(e):
                return Error(e)

    def record[T](self, value: T, compensate: Compensator[T]) -> None:
        """Register an undo action for work done outside `step`."""
        self._compensators.append((value, compensate))

    async def rollback(self) -> RollbackReport:
        """Run compensators in reverse. Failures are logged and counted."""
        run = 0
        failed = 0
        for value, compensate in reversed(self._compensators):
            try:
                await compensate(value)
                run += 1
            except Exception:
                failed += 1
                logger.exception("Compensation %s failed", getattr(compensate, "__name__", compensate))
        self._compensators.clear()
        return RollbackReport(compensators_run=run, compensators_failed=failed)


__all__ = (
    "Compensator",
    "RollbackReport",
    "Transaction",
)
