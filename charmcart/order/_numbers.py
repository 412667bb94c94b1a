"""
Order and reservation identifiers.
"""

from __future__ import annotations

import random
import uuid
from dataclasses import dataclass, field

from charmcart._types import Clock, utcnow


@dataclass
class OrderNumberGenerator:
    """
    `{prefix}-{YYYYMMDD}-{NNNN}`, e.g. TJC-20261018-0427.

    Uniqueness is checked by the caller against the repository.
    """

    prefix: str = "TJC"
    clock: Clock = utcnow
    rng: random.Random = field(default_factory=random.Random)

    def __call__(self) -> str:
        return f"{self.prefix}-{self.clock():%Y%m%d}-{self.rng.randrange(10000):04d}"


def new_reservation_id() -> str:
    return f"res_{uuid.uuid4().hex[:16]}"


def new_record_id() -> str:
    return uuid.uuid4().hex


__all__ = (
    "OrderNumberGenerator",
    "new_reservation_id",
    "new_record_id",
)
