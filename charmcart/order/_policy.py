"""
Checkout policy.
"""

from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True, slots=True)
class CheckoutPolicy:
    """
    order_number_prefix — prefix of generated order numbers.
    check_stock — verify stock for stock items before reserving.
    guard_in_flight — reject a second concurrent checkout of one cart.
    payment_retries — retries for transient payment errors. Zero by
        default: a charge that timed out may still have gone through.
    order_number_attempts — regenerate on collision this many times.
    """

    order_number_prefix: str = "TJC"
    check_stock: bool = True
    guard_in_flight: bool = True
    payment_retries: int = 0
    order_number_attempts: int = 5

    def with_prefix(self, prefix: str) -> CheckoutPolicy:
        return replace(self, order_number_prefix=prefix)

    def with_stock_check(self, enabled: bool = True) -> CheckoutPolicy:
        return replace(self, check_stock=enabled)

    def with_in_flight_guard(self, enabled: bool = True) -> CheckoutPolicy:
        return replace(self, guard_in_flight=enabled)

    def with_payment_retries(self, retries: int) -> CheckoutPolicy:
        return replace(self, payment_retries=retries)


__all__ = ("CheckoutPolicy",)
