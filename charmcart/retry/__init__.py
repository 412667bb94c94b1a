"""
Retry — exponential backoff with error classification.

    from charmcart import retry as R

    executor = R.RetryExecutor(R.RetryPolicy().with_base_delay(seconds=0.2))
    cart = await executor.execute("get_guest_cart_s1", lambda: remote.get_guest_cart("s1"))

    # As LazyCoroResult
    match await executor.lazy("reserve", lambda: inventory.reserve(...)):
        case Ok(outcome): ...
        case Error(e): ...
"""

from charmcart.retry._policy import RetryPolicy
from charmcart.retry._executor import (
    Operation,
    FailureRecord,
    RetryExecutor,
    retrying,
)

__all__ = (
    "RetryPolicy",
    "Operation",
    "FailureRecord",
    "RetryExecutor",
    "retrying",
)
