from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

from charmcart.cart import CartPolicy, PricingPolicy
from charmcart.order import CheckoutPolicy
from charmcart.persistence import PersistencePolicy
from charmcart.retry import RetryPolicy

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _get_env(*keys: str, default: str | None = None) -> str | None:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_int(*keys: str, default: int) -> int:
    v = _get_env(*keys)
    return default if v is None else int(v)


def _get_float(*keys: str, default: float) -> float:
    v = _get_env(*keys)
    return default if v is None else float(v)


def _get_decimal(*keys: str, default: Decimal) -> Decimal:
    v = _get_env(*keys)
    return default if v is None else Decimal(v)


def _get_bool(*keys: str, default: bool) -> bool:
    v = _get_env(*keys)
    return default if v is None else v.lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    cart: CartPolicy = field(default_factory=CartPolicy)
    pricing: PricingPolicy = field(default_factory=PricingPolicy)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    persistence: PersistencePolicy = field(default_factory=PersistencePolicy)
    checkout: CheckoutPolicy = field(default_factory=CheckoutPolicy)
    database_url: str = "sqlite+aiosqlite:///:memory:"
    local_store_path: str | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> Settings:
        """
        Read CHARMCART_* variables, after loading `env_file` (or ./.env).

        Variables already set in the process win over the file.
        """
        load_dotenv(dotenv_path=env_file)
        defaults = cls()

        cart = CartPolicy(
            max_items=_get_int("CHARMCART_MAX_ITEMS", default=defaults.cart.max_items),
            max_quantity_per_item=_get_int(
                "CHARMCART_MAX_QUANTITY_PER_ITEM", default=defaults.cart.max_quantity_per_item
            ),
            max_unit_price=_get_decimal(
                "CHARMCART_MAX_UNIT_PRICE", default=defaults.cart.max_unit_price
            ),
            max_history=_get_int("CHARMCART_MAX_HISTORY", default=defaults.cart.max_history),
        )
        pricing = PricingPolicy(
            tax_rate=_get_decimal("CHARMCART_TAX_RATE", default=defaults.pricing.tax_rate),
            free_shipping_threshold=_get_decimal(
                "CHARMCART_FREE_SHIPPING_THRESHOLD",
                default=defaults.pricing.free_shipping_threshold,
            ),
            standard_shipping=_get_decimal(
                "CHARMCART_STANDARD_SHIPPING", default=defaults.pricing.standard_shipping
            ),
            currency=_get_env("CHARMCART_CURRENCY", default=defaults.pricing.currency) or "USD",
        )
        retry = (
            RetryPolicy()
            .with_max_retries(_get_int("CHARMCART_MAX_RETRIES", default=defaults.retry.max_retries))
            .with_base_delay(
                seconds=_get_float("CHARMCART_RETRY_BASE_DELAY", default=defaults.retry.base_delay)
            )
            .with_enabled(_get_bool("CHARMCART_RETRY_ENABLED", default=True))
        )
        persistence = (
            PersistencePolicy()
            .with_guest_ttl(
                days=_get_float(
                    "CHARMCART_GUEST_CART_TTL_DAYS",
                    default=defaults.persistence.guest_cart_ttl.total_seconds() / 86400,
                )
            )
            .with_key_prefix(
                _get_env("CHARMCART_KEY_PREFIX", default=defaults.persistence.key_prefix)
                or defaults.persistence.key_prefix
            )
        )
        checkout = (
            CheckoutPolicy()
            .with_prefix(
                _get_env("CHARMCART_ORDER_PREFIX", default=defaults.checkout.order_number_prefix)
                or defaults.checkout.order_number_prefix
            )
            .with_stock_check(_get_bool("CHARMCART_CHECK_STOCK", default=True))
            .with_payment_retries(
                _get_int("CHARMCART_PAYMENT_RETRIES", default=defaults.checkout.payment_retries)
            )
        )

        return cls(
            cart=cart,
            pricing=pricing,
            retry=retry,
            persistence=persistence,
            checkout=checkout,
            database_url=_get_env("CHARMCART_DATABASE_URL", default=defaults.database_url)
            or defaults.database_url,
            local_store_path=_get_env("CHARMCART_LOCAL_STORE"),
            log_level=(_get_env("CHARMCART_LOG_LEVEL", default="INFO") or "INFO").upper(),
        )


def configure_logging(settings: Settings) -> None:
    """For scripts and services embedding the engine; the library itself adds no handlers."""
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)


__all__ = ("LOG_FORMAT", "Settings", "configure_logging")
