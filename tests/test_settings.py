from datetime import timedelta
from decimal import Decimal
from pathlib import Path

import pytest

from charmcart import build_engine
from charmcart.persistence import SaveTarget
from charmcart.settings import Settings

from conftest import charm

ENV_KEYS = (
    "CHARMCART_MAX_ITEMS",
    "CHARMCART_MAX_QUANTITY_PER_ITEM",
    "CHARMCART_TAX_RATE",
    "CHARMCART_MAX_RETRIES",
    "CHARMCART_RETRY_ENABLED",
    "CHARMCART_GUEST_CART_TTL_DAYS",
    "CHARMCART_ORDER_PREFIX",
    "CHARMCART_LOCAL_STORE",
    "CHARMCART_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults(tmp_path: Path) -> None:
    settings = Settings.from_env(tmp_path / "missing.env")

    assert settings.cart.max_items == 50
    assert settings.cart.max_quantity_per_item == 10
    assert settings.pricing.tax_rate == Decimal("0.08")
    assert settings.retry.max_retries == 3
    assert settings.persistence.guest_cart_ttl == timedelta(days=7)
    assert settings.checkout.order_number_prefix == "TJC"
    assert settings.checkout.payment_retries == 0
    assert settings.local_store_path is None
    assert settings.log_level == "INFO"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CHARMCART_MAX_ITEMS", "5")
    monkeypatch.setenv("CHARMCART_TAX_RATE", "0.1")
    monkeypatch.setenv("CHARMCART_RETRY_ENABLED", "no")
    monkeypatch.setenv("CHARMCART_GUEST_CART_TTL_DAYS", "2")
    monkeypatch.setenv("CHARMCART_LOG_LEVEL", "debug")
    monkeypatch.setenv("CHARMCART_ORDER_PREFIX", "  ")

    settings = Settings.from_env(tmp_path / "missing.env")

    assert settings.cart.max_items == 5
    assert settings.pricing.tax_rate == Decimal("0.1")
    assert not settings.retry.enabled
    assert settings.persistence.guest_cart_ttl == timedelta(days=2)
    assert settings.log_level == "DEBUG"
    # blank values fall back to defaults
    assert settings.checkout.order_number_prefix == "TJC"


def test_env_file_is_read_but_process_env_wins(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("CHARMCART_MAX_RETRIES=7\nCHARMCART_ORDER_PREFIX=SHOP\n")
    monkeypatch.setenv("CHARMCART_ORDER_PREFIX", "CHRM")

    settings = Settings.from_env(env_file)

    assert settings.retry.max_retries == 7
    assert settings.checkout.order_number_prefix == "CHRM"


def test_malformed_number_is_rejected(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CHARMCART_MAX_QUANTITY_PER_ITEM", "ten")

    with pytest.raises(ValueError):
        Settings.from_env(tmp_path / "missing.env")


async def test_build_engine_wires_default_stack(tmp_path: Path) -> None:
    settings = Settings(local_store_path=str(tmp_path / "carts.json"))
    engine = await build_engine(settings)
    try:
        session = engine.new_session("sess_1")
        session.store.add_item(charm("charm1"), 2)

        assert await session.persist() is SaveTarget.REMOTE

        restored = engine.new_session("sess_1")
        await restored.load()
        assert [(i.product_id, i.quantity) for i in restored.store.items] == [("charm1", 2)]
    finally:
        await engine.close()
