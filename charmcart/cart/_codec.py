"""
Snapshot codec — CartSnapshot <-> JSON-compatible dict.

Decimals travel as strings, datetimes as ISO 8601.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from charmcart.cart._policy import PricingPolicy
from charmcart.cart._pricing import summarize
from charmcart.cart._types import (
    CartItem,
    CartSnapshot,
    CartSummary,
    DesignComponent,
    DesignSnapshot,
)
from charmcart.errors import ValidationError

SCHEMA_VERSION = 1


# ═══════════════════════════════════════════════════════════════════════════════
# Encode
# ═══════════════════════════════════════════════════════════════════════════════


def design_to_dict(design: DesignSnapshot) -> dict[str, Any]:
    return {
        "components": [
            {"inventory_id": c.inventory_id, "placement": dict(c.placement)}
            for c in design.components
        ],
        "metadata": dict(design.metadata),
    }


def item_to_dict(item: CartItem) -> dict[str, Any]:
    return {
        "cart_item_id": item.cart_item_id,
        "product_id": item.product_id,
        "title": item.title,
        "description": item.description,
        "unit_price": str(item.unit_price),
        "quantity": item.quantity,
        "total_price": str(item.total_price),
        "image_url": item.image_url,
        "category": item.category,
        "is_custom_design": item.is_custom_design,
        "design": design_to_dict(item.design) if item.design else None,
        "added_at": item.added_at.isoformat(),
        "last_updated": item.last_updated.isoformat(),
    }


def summary_to_dict(summary: CartSummary) -> dict[str, Any]:
    return {
        "subtotal": str(summary.subtotal),
        "tax": str(summary.tax),
        "shipping": str(summary.shipping),
        "discount": str(summary.discount),
        "total": str(summary.total),
        "item_count": summary.item_count,
        "currency": summary.currency,
    }


def snapshot_to_dict(snapshot: CartSnapshot) -> dict[str, Any]:
    return {
        "schema": SCHEMA_VERSION,
        "items": [item_to_dict(i) for i in snapshot.items],
        "summary": summary_to_dict(snapshot.summary),
        "version": snapshot.version,
        "session_id": snapshot.session_id,
        "user_id": snapshot.user_id,
        "last_updated": snapshot.last_updated.isoformat(),
    }


# ═══════════════════════════════════════════════════════════════════════════════
# Decode
# ═══════════════════════════════════════════════════════════════════════════════


def design_from_dict(data: Mapping[str, Any]) -> DesignSnapshot:
    return DesignSnapshot(
        components=tuple(
            DesignComponent(
                inventory_id=str(c["inventory_id"]),
                placement=dict(c.get("placement") or {}),
            )
            for c in data.get("components", ())
        ),
        metadata=dict(data.get("metadata") or {}),
    )


def item_from_dict(data: Mapping[str, Any]) -> CartItem:
    design = data.get("design")
    return CartItem(
        cart_item_id=str(data["cart_item_id"]),
        product_id=str(data["product_id"]),
        title=str(data["title"]),
        description=data.get("description") or "",
        unit_price=Decimal(str(data["unit_price"])),
        quantity=int(data["quantity"]),
        image_url=data.get("image_url"),
        category=data.get("category"),
        is_custom_design=bool(data.get("is_custom_design", False)),
        design=design_from_dict(design) if design else None,
        added_at=datetime.fromisoformat(data["added_at"]),
        last_updated=datetime.fromisoformat(data["last_updated"]),
    )


def snapshot_from_dict(
    data: Mapping[str, Any],
    pricing: PricingPolicy | None = None,
) -> CartSnapshot:
    """
    Rebuild a snapshot. The stored summary is ignored and recomputed.

    Raises ValidationError on malformed records.
    """
    try:
        items = tuple(item_from_dict(i) for i in data.get("items", ()))
        return CartSnapshot(
            items=items,
            summary=summarize(items, pricing),
            version=int(data.get("version", 0)),
            session_id=data.get("session_id"),
            user_id=data.get("user_id"),
            last_updated=datetime.fromisoformat(data["last_updated"]),
        )
    except (KeyError, TypeError, ValueError, InvalidOperation) as e:
        raise ValidationError(f"Invalid cart record: {e}") from e


__all__ = (
    "SCHEMA_VERSION",
    "design_to_dict",
    "item_to_dict",
    "summary_to_dict",
    "snapshot_to_dict",
    "design_from_dict",
    "item_from_dict",
    "snapshot_from_dict",
)
