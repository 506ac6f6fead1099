# orders/items.py
"""
Order line-item payload.

Order.items is a JSON column. Three shapes exist in the wild:

  v1 (legacy list):    [{"productId", "name", "price", "size", "quantity", ...}]
  v1 (legacy object):  {"items": [...], "shippingMethod", "shippingLabel",
                        "subtotalCzk", "shippingCzk", "codCzk", "totalCzk"}
  v2 (current):        {"version": 2, "items": [{"product_id", "name", "size",
                        "quantity", "unit_price_cents"}], "shipping": {...},
                        "totals": {...}}

v1 prices are whole currency units; v2 stores minor units. decode_order_items()
migrates everything to the typed v2 form once, at the boundary. New orders are
always written as v2 via encode_order_items().
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from django.core.exceptions import ValidationError

CURRENT_VERSION = 2


@dataclass(frozen=True)
class LineItem:
    product_id: str
    quantity: int
    unit_price_cents: int
    name: str = ""
    size: str = ""

    @property
    def line_total_cents(self) -> int:
        return int(self.quantity) * int(self.unit_price_cents)


@dataclass(frozen=True)
class ShippingInfo:
    method: str = ""
    label: str = ""


@dataclass(frozen=True)
class PayloadTotals:
    subtotal_cents: Optional[int] = None
    shipping_cents: Optional[int] = None
    cod_cents: Optional[int] = None
    total_cents: Optional[int] = None


@dataclass(frozen=True)
class OrderItemsPayload:
    items: list[LineItem] = field(default_factory=list)
    shipping: ShippingInfo = field(default_factory=ShippingInfo)
    totals: PayloadTotals = field(default_factory=PayloadTotals)
    source_version: int = CURRENT_VERSION

    @property
    def items_total_cents(self) -> int:
        return sum(item.line_total_cents for item in self.items)


def _to_int(value: Any, *, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Line item field '{field_name}' must be a number.")
    try:
        return int(round(float(value)))
    except (TypeError, ValueError):
        raise ValidationError(f"Line item field '{field_name}' must be a number.")


def _major_to_cents(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(round(float(value) * 100))


def _legacy_line(raw: dict) -> LineItem:
    product_id = str(raw.get("productId") or raw.get("product_id") or "").strip()
    if not product_id:
        raise ValidationError("Line item is missing productId.")
    return LineItem(
        product_id=product_id,
        quantity=_to_int(raw.get("quantity", 1), field_name="quantity"),
        unit_price_cents=_to_int(raw.get("price", 0), field_name="price") * 100,
        name=str(raw.get("name") or ""),
        size=str(raw.get("size") or ""),
    )


def _current_line(raw: dict) -> LineItem:
    product_id = str(raw.get("product_id") or "").strip()
    if not product_id:
        raise ValidationError("Line item is missing product_id.")
    return LineItem(
        product_id=product_id,
        quantity=_to_int(raw.get("quantity", 1), field_name="quantity"),
        unit_price_cents=_to_int(raw.get("unit_price_cents", 0), field_name="unit_price_cents"),
        name=str(raw.get("name") or ""),
        size=str(raw.get("size") or ""),
    )


def _lines(raw_items: Any, parse) -> list[LineItem]:
    if not isinstance(raw_items, list):
        raise ValidationError("Order items must be a list.")
    lines = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("Each order line item must be an object.")
        lines.append(parse(raw))
    return lines


def decode_order_items(raw: Any) -> OrderItemsPayload:
    """Decode any stored shape (JSON text, list or dict) into the typed v2 payload."""
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw or "null")
        except ValueError:
            raise ValidationError("Order items payload is not valid JSON.")

    if raw is None:
        return OrderItemsPayload()

    if isinstance(raw, list):
        return OrderItemsPayload(items=_lines(raw, _legacy_line), source_version=1)

    if not isinstance(raw, dict):
        raise ValidationError("Unrecognised order items payload.")

    version = raw.get("version")
    if version is None:
        return OrderItemsPayload(
            items=_lines(raw.get("items") or [], _legacy_line),
            shipping=ShippingInfo(
                method=str(raw.get("shippingMethod") or ""),
                label=str(raw.get("shippingLabel") or ""),
            ),
            totals=PayloadTotals(
                subtotal_cents=_major_to_cents(raw.get("subtotalCzk")),
                shipping_cents=_major_to_cents(raw.get("shippingCzk")),
                cod_cents=_major_to_cents(raw.get("codCzk")),
                total_cents=_major_to_cents(raw.get("totalCzk")),
            ),
            source_version=1,
        )

    if version != CURRENT_VERSION:
        raise ValidationError(f"Unsupported order items version: {version!r}")

    shipping = raw.get("shipping") or {}
    totals = raw.get("totals") or {}
    return OrderItemsPayload(
        items=_lines(raw.get("items") or [], _current_line),
        shipping=ShippingInfo(method=str(shipping.get("method") or ""), label=str(shipping.get("label") or "")),
        totals=PayloadTotals(
            subtotal_cents=totals.get("subtotal_cents"),
            shipping_cents=totals.get("shipping_cents"),
            cod_cents=totals.get("cod_cents"),
            total_cents=totals.get("total_cents"),
        ),
        source_version=CURRENT_VERSION,
    )


def encode_order_items(payload: OrderItemsPayload) -> dict:
    return {
        "version": CURRENT_VERSION,
        "items": [asdict(item) for item in payload.items],
        "shipping": asdict(payload.shipping),
        "totals": asdict(payload.totals),
    }
