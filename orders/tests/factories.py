# orders/tests/factories.py
"""Shared builders for order, product and payout-rule fixtures."""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from orders.items import LineItem, OrderItemsPayload, encode_order_items
from orders.models import Order
from payments.models import PayoutRule
from products.models import Product


def make_product(pk: str = "tee-black", *, stock: int = 10, price_cents: int = 50000, name: str = "ZLE Tee") -> Product:
    return Product.objects.create(pk=pk, name=name, price_cents=price_cents, stock=stock)


def make_payload(lines: Iterable[tuple[str, int, int]]) -> OrderItemsPayload:
    """lines: (product_id, quantity, unit_price_cents)"""
    return OrderItemsPayload(
        items=[LineItem(product_id=pid, quantity=qty, unit_price_cents=price, name=pid) for pid, qty, price in lines]
    )


def make_order(
    *,
    lines: Iterable[tuple[str, int, int]] = (("tee-black", 2, 50000),),
    total_cents: int | None = None,
    **fields,
) -> Order:
    payload = make_payload(lines)
    fields.setdefault("customer_name", "Jan Novak")
    fields.setdefault("customer_email", "jan.novak@example.cz")
    return Order.objects.create(
        items=encode_order_items(payload),
        total_cents=payload.items_total_cents if total_cents is None else total_cents,
        **fields,
    )


def make_default_rules() -> list[PayoutRule]:
    return [
        PayoutRule.objects.create(partner_code="ZABR", percent=Decimal("20.00")),
        PayoutRule.objects.create(partner_code="KOSTA", percent=Decimal("40.00")),
        PayoutRule.objects.create(partner_code="TOMAS", percent=Decimal("40.00")),
    ]
