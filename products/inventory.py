# products/inventory.py
"""
Stock primitives.

deduct_stock_for_items() is the only writer of Product.stock. Each line is one
statement:

    UPDATE products_product SET stock = stock - :qty
    WHERE id = :pid AND stock >= :qty

so two orders racing for the last unit cannot both win, and stock never goes
negative. There is no read-then-write path here.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Protocol

from django.db import DatabaseError, transaction
from django.db.models import F

from .models import Product

logger = logging.getLogger(__name__)


class StockLine(Protocol):
    product_id: str
    quantity: int
    name: str


@dataclass(frozen=True)
class LineDeduction:
    product_id: str
    quantity: int
    ok: bool
    reason: str = ""

    def describe(self) -> str:
        return f"{self.product_id}: requested {self.quantity} ({self.reason or 'ok'})"


@dataclass(frozen=True)
class StockDeductionResult:
    lines: list[LineDeduction] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(line.ok for line in self.lines)

    @property
    def failures(self) -> list[LineDeduction]:
        return [line for line in self.lines if not line.ok]

    def failure_summary(self) -> str:
        return "; ".join(line.describe() for line in self.failures)


def _deduct_line(*, product_id: str, quantity: int) -> int:
    # Savepoint per line: one failing UPDATE must not abort the caller's transaction.
    with transaction.atomic():
        return Product.objects.filter(pk=product_id, stock__gte=quantity).update(stock=F("stock") - quantity)


def deduct_stock_for_items(*, order_id, items: Iterable[StockLine]) -> StockDeductionResult:
    """
    Atomically decrement stock for every line. Per-line success; never raises
    for a single bad line (it is reported as a failure instead).
    """
    results: list[LineDeduction] = []

    for item in items:
        product_id = str(item.product_id)
        qty = int(item.quantity or 0)

        if qty <= 0:
            results.append(LineDeduction(product_id=product_id, quantity=qty, ok=False, reason="invalid quantity"))
            continue

        try:
            updated = _deduct_line(product_id=product_id, quantity=qty)
        except DatabaseError:
            logger.exception("stock deduction failed order=%s product=%s qty=%s", order_id, product_id, qty)
            results.append(LineDeduction(product_id=product_id, quantity=qty, ok=False, reason="deduction error"))
            continue

        if updated:
            results.append(LineDeduction(product_id=product_id, quantity=qty, ok=True))
        else:
            logger.warning("oversell detected order=%s product=%s qty=%s", order_id, product_id, qty)
            results.append(LineDeduction(product_id=product_id, quantity=qty, ok=False, reason="insufficient stock"))

    return StockDeductionResult(lines=results)


def find_stock_shortfalls(items: Iterable[StockLine]) -> list[str]:
    """
    Read-only availability check used at order creation. Quantities for the
    same product are summed (two sizes of one shirt share one stock counter).
    """
    wanted: dict[str, int] = defaultdict(int)
    for item in items:
        wanted[str(item.product_id)] += int(item.quantity or 0)

    stock_by_id = dict(
        Product.objects.filter(pk__in=list(wanted), is_active=True).values_list("pk", "stock")
    )

    shortfalls: list[str] = []
    for product_id, qty in wanted.items():
        available = stock_by_id.get(product_id)
        if available is None:
            shortfalls.append(f"{product_id}: not available")
        elif available < qty:
            shortfalls.append(f"{product_id}: requested {qty}, in stock {available}")
    return shortfalls
