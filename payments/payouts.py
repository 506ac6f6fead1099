# payments/payouts.py
"""
Partner payout generation.

generate_payouts_for_order() runs detached (core.tasks) after an order is
finalized. It is idempotent per order: the existing-payout pre-check is the
fast path, and the (order, partner_code) unique constraint backs it so a
racing duplicate run rolls back instead of doubling payouts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable, Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.ops_events import OpsEventType, emit_ops_event
from orders.models import Order

from .ledger import append_ledger_entry, sale_dedupe_key
from .models import LedgerEntry, OrderPayout, PayoutRule

logger = logging.getLogger(__name__)

# Test hook: called with the order right before payouts are written. Raising
# from it simulates a payout failure.
FaultInjector = Callable[[Order], None]


class PayoutGenerationError(RuntimeError):
    pass


@dataclass(frozen=True)
class PayoutOutcome:
    created: int = 0
    skipped: bool = False
    reason: str = ""
    amounts: dict[str, int] = field(default_factory=dict)


def payout_amount_cents(total_cents: int, percent: Decimal) -> int:
    amount = Decimal(int(total_cents)) * Decimal(percent) / Decimal("100")
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def select_rules(rules: Iterable[PayoutRule], *, now=None) -> list[PayoutRule]:
    """
    One rule per partner: latest valid_from wins, then lowest priority.
    Rules that are not yet effective are ignored.
    """
    now = now or timezone.now()
    effective = [r for r in rules if r.valid_from <= now]
    effective.sort(key=lambda r: r.priority)
    effective.sort(key=lambda r: r.valid_from, reverse=True)

    chosen: dict[str, PayoutRule] = {}
    for rule in effective:
        chosen.setdefault(rule.partner_code, rule)
    return list(chosen.values())


def generate_payouts_for_order(order_id, *, fault_injector: Optional[FaultInjector] = None) -> PayoutOutcome:
    if OrderPayout.objects.filter(order_id=order_id).exists():
        logger.info("payouts already exist order=%s, skipping", order_id)
        return PayoutOutcome(skipped=True, reason="exists")

    order = Order.objects.filter(pk=order_id).first()
    if order is None:
        logger.warning("payouts skipped, order not found order=%s", order_id)
        return PayoutOutcome(skipped=True, reason="order_not_found")

    now = timezone.now()
    rules = select_rules(PayoutRule.objects.filter(valid_from__lte=now), now=now)
    if not rules:
        logger.warning("no payout rules, skipping payouts order=%s", order_id)
        return PayoutOutcome(skipped=True, reason="no_rules")

    if fault_injector is not None:
        fault_injector(order)

    amounts: dict[str, int] = {}
    try:
        with transaction.atomic():
            payouts = []
            for rule in rules:
                amount = payout_amount_cents(order.total_cents, rule.percent)
                amounts[rule.partner_code] = amount
                payouts.append(
                    OrderPayout(
                        order=order,
                        partner_code=rule.partner_code,
                        rule=rule,
                        amount_cents=amount,
                        currency=order.currency,
                        status=OrderPayout.Status.PENDING,
                    )
                )
            OrderPayout.objects.bulk_create(payouts)

            # Same dedupe key as the finalization pipeline: at most one sale row.
            append_ledger_entry(
                dedupe_key=sale_dedupe_key(order.pk),
                type=LedgerEntry.Type.SALE,
                amount_cents=order.total_cents,
                currency=order.currency,
                order=order,
                meta={"paymentMethod": order.payment_method, "source": "payouts"},
            )
    except IntegrityError:
        if OrderPayout.objects.filter(order_id=order_id).exists():
            logger.info("payouts created concurrently order=%s, skipping", order_id)
            return PayoutOutcome(skipped=True, reason="exists")
        raise

    logger.info("created %s payouts order=%s %s", len(amounts), order_id, amounts)
    emit_ops_event(OpsEventType.PAYOUTS_GENERATED, order.pk, payouts=amounts)
    return PayoutOutcome(created=len(amounts), amounts=amounts)


@transaction.atomic
def cancel_pending_payouts(order_id) -> int:
    return OrderPayout.objects.filter(order_id=order_id, status=OrderPayout.Status.PENDING).update(
        status=OrderPayout.Status.CANCELLED
    )


@transaction.atomic
def mark_payouts_paid(payout_ids: Iterable) -> int:
    return OrderPayout.objects.filter(pk__in=list(payout_ids), status=OrderPayout.Status.PENDING).update(
        status=OrderPayout.Status.PAID, paid_at=timezone.now()
    )
