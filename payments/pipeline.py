# payments/pipeline.py
"""
Post-payment finalization shared by the Stripe webhook and the checkout
verification endpoint.

finalize_paid_order() is safe to call any number of times, from either entry
point, concurrently. The sale ledger row keyed sale-<order id> is the real
guard: the fast-path lookup short-circuits repeats, and the unique constraint
absorbs the race the lookup cannot see.

Stock is not touched here; callers commit it first (orders.services
.commit_stock_for_order), guarded by Order.stock_deducted_at.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from django.db import transaction

from core.audit import record_audit
from core.tasks import submit_on_commit
from orders.events import add_history_note, record_order_event
from orders.models import Order, OrderEvent

from .ledger import append_ledger_entry, sale_dedupe_key, sale_recorded
from .models import LedgerEntry
from .payouts import generate_payouts_for_order

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FinalizeResult:
    success: bool
    skipped: bool = False
    error: str = ""


def finalize_paid_order(
    *,
    order_id,
    provider: str,
    provider_event_id: str,
    meta: Optional[Mapping[str, Any]] = None,
) -> FinalizeResult:
    meta = dict(meta or {})
    source = meta.get("source") or "pipeline"

    if sale_recorded(order_id):
        logger.info("order=%s already finalized, skipping", order_id)
        return FinalizeResult(success=True, skipped=True)

    logger.info("finalizing order=%s via %s:%s", order_id, provider, provider_event_id)

    order = Order.objects.filter(pk=order_id).first()

    # No-op when the caller already logged this provider event.
    try:
        record_order_event(
            order=order,
            type=OrderEvent.Type.PAYMENT_SUCCEEDED,
            provider=provider,
            provider_event_id=provider_event_id,
            payload=meta,
        )
    except Exception:
        logger.exception("event insert failed (non-fatal) order=%s", order_id)

    if order is None:
        logger.warning("finalize: order not found order=%s", order_id)
        return FinalizeResult(success=False, error="Order not found")

    _, created = append_ledger_entry(
        dedupe_key=sale_dedupe_key(order.pk),
        type=LedgerEntry.Type.SALE,
        amount_cents=order.total_cents,
        currency=order.currency,
        order=order,
        meta={"provider": provider, "providerEventId": provider_event_id, "source": source},
    )
    if not created:
        logger.info("sale for order=%s recorded concurrently, skipping", order.pk)
        return FinalizeResult(success=True, skipped=True)

    # History row for the order itself; the provider event above is usually
    # the caller's row.
    try:
        with transaction.atomic():
            add_history_note(
                order,
                OrderEvent.Type.PAYMENT_FINALIZED,
                f"Sale recorded via {source}",
                provider=provider,
                providerEventId=provider_event_id,
            )
    except Exception:
        logger.exception("history note failed (non-fatal) order=%s", order.pk)

    # Runs after commit in the worker pool; its failures are logged there.
    submit_on_commit(generate_payouts_for_order, order.pk, label=f"payouts:{order.pk}")

    record_audit(
        action="payment_finalized",
        entity="order",
        entity_id=order.pk,
        meta={
            "provider": provider,
            "providerEventId": provider_event_id,
            "source": source,
            "totalCents": order.total_cents,
        },
    )

    logger.info("order=%s finalized", order.pk)
    return FinalizeResult(success=True)
