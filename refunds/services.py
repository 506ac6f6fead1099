# refunds/services.py

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.core.exceptions import ValidationError
from django.db import transaction

from core.audit import Severity, record_audit
from core.ops_events import OpsEventType, emit_ops_event
from orders.events import event_already_recorded, record_order_event
from orders.models import Order, OrderEvent, is_within_withdrawal_period, withdrawal_deadline
from orders.services import append_ops_note
from payments.ledger import (
    append_ledger_entry,
    chargeback_dedupe_key,
    chargeback_fee_dedupe_key,
    refund_dedupe_key,
)
from payments.models import LedgerEntry
from payments.payouts import cancel_pending_payouts

logger = logging.getLogger(__name__)

__all__ = [
    "RefundResult",
    "apply_refund_for_order",
    "handle_chargeback",
    "is_within_withdrawal_period",
    "withdrawal_deadline",
]


@dataclass(frozen=True)
class RefundResult:
    order_id: str
    amount_cents: int
    skipped: bool = False
    cancelled_payouts: int = 0


# ============================================================
# Refunds
# ============================================================
def apply_refund_for_order(
    *,
    order_id,
    amount_cents: int,
    reason: str,
    provider_event_id: str,
    actor=None,
) -> RefundResult:
    """
    Record a refund: negative ledger row, pending payouts cancelled, order
    marked refunded. The order and its sale row are never deleted.

    Idempotent on (manual, provider_event_id). Raises ValidationError for an
    amount outside (0, order total] and Order.DoesNotExist for unknown orders.
    """
    provider_event_id = (provider_event_id or "").strip()
    if not provider_event_id:
        raise ValidationError("A refund reference (provider_event_id) is required.")

    if event_already_recorded(provider=OrderEvent.Provider.MANUAL, provider_event_id=provider_event_id):
        logger.info("refund %s already processed, skipping", provider_event_id)
        return RefundResult(order_id=str(order_id), amount_cents=int(amount_cents), skipped=True)

    amount_cents = int(amount_cents)

    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=order_id)

        if amount_cents <= 0 or amount_cents > order.total_cents:
            raise ValidationError(
                f"Invalid refund amount: {amount_cents}. Order total: {order.total_cents}."
            )

        recorded = record_order_event(
            order=order,
            type=OrderEvent.Type.REFUND,
            provider=OrderEvent.Provider.MANUAL,
            provider_event_id=provider_event_id,
            message=reason,
            payload={"amountCents": amount_cents, "reason": reason},
        )
        if not recorded:
            return RefundResult(order_id=str(order.pk), amount_cents=amount_cents, skipped=True)

        append_ledger_entry(
            dedupe_key=refund_dedupe_key(order.pk, provider_event_id),
            type=LedgerEntry.Type.REFUND,
            amount_cents=-amount_cents,
            currency=order.currency,
            order=order,
            meta={"reason": reason, "providerEventId": provider_event_id},
        )

        cancelled = cancel_pending_payouts(order.pk)

        order.status = Order.Status.REFUNDED
        order.refund_amount_cents = amount_cents
        order.refund_reason = reason
        order.save(update_fields=["status", "refund_amount_cents", "refund_reason", "updated_at"])

    record_audit(
        action="refund_applied",
        entity="order",
        entity_id=order.pk,
        meta={"amountCents": amount_cents, "reason": reason, "providerEventId": provider_event_id},
        severity=Severity.IMPORTANT,
        actor=actor,
    )
    emit_ops_event(
        OpsEventType.REFUND_CREATED,
        order.pk,
        amountCents=amount_cents,
        currency=order.currency,
        reason=reason,
    )
    logger.info("refund applied order=%s amount=%s %s", order.pk, amount_cents, order.currency)

    return RefundResult(order_id=str(order.pk), amount_cents=amount_cents, cancelled_payouts=cancelled)


# ============================================================
# Chargebacks
# ============================================================
def handle_chargeback(
    *,
    order_id,
    chargeback_cents: int,
    fee_cents: int,
    provider_event_id: str,
    reason: str = "",
) -> RefundResult:
    """
    Record a dispute: chargeback and fee ledger rows, order flagged for manual
    review. Payouts and stock are left alone; a human decides.

    Idempotent on (stripe, provider_event_id).
    """
    if event_already_recorded(provider=OrderEvent.Provider.STRIPE, provider_event_id=provider_event_id):
        logger.info("chargeback %s already processed, skipping", provider_event_id)
        return RefundResult(order_id=str(order_id), amount_cents=int(chargeback_cents), skipped=True)

    chargeback_cents = int(chargeback_cents)
    fee_cents = int(fee_cents or 0)

    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=order_id)

        recorded = record_order_event(
            order=order,
            type=OrderEvent.Type.CHARGEBACK,
            provider=OrderEvent.Provider.STRIPE,
            provider_event_id=provider_event_id,
            message=reason,
            payload={"chargebackCents": chargeback_cents, "feeCents": fee_cents, "reason": reason},
        )
        if not recorded:
            return RefundResult(order_id=str(order.pk), amount_cents=chargeback_cents, skipped=True)

        if chargeback_cents > 0:
            append_ledger_entry(
                dedupe_key=chargeback_dedupe_key(order.pk, provider_event_id),
                type=LedgerEntry.Type.CHARGEBACK,
                amount_cents=-chargeback_cents,
                currency=order.currency,
                order=order,
                meta={"reason": reason, "providerEventId": provider_event_id},
            )
        if fee_cents > 0:
            append_ledger_entry(
                dedupe_key=chargeback_fee_dedupe_key(order.pk, provider_event_id),
                type=LedgerEntry.Type.CHARGEBACK_FEE,
                amount_cents=-fee_cents,
                currency=order.currency,
                order=order,
                meta={"providerEventId": provider_event_id},
            )

        order.manual_review = True
        order.ops_notes = append_ops_note(order.ops_notes, f"Chargeback received: {reason or 'no reason provided'}")
        order.save(update_fields=["manual_review", "ops_notes", "updated_at"])

    record_audit(
        action="chargeback_received",
        entity="order",
        entity_id=order.pk,
        meta={
            "chargebackCents": chargeback_cents,
            "feeCents": fee_cents,
            "reason": reason,
            "providerEventId": provider_event_id,
        },
        severity=Severity.CRITICAL,
    )
    emit_ops_event(
        OpsEventType.CHARGEBACK_RECEIVED,
        order.pk,
        amountCents=chargeback_cents,
        feeCents=fee_cents,
        reason=reason,
    )
    logger.warning("chargeback recorded order=%s amount=%s fee=%s", order.pk, chargeback_cents, fee_cents)

    return RefundResult(order_id=str(order.pk), amount_cents=chargeback_cents)
