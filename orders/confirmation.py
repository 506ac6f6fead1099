# orders/confirmation.py
"""
Payment confirmation, shared by the webhook and the verification poll.

Order of work, all in one transaction with the order row locked:

  1. commit stock (once per order, guarded by stock_deducted_at)
  2. mark the order paid (payment always wins, see mark_order_paid)
  3. finalize: sale ledger row, payouts, audit (payments.pipeline)

E-mails and ops events are queued for after commit. If anything in 1-3
raises, the whole confirmation rolls back and the next trigger (webhook
redelivery or another poll) retries it safely.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.db import transaction

from core.ops_events import OpsEventType, emit_ops_event
from payments.pipeline import FinalizeResult, finalize_paid_order

from .emails import send_fulfillment_notification, send_order_confirmation_email
from .models import Order
from .services import StockCommitResult, commit_stock_for_order, mark_order_paid

logger = logging.getLogger(__name__)


class PaymentConfirmationError(RuntimeError):
    pass


@dataclass(frozen=True)
class ConfirmationResult:
    order: Order
    newly_paid: bool
    stock: StockCommitResult
    finalize: FinalizeResult

    @property
    def success(self) -> bool:
        return self.finalize.success


def confirm_order_payment(
    *,
    order_id,
    provider: str,
    provider_event_id: str,
    payment_intent_id: str = "",
    session_id: str = "",
    source: str = "",
) -> ConfirmationResult:
    """Raises Order.DoesNotExist when the order is unknown."""
    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=order_id)

        if order.status == Order.Status.REFUNDED:
            logger.warning("confirmation ignored for refunded order=%s", order.pk)
            return ConfirmationResult(
                order=order,
                newly_paid=False,
                stock=StockCommitResult(attempted=False),
                finalize=FinalizeResult(success=True, skipped=True),
            )

        stock = commit_stock_for_order(order)
        newly_paid = mark_order_paid(order, payment_intent_id=payment_intent_id, session_id=session_id)

        result = finalize_paid_order(
            order_id=order.pk,
            provider=provider,
            provider_event_id=provider_event_id,
            meta={
                "source": source or provider,
                "paymentIntentId": payment_intent_id,
                "sessionId": session_id,
            },
        )
        if not result.success:
            # Roll back stock and payment state; the provider will retry.
            raise PaymentConfirmationError(f"finalization failed for order {order.pk}: {result.error}")

        if newly_paid:
            send_order_confirmation_email(order)
            send_fulfillment_notification(order)

    if newly_paid:
        logger.info("order=%s paid via %s (%s)", order.pk, source or provider, provider_event_id)
        emit_ops_event(
            OpsEventType.PAYMENT_CONFIRMED,
            order.pk,
            amountCents=order.total_cents,
            currency=order.currency,
            source=source or provider,
        )

    return ConfirmationResult(order=order, newly_paid=newly_paid, stock=stock, finalize=result)
