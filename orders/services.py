# orders/services.py

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Q, QuerySet
from django.utils import timezone

from core.audit import Severity, record_audit
from core.ops_events import OpsEventType, emit_ops_event
from products.inventory import deduct_stock_for_items, find_stock_shortfalls

from .emails import send_status_update_email
from .events import add_history_note
from .items import OrderItemsPayload, encode_order_items
from .models import Order, OrderEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomerInfo:
    name: str
    email: str
    phone: str = ""
    address: str = ""
    city: str = ""
    zip: str = ""
    country: str = "CZ"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def append_ops_note(existing: str, note: str) -> str:
    stamp = timezone.now().strftime("%Y-%m-%d %H:%M")
    line = f"[{stamp}] {note}"
    return f"{existing}\n{line}" if existing else line


# =========================
# Create / read
# =========================
@transaction.atomic
def create_order(
    *,
    customer: CustomerInfo,
    items: OrderItemsPayload,
    payment_method: str = Order.PaymentMethod.CARD,
    total_cents: Optional[int] = None,
    currency: str = "",
    buyer=None,
) -> Order:
    """
    Persist a draft order as pending/unpaid.

    Stock is only checked here (read-only). Deduction happens once, when the
    payment is confirmed (see orders.confirmation).
    """
    email = normalize_email(customer.email)
    if not email:
        raise ValidationError("Customer e-mail is required.")
    if not (customer.name or "").strip():
        raise ValidationError("Customer name is required.")
    if not items.items:
        raise ValidationError("Order has no items.")
    if payment_method not in Order.PaymentMethod.values:
        raise ValidationError(f"Unknown payment method: {payment_method}")

    for line in items.items:
        if line.quantity <= 0:
            raise ValidationError(f"Invalid quantity for {line.product_id}.")
        if line.unit_price_cents < 0:
            raise ValidationError(f"Invalid price for {line.product_id}.")

    shortfalls = find_stock_shortfalls(items.items)
    if shortfalls:
        raise ValidationError(["Insufficient stock."] + shortfalls)

    if total_cents is None:
        total_cents = items.totals.total_cents if items.totals.total_cents is not None else items.items_total_cents
    if int(total_cents) <= 0:
        raise ValidationError("Order total must be positive.")

    order = Order.objects.create(
        buyer=buyer if getattr(buyer, "is_authenticated", False) else None,
        customer_name=customer.name.strip(),
        customer_email=email,
        customer_phone=customer.phone,
        customer_address=customer.address,
        customer_city=customer.city,
        customer_zip=customer.zip,
        customer_country=customer.country or "CZ",
        items=encode_order_items(items),
        currency=(currency or getattr(settings, "STORE_CURRENCY", "czk")).lower(),
        total_cents=int(total_cents),
        payment_method=payment_method,
        status=Order.Status.PENDING,
        payment_status=Order.PaymentStatus.UNPAID,
    )

    add_history_note(order, OrderEvent.Type.CREATED, f"method={payment_method} total={order.total_cents}")
    logger.info("order created order=%s total=%s method=%s", order.pk, order.total_cents, payment_method)

    emit_ops_event(
        OpsEventType.ORDER_CREATED,
        order.pk,
        totalCents=order.total_cents,
        currency=order.currency,
        paymentMethod=payment_method,
    )
    return order


def get_order(order_id) -> Optional[Order]:
    try:
        return Order.objects.filter(pk=order_id).first()
    except ValidationError:
        # Malformed UUID.
        return None


def orders_for_user(user) -> QuerySet[Order]:
    return Order.objects.filter(buyer=user).order_by("-created_at")


# =========================
# Partial update
# =========================
UPDATABLE_FIELDS = frozenset(
    {
        "status",
        "payment_status",
        "payment_intent_id",
        "stripe_session_id",
        "stock_deducted_at",
        "manual_review",
        "ops_notes",
        "refund_amount_cents",
        "refund_reason",
        "paid_at",
        "customer_name",
        "customer_email",
        "customer_phone",
        "customer_address",
        "customer_city",
        "customer_zip",
        "customer_country",
    }
)


class UnknownOrderField(ValueError):
    pass


def _check_patch(order: Order, changes: dict[str, Any]) -> None:
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise UnknownOrderField(f"Fields cannot be patched: {', '.join(sorted(unknown))}")

    if "stock_deducted_at" in changes and order.stock_deducted_at is not None:
        if changes["stock_deducted_at"] != order.stock_deducted_at:
            raise ValidationError("stock_deducted_at is already set and cannot change.")

    new_status = changes.get("status")
    if new_status is not None and new_status not in Order.Status.values:
        raise ValidationError(f"Unknown status: {new_status}")
    new_payment = changes.get("payment_status")
    if new_payment is not None and new_payment not in Order.PaymentStatus.values:
        raise ValidationError(f"Unknown payment status: {new_payment}")

    if order.status in Order.TERMINAL_STATUSES:
        if new_status and new_status != order.status and new_status != Order.Status.REFUNDED:
            raise ValidationError(f"Order is {order.status}; it cannot move to {new_status}.")
        if new_payment == Order.PaymentStatus.PAID and order.payment_status != Order.PaymentStatus.PAID:
            raise ValidationError(f"Order is {order.status}; payment must be confirmed through the payment flow.")


@transaction.atomic
def update_order(order_id, **changes: Any) -> Optional[Order]:
    """
    Partial patch: only the supplied fields change. Returns None when the
    order does not exist.
    """
    order = Order.objects.select_for_update().filter(pk=order_id).first()
    if order is None:
        return None
    if not changes:
        return order

    _check_patch(order, changes)

    for name, value in changes.items():
        setattr(order, name, value)
    order.save(update_fields=sorted(changes) + ["updated_at"])
    return order


def list_orders(
    *,
    status: str = "",
    payment_status: str = "",
    payment_method: str = "",
    has_stock_deducted: Optional[bool] = None,
    manual_review: Optional[bool] = None,
    q: str = "",
    sort: str = "createdAt_desc",
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Order], int]:
    """Filtered listing for the ops surface. Returns (page, total_matching)."""
    qs = Order.objects.all()

    if status:
        qs = qs.filter(status=status)
    if payment_status:
        qs = qs.filter(payment_status=payment_status)
    if payment_method:
        qs = qs.filter(payment_method=payment_method)
    if has_stock_deducted is not None:
        qs = qs.filter(stock_deducted_at__isnull=not has_stock_deducted)
    if manual_review is not None:
        qs = qs.filter(manual_review=manual_review)

    q = (q or "").strip()
    if q:
        cond = Q(customer_email__icontains=q) | Q(customer_name__icontains=q)
        try:
            cond |= Q(pk=uuid.UUID(q))
        except ValueError:
            pass
        qs = qs.filter(cond)

    ordering = {
        "createdAt_desc": ["-created_at"],
        "createdAt_asc": ["created_at"],
        "total_desc": ["-total_cents", "-created_at"],
    }.get(sort, ["-created_at"])

    limit = max(1, min(200, int(limit)))
    offset = max(0, int(offset))

    total = qs.count()
    return list(qs.order_by(*ordering)[offset : offset + limit]), total


# =========================
# Fulfilment status
# =========================
FULFILMENT_TRANSITIONS = {
    Order.Status.SHIPPED: {Order.Status.CONFIRMED},
    Order.Status.DELIVERED: {Order.Status.CONFIRMED, Order.Status.SHIPPED},
}


@transaction.atomic
def update_order_status(order: Order, status: str, *, actor=None) -> Order:
    allowed_from = FULFILMENT_TRANSITIONS.get(status)
    if allowed_from is None:
        raise ValidationError(f"Status {status} is not a fulfilment status.")

    order = Order.objects.select_for_update().get(pk=order.pk)
    if order.status == status:
        return order
    if order.status not in allowed_from:
        raise ValidationError(f"Order is {order.status}; cannot mark it {status}.")

    previous = order.status
    order.status = status
    order.save(update_fields=["status", "updated_at"])

    add_history_note(order, OrderEvent.Type.STATUS_CHANGED, f"{previous} -> {status}")
    record_audit(
        action="order_status_changed",
        entity="order",
        entity_id=order.pk,
        meta={"from": previous, "to": status},
        actor=actor,
    )
    send_status_update_email(order, status)
    return order


@transaction.atomic
def cancel_order(order_id, *, reason: str = "", actor=None) -> bool:
    """
    Explicit cancel of an unpaid order. Conditional update: a payment landing
    concurrently makes this a no-op. Returns True when the order was cancelled.
    """
    cancelled = Order.objects.filter(
        pk=order_id,
        status=Order.Status.PENDING,
        payment_status=Order.PaymentStatus.UNPAID,
    ).update(status=Order.Status.CANCELLED, updated_at=timezone.now())

    if not cancelled:
        return False

    order = Order.objects.get(pk=order_id)
    add_history_note(order, OrderEvent.Type.CANCELLED, reason or "cancelled")
    record_audit(action="order_cancelled", entity="order", entity_id=order_id, meta={"reason": reason}, actor=actor)
    return True


# =========================
# Stock commit
# =========================
@dataclass(frozen=True)
class StockCommitResult:
    attempted: bool
    success: bool = True
    failures: tuple[str, ...] = ()


def commit_stock_for_order(order: Order) -> StockCommitResult:
    """
    Deduct stock for the order exactly once.

    The stock_deducted_at marker is claimed with a conditional UPDATE in the
    same transaction as the per-line decrements: whoever flips it from NULL
    deducts, everyone else gets attempted=False. A shortfall does not undo the
    claim; it flags the order for manual review instead.
    """
    with transaction.atomic():
        now = timezone.now()
        claimed = Order.objects.filter(pk=order.pk, stock_deducted_at__isnull=True).update(
            stock_deducted_at=now, updated_at=now
        )
        if not claimed:
            return StockCommitResult(attempted=False)

        order.stock_deducted_at = now
        result = deduct_stock_for_items(order_id=order.pk, items=order.payload.items)

        if result.success:
            logger.info("stock committed order=%s", order.pk)
            return StockCommitResult(attempted=True)

        summary = result.failure_summary()
        order.manual_review = True
        order.ops_notes = append_ops_note(order.ops_notes, f"Stock shortfall after payment: {summary}")
        order.save(update_fields=["manual_review", "ops_notes", "updated_at"])

        add_history_note(order, OrderEvent.Type.STOCK_ISSUE, summary, failures=[f.product_id for f in result.failures])

    logger.warning("stock shortfall order=%s %s", order.pk, summary)
    record_audit(
        action="stock_deduction_failed",
        entity="order",
        entity_id=order.pk,
        meta={"failures": [f.describe() for f in result.failures]},
        severity=Severity.IMPORTANT,
    )
    emit_ops_event(OpsEventType.STOCK_ISSUE, order.pk, failures=[f.describe() for f in result.failures])
    emit_ops_event(OpsEventType.MANUAL_REVIEW_REQUIRED, order.pk, reason="stock_shortfall")

    return StockCommitResult(attempted=True, success=False, failures=tuple(f.describe() for f in result.failures))


# =========================
# Payment state
# =========================
def mark_order_paid(order: Order, *, payment_intent_id: str = "", session_id: str = "") -> bool:
    """
    Flip the order to paid. Must run inside a transaction with the order row
    locked (select_for_update). Returns True on the first transition to paid.

    Payment always wins: a cancelled order still becomes paid (status stays
    cancelled, flagged for review). A refunded order is left untouched.
    """
    if order.status == Order.Status.REFUNDED:
        logger.warning("payment confirmation ignored for refunded order=%s", order.pk)
        return False

    fields = ["updated_at"]

    if payment_intent_id and not order.payment_intent_id:
        order.payment_intent_id = payment_intent_id
        fields.append("payment_intent_id")
    if session_id and not order.stripe_session_id:
        order.stripe_session_id = session_id
        fields.append("stripe_session_id")

    newly_paid = order.payment_status != Order.PaymentStatus.PAID
    if newly_paid:
        order.payment_status = Order.PaymentStatus.PAID
        order.paid_at = timezone.now()
        fields += ["payment_status", "paid_at"]

    if order.status == Order.Status.PENDING:
        order.status = Order.Status.CONFIRMED
        fields.append("status")
    elif order.status == Order.Status.CANCELLED and newly_paid:
        order.manual_review = True
        order.ops_notes = append_ops_note(order.ops_notes, "Payment received for a cancelled order.")
        fields += ["manual_review", "ops_notes"]

    order.save(update_fields=fields)

    if newly_paid:
        add_history_note(order, OrderEvent.Type.PAID, f"intent={order.payment_intent_id or '-'}")
        if order.status == Order.Status.CANCELLED:
            record_audit(
                action="payment_after_cancel",
                entity="order",
                entity_id=order.pk,
                severity=Severity.IMPORTANT,
            )
            emit_ops_event(OpsEventType.MANUAL_REVIEW_REQUIRED, order.pk, reason="paid_after_cancel")

    return newly_paid


@transaction.atomic
def mark_payment_failed(order_id, *, reason: str = "") -> bool:
    """Only unpaid orders can fail; a late failure event never un-pays an order."""
    updated = (
        Order.objects.filter(pk=order_id)
        .exclude(payment_status=Order.PaymentStatus.PAID)
        .update(payment_status=Order.PaymentStatus.FAILED, updated_at=timezone.now())
    )
    if updated:
        logger.info("payment failed order=%s reason=%s", order_id, reason)
    return bool(updated)
