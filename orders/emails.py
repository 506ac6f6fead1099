# orders/emails.py
"""
Customer and fulfillment e-mails.

All senders are fire-and-forget: they are queued through core.tasks and log
failures instead of raising. Order state never depends on mail delivery.
"""

from __future__ import annotations

import logging

from django.conf import settings
from django.core.mail import send_mail

from core.tasks import submit, submit_on_commit

from .models import Order

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    Order.Status.CONFIRMED: "Your payment was received and your order is confirmed.",
    Order.Status.SHIPPED: "Your order is on its way.",
    Order.Status.DELIVERED: "Your order has been delivered. Enjoy!",
    Order.Status.CANCELLED: "Your order has been cancelled.",
    Order.Status.REFUNDED: "Your order has been refunded.",
}


def _money(cents: int, currency: str) -> str:
    return f"{int(cents or 0) / 100:,.2f} {(currency or '').upper()}"


def _item_lines(order: Order) -> list[str]:
    try:
        payload = order.payload
    except Exception:
        logger.exception("cannot decode items for e-mail order=%s", order.pk)
        return []

    lines = []
    for item in payload.items:
        size = f" ({item.size})" if item.size else ""
        lines.append(f"- {item.quantity}x {item.name or item.product_id}{size}: {_money(item.line_total_cents, order.currency)}")
    return lines


def _deliver(subject: str, body: str, recipients: list[str]) -> None:
    recipients = [r for r in recipients if r]
    if not recipients:
        return
    send_mail(subject, body, getattr(settings, "DEFAULT_FROM_EMAIL", None), recipients)


def _load(order_id) -> Order | None:
    order = Order.objects.filter(pk=order_id).first()
    if order is None:
        logger.warning("e-mail skipped, order missing order=%s", order_id)
    return order


def _send_order_confirmation(order_id) -> None:
    order = _load(order_id)
    if order is None:
        return

    lines: list[str] = []
    lines.append(f"Hi {order.customer_name},")
    lines.append("")
    lines.append(STATUS_MESSAGES[Order.Status.CONFIRMED])
    lines.append("")
    lines.extend(_item_lines(order))
    lines.append("")
    lines.append(f"Total: {_money(order.total_cents, order.currency)}")
    lines.append("")
    lines.append(
        f"You may withdraw from the purchase until {order.withdrawal_deadline:%d.%m.%Y} (14 days from ordering)."
    )

    _deliver(f"Order {order.pk} confirmed", "\n".join(lines), [order.customer_email])


def _send_status_update(order_id, status: str) -> None:
    order = _load(order_id)
    if order is None:
        return

    message = STATUS_MESSAGES.get(status)
    if not message:
        return

    body = "\n".join([f"Hi {order.customer_name},", "", message, "", f"Order: {order.pk}"])
    _deliver(f"Order {order.pk}: {Order.Status(status).label}", body, [order.customer_email])


def _send_fulfillment_notification(order_id) -> None:
    order = _load(order_id)
    if order is None:
        return

    lines = [f"New paid order {order.pk}", ""]
    lines.append(f"Customer: {order.customer_name} <{order.customer_email}> {order.customer_phone}")
    lines.append(f"Ship to: {order.customer_address}, {order.customer_zip} {order.customer_city}")
    lines.append(f"Payment: {order.payment_method}")
    lines.append("")
    lines.extend(_item_lines(order))
    lines.append("")
    lines.append(f"Total: {_money(order.total_cents, order.currency)}")
    if order.manual_review:
        lines.append("")
        lines.append("MANUAL REVIEW REQUIRED:")
        lines.append(order.ops_notes)

    _deliver(f"[fulfillment] order {order.pk}", "\n".join(lines), list(getattr(settings, "FULFILLMENT_EMAIL_TO", []) or []))


def send_order_confirmation_email(order: Order, *, on_commit: bool = True) -> None:
    queue = submit_on_commit if on_commit else submit
    queue(_send_order_confirmation, order.pk, label="email:order_confirmation")


def send_status_update_email(order: Order, status: str, *, on_commit: bool = True) -> None:
    queue = submit_on_commit if on_commit else submit
    queue(_send_status_update, order.pk, status, label=f"email:status:{status}")


def send_fulfillment_notification(order: Order, *, on_commit: bool = True) -> None:
    queue = submit_on_commit if on_commit else submit
    queue(_send_fulfillment_notification, order.pk, label="email:fulfillment")
