# orders/serializers.py
"""JSON shapes for orders (customer endpoints and the ops surface)."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from django.core.exceptions import ValidationError

from .models import Order


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def order_summary(order: Order) -> dict[str, Any]:
    return {
        "id": str(order.pk),
        "status": order.status,
        "paymentStatus": order.payment_status,
        "paymentMethod": order.payment_method,
        "totalCents": order.total_cents,
        "currency": order.currency,
        "customerName": order.customer_name,
        "customerEmail": order.customer_email,
        "manualReview": order.manual_review,
        "stockDeductedAt": _iso(order.stock_deducted_at),
        "paidAt": _iso(order.paid_at),
        "createdAt": _iso(order.created_at),
    }


def order_detail(order: Order) -> dict[str, Any]:
    data = order_summary(order)
    data.update(
        {
            "customerPhone": order.customer_phone,
            "customerAddress": order.customer_address,
            "customerCity": order.customer_city,
            "customerZip": order.customer_zip,
            "customerCountry": order.customer_country,
            "paymentIntentId": order.payment_intent_id,
            "stripeSessionId": order.stripe_session_id,
            "opsNotes": order.ops_notes,
            "refundAmountCents": order.refund_amount_cents,
            "refundReason": order.refund_reason,
            "withdrawalDeadline": _iso(order.withdrawal_deadline),
            "updatedAt": _iso(order.updated_at),
        }
    )

    try:
        payload = order.payload
    except ValidationError as exc:
        data["items"] = None
        data["itemsError"] = "; ".join(exc.messages)
        return data

    data["items"] = [dict(asdict(item), lineTotalCents=item.line_total_cents) for item in payload.items]
    data["itemsVersion"] = payload.source_version
    data["shipping"] = asdict(payload.shipping)
    data["totals"] = {
        "itemsCents": payload.items_total_cents,
        "subtotalCents": payload.totals.subtotal_cents,
        "shippingCents": payload.totals.shipping_cents,
        "codCents": payload.totals.cod_cents,
        "totalCents": order.total_cents,
    }
    return data
