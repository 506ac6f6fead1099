# payments/exports.py
"""
Read-only accounting exports. Newest rows first; customer e-mails masked.
"""

from __future__ import annotations

import csv
import json

from django.core.serializers.json import DjangoJSONEncoder
from django.http import HttpResponse
from django.utils import timezone

from orders.models import Order

from .models import LedgerEntry, OrderPayout


def mask_sensitive(value: str | None) -> str:
    if not value:
        return ""
    if len(value) <= 4:
        return "****"
    return f"{value[:2]}...{value[-2:]}"


def _iso(value) -> str:
    return value.isoformat() if value else ""


def _money(cents: int | None) -> str:
    if cents is None:
        return ""
    return f"{int(cents) / 100:.2f}"


def _csv_response(name: str):
    stamp = timezone.now().strftime("%Y%m%d-%H%M")
    response = HttpResponse(content_type="text/csv; charset=utf-8")
    response["Content-Disposition"] = f'attachment; filename="{name}-{stamp}.csv"'
    return response, csv.writer(response)


def export_ledger_csv() -> HttpResponse:
    response, writer = _csv_response("ledger")
    writer.writerow(["createdAt", "orderId", "type", "direction", "amount", "currency", "dedupeKey", "meta"])

    for e in LedgerEntry.objects.order_by("-created_at").iterator():
        writer.writerow(
            [
                _iso(e.created_at),
                str(e.order_id or ""),
                e.type,
                e.direction,
                _money(e.amount_cents),
                e.currency.upper(),
                e.dedupe_key,
                json.dumps(e.meta, cls=DjangoJSONEncoder) if e.meta else "",
            ]
        )
    return response


def export_orders_csv() -> HttpResponse:
    response, writer = _csv_response("orders")
    writer.writerow(
        [
            "id",
            "createdAt",
            "status",
            "paymentStatus",
            "total",
            "currency",
            "paymentMethod",
            "manualReview",
            "refundAmount",
            "customerEmailMasked",
        ]
    )

    for o in Order.objects.order_by("-created_at").iterator():
        writer.writerow(
            [
                str(o.pk),
                _iso(o.created_at),
                o.status,
                o.payment_status,
                _money(o.total_cents),
                o.currency.upper(),
                o.payment_method,
                "yes" if o.manual_review else "no",
                _money(o.refund_amount_cents),
                mask_sensitive(o.customer_email),
            ]
        )
    return response


def export_payouts_csv() -> HttpResponse:
    response, writer = _csv_response("payouts")
    writer.writerow(["orderId", "partnerCode", "amount", "currency", "status", "createdAt", "paidAt"])

    for p in OrderPayout.objects.order_by("-created_at").iterator():
        writer.writerow(
            [
                str(p.order_id),
                p.partner_code,
                _money(p.amount_cents),
                p.currency.upper(),
                p.status,
                _iso(p.created_at),
                _iso(p.paid_at),
            ]
        )
    return response
