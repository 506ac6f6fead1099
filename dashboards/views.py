# dashboards/views.py

from __future__ import annotations

from django.db.models import Count, Q
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET

from orders.models import Order
from orders.serializers import order_detail, order_summary
from orders.services import get_order, list_orders
from payments.exports import export_ledger_csv, export_orders_csv, export_payouts_csv

from .decorators import export_token_required, ops_token_required

ORDER_SORTS = ("createdAt_desc", "createdAt_asc", "total_desc")


def _bool_param(raw: str | None):
    if raw is None or raw == "":
        return None
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _int_param(raw: str | None, default: int) -> int:
    try:
        return int(raw) if raw not in (None, "") else default
    except (TypeError, ValueError):
        return default


def _counts(field: str) -> dict[str, int]:
    rows = Order.objects.values(field).annotate(n=Count("pk")).order_by()
    return {row[field]: row["n"] for row in rows}


@require_GET
@ops_token_required
def ops_summary(request):
    totals = Order.objects.aggregate(
        total=Count("pk"),
        stock_committed=Count("pk", filter=Q(stock_deducted_at__isnull=False)),
        manual_review=Count("pk", filter=Q(manual_review=True)),
    )
    return JsonResponse(
        {
            "generatedAt": timezone.now().isoformat(),
            "orders": totals["total"],
            "byStatus": _counts("status"),
            "byPaymentStatus": _counts("payment_status"),
            "byPaymentMethod": _counts("payment_method"),
            "stockCommitted": totals["stock_committed"],
            "manualReview": totals["manual_review"],
        }
    )


@require_GET
@ops_token_required
def ops_orders(request):
    sort = request.GET.get("sort") or "createdAt_desc"
    if sort not in ORDER_SORTS:
        return JsonResponse({"error": f"sort must be one of {', '.join(ORDER_SORTS)}"}, status=400)

    limit = max(1, min(200, _int_param(request.GET.get("limit"), 50)))
    offset = max(0, _int_param(request.GET.get("offset"), 0))

    page, total = list_orders(
        status=request.GET.get("status", ""),
        payment_status=request.GET.get("paymentStatus", ""),
        payment_method=request.GET.get("paymentMethod", ""),
        has_stock_deducted=_bool_param(request.GET.get("hasStockDeducted")),
        manual_review=_bool_param(request.GET.get("manualReview")),
        q=request.GET.get("q", ""),
        sort=sort,
        limit=limit,
        offset=offset,
    )
    return JsonResponse(
        {
            "total": total,
            "limit": limit,
            "offset": offset,
            "orders": [order_summary(o) for o in page],
        }
    )


@require_GET
@ops_token_required
def ops_order_detail(request, order_id):
    order = get_order(order_id)
    if order is None:
        return JsonResponse({"error": "order not found"}, status=404)

    data = order_detail(order)
    data["events"] = [
        {
            "type": e.type,
            "provider": e.provider,
            "providerEventId": e.provider_event_id,
            "message": e.message,
            "createdAt": e.created_at.isoformat(),
        }
        for e in order.events.order_by("-created_at")[:50]
    ]
    return JsonResponse(data)


@require_GET
@export_token_required
def export_ledger(request):
    return export_ledger_csv()


@require_GET
@export_token_required
def export_orders(request):
    return export_orders_csv()


@require_GET
@export_token_required
def export_payouts(request):
    return export_payouts_csv()
