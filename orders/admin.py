# orders/admin.py

from __future__ import annotations

from django.contrib import admin, messages
from django.core.exceptions import ValidationError
from django.db.models import Exists, OuterRef
from django.utils.html import format_html_join

from payments.models import LedgerEntry

from .models import Order, OrderEvent
from .services import update_order_status


# =========================
# Helpers
# =========================
def cents_to_money(cents: int | None, currency: str = "czk") -> str:
    if cents is None:
        cents = 0
    try:
        amount = int(cents) / 100.0
    except (TypeError, ValueError):
        amount = 0.0
    return f"{amount:,.2f} {(currency or 'czk').upper()}"


# =========================
# Admin Filters
# =========================
class StockStateFilter(admin.SimpleListFilter):
    title = "stock"
    parameter_name = "stock_state"

    def lookups(self, request, model_admin):
        return (("committed", "Committed"), ("not_committed", "Not committed"))

    def queryset(self, request, queryset):
        val = self.value()
        if val == "committed":
            return queryset.filter(stock_deducted_at__isnull=False)
        if val == "not_committed":
            return queryset.filter(stock_deducted_at__isnull=True)
        return queryset


class ReconciliationFilter(admin.SimpleListFilter):
    """Paid orders without a sale row, or sale rows on unpaid orders."""

    title = "reconciliation"
    parameter_name = "recon"

    def lookups(self, request, model_admin):
        return (
            ("paid_missing_sale", "Paid, missing sale ledger row"),
            ("sale_not_paid", "Sale ledger row, not paid"),
        )

    def queryset(self, request, queryset):
        val = self.value()
        has_sale = Exists(LedgerEntry.objects.filter(order=OuterRef("pk"), type=LedgerEntry.Type.SALE))
        if val == "paid_missing_sale":
            return queryset.filter(payment_status=Order.PaymentStatus.PAID).filter(~has_sale)
        if val == "sale_not_paid":
            return queryset.exclude(payment_status=Order.PaymentStatus.PAID).filter(has_sale)
        return queryset


# =========================
# Inlines
# =========================
class OrderEventInline(admin.TabularInline):
    model = OrderEvent
    extra = 0
    can_delete = False
    fields = ("created_at", "type", "provider", "provider_event_id", "message")
    readonly_fields = fields
    ordering = ("-created_at",)


# =========================
# Order Admin
# =========================
@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    date_hierarchy = "created_at"
    inlines = [OrderEventInline]
    list_select_related = ("buyer",)

    list_display = (
        "id",
        "status",
        "payment_status",
        "payment_method",
        "customer_email",
        "total_money",
        "manual_review",
        "stock_deducted_at",
        "paid_at",
        "created_at",
    )
    list_filter = (
        "status",
        "payment_status",
        "payment_method",
        "manual_review",
        StockStateFilter,
        ReconciliationFilter,
        "created_at",
    )
    search_fields = (
        "id",
        "customer_email",
        "customer_name",
        "stripe_session_id",
        "payment_intent_id",
    )
    raw_id_fields = ("buyer",)

    readonly_fields = (
        "id",
        "items",
        "items_table",
        "total_cents",
        "currency",
        "payment_status",
        "payment_intent_id",
        "stripe_session_id",
        "stock_deducted_at",
        "paid_at",
        "refund_amount_cents",
        "refund_reason",
        "created_at",
        "updated_at",
    )

    fieldsets = (
        ("Identity", {"fields": ("id", "status", "payment_status", "payment_method", "buyer")}),
        (
            "Customer",
            {
                "fields": (
                    "customer_name",
                    "customer_email",
                    "customer_phone",
                    "customer_address",
                    "customer_city",
                    "customer_zip",
                    "customer_country",
                )
            },
        ),
        ("Items", {"fields": ("items_table", "items", "total_cents", "currency")}),
        ("Stripe", {"fields": ("stripe_session_id", "payment_intent_id", "paid_at")}),
        ("Operations", {"fields": ("stock_deducted_at", "manual_review", "ops_notes")}),
        ("Refund", {"fields": ("refund_amount_cents", "refund_reason")}),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )

    actions = ["mark_shipped", "mark_delivered", "clear_manual_review"]

    def has_delete_permission(self, request, obj=None):
        return False

    def get_readonly_fields(self, request, obj=None):
        # Status changes go through the actions so e-mails and history are written.
        return self.readonly_fields + ("status",) if obj else self.readonly_fields

    @admin.display(description="Total", ordering="total_cents")
    def total_money(self, obj: Order) -> str:
        return cents_to_money(obj.total_cents, obj.currency)

    @admin.display(description="Line items")
    def items_table(self, obj: Order):
        try:
            lines = obj.payload.items
        except ValidationError as exc:
            return f"Unreadable items payload: {'; '.join(exc.messages)}"
        return format_html_join(
            "",
            "<div>{} &times; {} {} &mdash; {}</div>",
            (
                (line.quantity, line.name or line.product_id, f"({line.size})" if line.size else "", cents_to_money(line.line_total_cents, obj.currency))
                for line in lines
            ),
        )

    def _apply_status(self, request, queryset, status: str) -> None:
        done = 0
        for order in queryset:
            try:
                update_order_status(order, status, actor=request.user)
                done += 1
            except ValidationError as exc:
                self.message_user(request, f"{order.pk}: {'; '.join(exc.messages)}", level=messages.WARNING)
        if done:
            self.message_user(request, f"Marked {done} order(s) {status}.", level=messages.SUCCESS)

    @admin.action(description="Mark shipped (sends customer e-mail)")
    def mark_shipped(self, request, queryset):
        self._apply_status(request, queryset, Order.Status.SHIPPED)

    @admin.action(description="Mark delivered (sends customer e-mail)")
    def mark_delivered(self, request, queryset):
        self._apply_status(request, queryset, Order.Status.DELIVERED)

    @admin.action(description="Clear manual review flag")
    def clear_manual_review(self, request, queryset):
        updated = queryset.filter(manual_review=True).update(manual_review=False)
        self.message_user(request, f"Cleared manual review on {updated} order(s).", level=messages.INFO)


@admin.register(OrderEvent)
class OrderEventAdmin(admin.ModelAdmin):
    list_display = ("created_at", "order", "type", "provider", "provider_event_id", "message")
    list_filter = ("type", "provider", "created_at")
    search_fields = ("order__id", "provider_event_id", "message")
    readonly_fields = ("id", "order", "provider", "provider_event_id", "type", "message", "payload", "created_at")

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
