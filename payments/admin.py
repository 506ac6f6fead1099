# payments/admin.py

from __future__ import annotations

from django.contrib import admin, messages
from django.db.models import Sum

from .models import LedgerEntry, OrderPayout, Partner, PayoutRule
from .payouts import mark_payouts_paid


def _money(cents: int | None, currency: str = "czk") -> str:
    return f"{int(cents or 0) / 100:,.2f} {(currency or 'czk').upper()}"


@admin.register(LedgerEntry)
class LedgerEntryAdmin(admin.ModelAdmin):
    list_display = (
        "created_at",
        "order",
        "type",
        "direction",
        "amount",
        "dedupe_key",
    )
    list_filter = ("type", "direction", "created_at")
    search_fields = ("order__id", "dedupe_key")
    readonly_fields = (
        "id",
        "order",
        "type",
        "direction",
        "amount_cents",
        "currency",
        "meta",
        "dedupe_key",
        "created_at",
    )

    @admin.display(description="Amount", ordering="amount_cents")
    def amount(self, obj: LedgerEntry) -> str:
        return _money(obj.amount_cents, obj.currency)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Partner)
class PartnerAdmin(admin.ModelAdmin):
    list_display = ("code", "display_name", "kind", "is_active", "pending_total")
    list_filter = ("kind", "is_active")
    search_fields = ("code", "display_name")

    def pending_total(self, obj: Partner) -> str:
        total = (
            OrderPayout.objects.filter(partner_code=obj.code, status=OrderPayout.Status.PENDING)
            .aggregate(total=Sum("amount_cents"))
            .get("total")
            or 0
        )
        return _money(total)

    pending_total.short_description = "Pending payouts"


@admin.register(PayoutRule)
class PayoutRuleAdmin(admin.ModelAdmin):
    list_display = ("partner_code", "percent", "valid_from", "priority", "notes")
    list_filter = ("partner_code",)
    ordering = ("-valid_from", "priority")

    def get_readonly_fields(self, request, obj=None):
        # Rules are versioned: add a new one instead of editing history.
        if obj:
            return ("partner_code", "percent", "valid_from", "priority")
        return ()


@admin.register(OrderPayout)
class OrderPayoutAdmin(admin.ModelAdmin):
    list_display = ("created_at", "order", "partner_code", "amount", "status", "paid_at")
    list_filter = ("status", "partner_code", "created_at")
    search_fields = ("order__id", "partner_code")
    readonly_fields = ("id", "order", "partner_code", "rule", "amount_cents", "currency", "status", "paid_at", "created_at")
    actions = ["mark_paid"]

    @admin.display(description="Amount", ordering="amount_cents")
    def amount(self, obj: OrderPayout) -> str:
        return _money(obj.amount_cents, obj.currency)

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.action(description="Mark selected pending payouts as paid")
    def mark_paid(self, request, queryset):
        updated = mark_payouts_paid(queryset.values_list("pk", flat=True))
        self.message_user(request, f"Marked {updated} payout(s) paid.", level=messages.SUCCESS)
