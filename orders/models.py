# orders/models.py

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from .items import OrderItemsPayload, decode_order_items

WITHDRAWAL_PERIOD_DAYS = 14


def withdrawal_deadline(created_at: datetime) -> datetime:
    """EU 14-day withdrawal deadline. Informational only; refunds do not enforce it."""
    return created_at + timedelta(days=WITHDRAWAL_PERIOD_DAYS)


def is_within_withdrawal_period(created_at: datetime, now: datetime | None = None) -> bool:
    return (now or timezone.now()) <= withdrawal_deadline(created_at)


class Order(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        CONFIRMED = "confirmed", "Confirmed"
        SHIPPED = "shipped", "Shipped"
        DELIVERED = "delivered", "Delivered"
        CANCELLED = "cancelled", "Cancelled"
        REFUNDED = "refunded", "Refunded"

    class PaymentStatus(models.TextChoices):
        UNPAID = "unpaid", "Unpaid"
        PAID = "paid", "Paid"
        FAILED = "failed", "Failed"
        CANCELLED = "cancelled", "Cancelled"

    class PaymentMethod(models.TextChoices):
        CARD = "card", "Card (Stripe)"
        COD = "cod", "Cash on delivery"
        BANK = "bank", "Bank transfer"

    TERMINAL_STATUSES = (Status.CANCELLED, Status.REFUNDED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="orders",
        help_text="Registered buyer. Null means guest checkout.",
    )

    customer_name = models.CharField(max_length=255)
    customer_email = models.EmailField()
    customer_phone = models.CharField(max_length=64, blank=True, default="")
    customer_address = models.CharField(max_length=255, blank=True, default="")
    customer_city = models.CharField(max_length=120, blank=True, default="")
    customer_zip = models.CharField(max_length=32, blank=True, default="")
    customer_country = models.CharField(max_length=2, blank=True, default="CZ")

    # Versioned JSON payload, see orders.items. Read via .payload.
    items = models.JSONField(default=dict)

    currency = models.CharField(max_length=8, default="czk")
    total_cents = models.PositiveIntegerField(default=0)

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    payment_status = models.CharField(max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.UNPAID)
    payment_method = models.CharField(max_length=16, choices=PaymentMethod.choices, default=PaymentMethod.CARD)

    stripe_session_id = models.CharField(max_length=255, blank=True, default="", db_index=True)
    payment_intent_id = models.CharField(max_length=255, blank=True, default="", db_index=True)

    # Set once, never cleared: stock has been committed for this order.
    stock_deducted_at = models.DateTimeField(null=True, blank=True)

    manual_review = models.BooleanField(default=False)
    ops_notes = models.TextField(blank=True, default="")

    refund_amount_cents = models.PositiveIntegerField(null=True, blank=True)
    refund_reason = models.TextField(blank=True, default="")

    paid_at = models.DateTimeField(null=True, blank=True, db_index=True)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["-created_at"], name="order_created_idx"),
            models.Index(fields=["status", "-created_at"], name="order_status_created_idx"),
            models.Index(fields=["payment_status", "-created_at"], name="order_paystatus_created_idx"),
            models.Index(fields=["buyer", "-created_at"], name="order_buyer_created_idx"),
            models.Index(fields=["manual_review", "-created_at"], name="order_review_created_idx"),
        ]

    def __str__(self) -> str:
        return f"Order {self.pk} ({self.status}/{self.payment_status})"

    @property
    def payload(self) -> OrderItemsPayload:
        return decode_order_items(self.items)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == self.PaymentStatus.PAID

    @property
    def withdrawal_deadline(self) -> datetime:
        return withdrawal_deadline(self.created_at)


class OrderEvent(models.Model):
    """
    Order history and the provider event log.

    Rows with a provider_event_id are externally sourced (webhook deliveries,
    verification polls, manual refunds) and are unique per (provider,
    provider_event_id); inserting one twice is a no-op (see orders.events).
    Rows without one are internal history notes.
    """

    class Type(models.TextChoices):
        CREATED = "created", "Created"
        CHECKOUT_COMPLETED = "checkout_completed", "Checkout completed"
        PAYMENT_SUCCEEDED = "payment_succeeded", "Payment succeeded"
        PAYMENT_VERIFIED = "payment_verified", "Payment verified by client poll"
        PAYMENT_FINALIZED = "payment_finalized", "Payment finalized"
        PAYMENT_FAILED = "payment_failed", "Payment failed"
        PAID = "paid", "Paid"
        STOCK_ISSUE = "stock_issue", "Stock issue"
        STATUS_CHANGED = "status_changed", "Status changed"
        CANCELLED = "cancelled", "Cancelled"
        REFUND = "refund", "Refund"
        CHARGEBACK = "chargeback", "Chargeback"
        WARNING = "warning", "Warning"

    class Provider:
        STRIPE = "stripe"
        MANUAL = "manual"
        SYSTEM = ""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="events", null=True, blank=True)

    provider = models.CharField(max_length=32, blank=True, default="")
    provider_event_id = models.CharField(max_length=255, blank=True, default="")

    type = models.CharField(max_length=64, choices=Type.choices)
    message = models.TextField(blank=True, default="")
    payload = models.JSONField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [models.Index(fields=["order", "-created_at"], name="orderevent_order_created_idx")]
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "provider_event_id"],
                condition=~Q(provider_event_id=""),
                name="uniq_order_event_provider_event",
            )
        ]

    def __str__(self) -> str:
        ref = f" {self.provider}:{self.provider_event_id}" if self.provider_event_id else ""
        return f"{self.type}{ref} ({self.created_at:%Y-%m-%d %H:%M})"
