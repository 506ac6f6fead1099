# payments/models.py
from __future__ import annotations

import uuid
from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone


class LedgerEntry(models.Model):
    """
    Append-only ledger of money movements.

    amount_cents is signed:
      > 0  => money in (sale)
      < 0  => money out (refund, chargeback, chargeback fee)

    dedupe_key is unique at the database level and is the idempotency
    boundary for every financial insert (see payments.ledger).
    """

    class Type(models.TextChoices):
        SALE = "sale", "Sale"
        REFUND = "refund", "Refund"
        CHARGEBACK = "chargeback", "Chargeback"
        CHARGEBACK_FEE = "chargeback_fee", "Chargeback fee"

    class Direction(models.TextChoices):
        IN = "in", "In"
        OUT = "out", "Out"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order = models.ForeignKey(
        "orders.Order",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="ledger_entries",
    )

    type = models.CharField(max_length=32, choices=Type.choices)
    direction = models.CharField(max_length=8, choices=Direction.choices)
    amount_cents = models.IntegerField(help_text="Signed cents. Negative for money leaving the business.")
    currency = models.CharField(max_length=8, default="czk")
    meta = models.JSONField(default=dict, blank=True)

    dedupe_key = models.CharField(max_length=255, unique=True)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ("-created_at",)
        verbose_name_plural = "ledger entries"
        indexes = [
            models.Index(fields=["order", "-created_at"], name="ledger_order_created_idx"),
            models.Index(fields=["type", "-created_at"], name="ledger_type_created_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.type} {self.amount_cents} {self.currency} [{self.dedupe_key}]"

    def save(self, *args, **kwargs) -> None:
        if not self._state.adding:
            raise ValueError("Ledger entries are append-only.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Ledger entries are append-only.")


class Partner(models.Model):
    class Kind(models.TextChoices):
        PERSON = "person", "Person"
        FUND = "fund", "Fund"

    code = models.CharField(max_length=32, unique=True)
    display_name = models.CharField(max_length=120)
    kind = models.CharField(max_length=16, choices=Kind.choices, default=Kind.PERSON)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("code",)

    def __str__(self) -> str:
        return f"{self.code} ({self.display_name})"


class PayoutRule(models.Model):
    """
    Time-versioned revenue share. Rules are appended, never rewritten: the
    rule with the latest valid_from (then lowest priority) governs a partner.
    """

    partner_code = models.CharField(max_length=32, db_index=True)
    percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("100"))],
    )
    valid_from = models.DateTimeField(default=timezone.now)
    priority = models.PositiveIntegerField(default=100)
    notes = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-valid_from", "priority")
        indexes = [models.Index(fields=["partner_code", "-valid_from"], name="payoutrule_partner_from_idx")]

    def __str__(self) -> str:
        return f"{self.partner_code} {self.percent}% from {self.valid_from:%Y-%m-%d}"


class OrderPayout(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"
        CANCELLED = "cancelled", "Cancelled"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order = models.ForeignKey("orders.Order", on_delete=models.PROTECT, related_name="payouts")
    partner_code = models.CharField(max_length=32)
    rule = models.ForeignKey(PayoutRule, null=True, blank=True, on_delete=models.SET_NULL, related_name="payouts")

    amount_cents = models.IntegerField()
    currency = models.CharField(max_length=8, default="czk")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)

    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=["order", "status"], name="payout_order_status_idx"),
            models.Index(fields=["partner_code", "status"], name="payout_partner_status_idx"),
        ]
        constraints = [
            models.UniqueConstraint(fields=["order", "partner_code"], name="uniq_order_payout_partner"),
        ]

    def __str__(self) -> str:
        return f"{self.partner_code}: {self.amount_cents} {self.currency} ({self.status})"
