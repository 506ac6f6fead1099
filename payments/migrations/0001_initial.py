from __future__ import annotations

import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("orders", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Partner",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=32, unique=True)),
                ("display_name", models.CharField(max_length=120)),
                (
                    "kind",
                    models.CharField(choices=[("person", "Person"), ("fund", "Fund")], default="person", max_length=16),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"ordering": ("code",)},
        ),
        migrations.CreateModel(
            name="PayoutRule",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("partner_code", models.CharField(db_index=True, max_length=32)),
                (
                    "percent",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=5,
                        validators=[
                            django.core.validators.MinValueValidator(Decimal("0")),
                            django.core.validators.MaxValueValidator(Decimal("100")),
                        ],
                    ),
                ),
                ("valid_from", models.DateTimeField(default=django.utils.timezone.now)),
                ("priority", models.PositiveIntegerField(default=100)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ("-valid_from", "priority"),
                "indexes": [models.Index(fields=["partner_code", "-valid_from"], name="payoutrule_partner_from_idx")],
            },
        ),
        migrations.CreateModel(
            name="LedgerEntry",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("sale", "Sale"),
                            ("refund", "Refund"),
                            ("chargeback", "Chargeback"),
                            ("chargeback_fee", "Chargeback fee"),
                        ],
                        max_length=32,
                    ),
                ),
                ("direction", models.CharField(choices=[("in", "In"), ("out", "Out")], max_length=8)),
                (
                    "amount_cents",
                    models.IntegerField(help_text="Signed cents. Negative for money leaving the business."),
                ),
                ("currency", models.CharField(default="czk", max_length=8)),
                ("meta", models.JSONField(blank=True, default=dict)),
                ("dedupe_key", models.CharField(max_length=255, unique=True)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ledger_entries",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "ledger entries",
                "ordering": ("-created_at",),
                "indexes": [
                    models.Index(fields=["order", "-created_at"], name="ledger_order_created_idx"),
                    models.Index(fields=["type", "-created_at"], name="ledger_type_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderPayout",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("partner_code", models.CharField(max_length=32)),
                ("amount_cents", models.IntegerField()),
                ("currency", models.CharField(default="czk", max_length=8)),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("paid", "Paid"), ("cancelled", "Cancelled")],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payouts",
                        to="orders.order",
                    ),
                ),
                (
                    "rule",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payouts",
                        to="payments.payoutrule",
                    ),
                ),
            ],
            options={
                "ordering": ("-created_at",),
                "indexes": [
                    models.Index(fields=["order", "status"], name="payout_order_status_idx"),
                    models.Index(fields=["partner_code", "status"], name="payout_partner_status_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("order", "partner_code"), name="uniq_order_payout_partner"),
                ],
            },
        ),
    ]
