from __future__ import annotations

import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("customer_name", models.CharField(max_length=255)),
                ("customer_email", models.EmailField(max_length=254)),
                ("customer_phone", models.CharField(blank=True, default="", max_length=64)),
                ("customer_address", models.CharField(blank=True, default="", max_length=255)),
                ("customer_city", models.CharField(blank=True, default="", max_length=120)),
                ("customer_zip", models.CharField(blank=True, default="", max_length=32)),
                ("customer_country", models.CharField(blank=True, default="CZ", max_length=2)),
                ("items", models.JSONField(default=dict)),
                ("currency", models.CharField(default="czk", max_length=8)),
                ("total_cents", models.PositiveIntegerField(default=0)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("confirmed", "Confirmed"),
                            ("shipped", "Shipped"),
                            ("delivered", "Delivered"),
                            ("cancelled", "Cancelled"),
                            ("refunded", "Refunded"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[("unpaid", "Unpaid"), ("paid", "Paid"), ("failed", "Failed"), ("cancelled", "Cancelled")],
                        default="unpaid",
                        max_length=16,
                    ),
                ),
                (
                    "payment_method",
                    models.CharField(
                        choices=[("card", "Card (Stripe)"), ("cod", "Cash on delivery"), ("bank", "Bank transfer")],
                        default="card",
                        max_length=16,
                    ),
                ),
                ("stripe_session_id", models.CharField(blank=True, db_index=True, default="", max_length=255)),
                ("payment_intent_id", models.CharField(blank=True, db_index=True, default="", max_length=255)),
                ("stock_deducted_at", models.DateTimeField(blank=True, null=True)),
                ("manual_review", models.BooleanField(default=False)),
                ("ops_notes", models.TextField(blank=True, default="")),
                ("refund_amount_cents", models.PositiveIntegerField(blank=True, null=True)),
                ("refund_reason", models.TextField(blank=True, default="")),
                ("paid_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "buyer",
                    models.ForeignKey(
                        blank=True,
                        help_text="Registered buyer. Null means guest checkout.",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["-created_at"], name="order_created_idx"),
                    models.Index(fields=["status", "-created_at"], name="order_status_created_idx"),
                    models.Index(fields=["payment_status", "-created_at"], name="order_paystatus_created_idx"),
                    models.Index(fields=["buyer", "-created_at"], name="order_buyer_created_idx"),
                    models.Index(fields=["manual_review", "-created_at"], name="order_review_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderEvent",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("provider", models.CharField(blank=True, default="", max_length=32)),
                ("provider_event_id", models.CharField(blank=True, default="", max_length=255)),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("created", "Created"),
                            ("checkout_completed", "Checkout completed"),
                            ("payment_succeeded", "Payment succeeded"),
                            ("payment_verified", "Payment verified by client poll"),
                            ("payment_finalized", "Payment finalized"),
                            ("payment_failed", "Payment failed"),
                            ("paid", "Paid"),
                            ("stock_issue", "Stock issue"),
                            ("status_changed", "Status changed"),
                            ("cancelled", "Cancelled"),
                            ("refund", "Refund"),
                            ("chargeback", "Chargeback"),
                            ("warning", "Warning"),
                        ],
                        max_length=64,
                    ),
                ),
                ("message", models.TextField(blank=True, default="")),
                ("payload", models.JSONField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="events",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["order", "-created_at"], name="orderevent_order_created_idx")],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("provider_event_id", ""), _negated=True),
                        fields=("provider", "provider_event_id"),
                        name="uniq_order_event_provider_event",
                    )
                ],
            },
        ),
    ]
