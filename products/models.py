# products/models.py

from __future__ import annotations

from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q


class Product(models.Model):
    """
    Sellable merch item.

    `stock` is only ever decremented through products.inventory (a single
    conditional UPDATE per line). Do not assign it from order code.
    """

    id = models.CharField(primary_key=True, max_length=64)

    name = models.CharField(max_length=160)
    category = models.CharField(max_length=64, blank=True, default="", db_index=True)
    description = models.TextField(blank=True, default="")

    price_cents = models.PositiveIntegerField(default=0, validators=[MinValueValidator(0)])
    sizes = models.JSONField(default=list, blank=True, help_text='e.g. ["S", "M", "L"]')

    stock = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("name",)
        constraints = [
            models.CheckConstraint(condition=Q(stock__gte=0), name="product_stock_non_negative"),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.pk})"
