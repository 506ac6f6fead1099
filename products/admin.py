# products/admin.py
from __future__ import annotations

from django.contrib import admin

from .models import Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "name",
        "category",
        "price_cents",
        "stock",
        "is_active",
        "updated_at",
    )
    list_filter = ("is_active", "category")
    search_fields = ("id", "name")
    ordering = ("name",)
    readonly_fields = ("created_at", "updated_at")
