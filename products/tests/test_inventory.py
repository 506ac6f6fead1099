# products/tests/test_inventory.py

from __future__ import annotations

from django.db import connection
from django.test import TestCase
from django.test.utils import CaptureQueriesContext

from orders.tests.factories import make_payload, make_product
from products.inventory import deduct_stock_for_items, find_stock_shortfalls
from products.models import Product


def _stock(pk: str) -> int:
    return Product.objects.get(pk=pk).stock


class DeductStockTests(TestCase):
    def test_each_line_is_one_conditional_update(self):
        make_product("tee-black", stock=5)
        items = make_payload([("tee-black", 2, 50000)]).items

        with CaptureQueriesContext(connection) as ctx:
            result = deduct_stock_for_items(order_id="o-1", items=items)

        updates = [q["sql"] for q in ctx.captured_queries if q["sql"].upper().startswith("UPDATE")]
        self.assertEqual(len(updates), 1)
        self.assertIn('"stock" >=', updates[0])
        self.assertFalse([q for q in ctx.captured_queries if q["sql"].upper().startswith("SELECT")])

        self.assertTrue(result.success)
        self.assertEqual(_stock("tee-black"), 3)

    def test_last_unit_goes_to_exactly_one_order(self):
        make_product("hoodie", stock=1)
        items = make_payload([("hoodie", 1, 120000)]).items

        first = deduct_stock_for_items(order_id="o-1", items=items)
        second = deduct_stock_for_items(order_id="o-2", items=items)

        self.assertTrue(first.success)
        self.assertFalse(second.success)
        self.assertEqual(second.failures[0].reason, "insufficient stock")
        self.assertEqual(_stock("hoodie"), 0)

    def test_partial_failure_keeps_successful_lines(self):
        make_product("tee-black", stock=5)
        make_product("cap", stock=0)
        items = make_payload([("tee-black", 1, 50000), ("cap", 1, 30000)]).items

        result = deduct_stock_for_items(order_id="o-1", items=items)

        self.assertFalse(result.success)
        self.assertEqual([f.product_id for f in result.failures], ["cap"])
        self.assertIn("cap: requested 1 (insufficient stock)", result.failure_summary())
        self.assertEqual(_stock("tee-black"), 4)
        self.assertEqual(_stock("cap"), 0)

    def test_unknown_product_and_bad_quantity_are_failures(self):
        items = make_payload([("ghost", 1, 100), ("ghost", 0, 100)]).items

        result = deduct_stock_for_items(order_id="o-1", items=items)

        self.assertEqual([f.reason for f in result.failures], ["insufficient stock", "invalid quantity"])


class ShortfallTests(TestCase):
    def test_quantities_for_one_product_are_summed(self):
        make_product("tee-black", stock=3)
        items = make_payload([("tee-black", 2, 50000), ("tee-black", 2, 50000)]).items

        self.assertEqual(find_stock_shortfalls(items), ["tee-black: requested 4, in stock 3"])

    def test_inactive_or_missing_product_is_unavailable(self):
        Product.objects.create(pk="old", name="Old", stock=10, is_active=False)
        items = make_payload([("old", 1, 100), ("nope", 1, 100)]).items

        self.assertEqual(find_stock_shortfalls(items), ["old: not available", "nope: not available"])

    def test_enough_stock_reports_nothing(self):
        make_product("tee-black", stock=3)
        self.assertEqual(find_stock_shortfalls(make_payload([("tee-black", 3, 1)]).items), [])
