# orders/tests/test_items.py

from __future__ import annotations

from django.core.exceptions import ValidationError
from django.test import SimpleTestCase

from orders.items import decode_order_items, encode_order_items
from orders.tests.factories import make_payload


class DecodeOrderItemsTests(SimpleTestCase):
    def test_legacy_list_prices_are_whole_units(self):
        payload = decode_order_items(
            [{"productId": "tee-black", "name": "Tee", "price": 500, "size": "M", "quantity": 2}]
        )

        self.assertEqual(payload.source_version, 1)
        line = payload.items[0]
        self.assertEqual((line.product_id, line.size, line.quantity), ("tee-black", "M", 2))
        self.assertEqual(line.unit_price_cents, 50000)
        self.assertEqual(payload.items_total_cents, 100000)

    def test_legacy_object_carries_shipping_and_totals(self):
        payload = decode_order_items(
            {
                "items": [{"productId": "cap", "price": 350, "quantity": 1}],
                "shippingMethod": "zasilkovna",
                "shippingLabel": "Zasilkovna",
                "subtotalCzk": 350,
                "shippingCzk": 79,
                "codCzk": 0,
                "totalCzk": 429,
            }
        )

        self.assertEqual(payload.shipping.method, "zasilkovna")
        self.assertEqual(payload.totals.shipping_cents, 7900)
        self.assertEqual(payload.totals.total_cents, 42900)

    def test_current_shape_from_json_text(self):
        payload = decode_order_items(
            '{"version": 2, "items": [{"product_id": "tee-black", "quantity": 1, "unit_price_cents": 49900}]}'
        )

        self.assertEqual(payload.source_version, 2)
        self.assertEqual(payload.items[0].unit_price_cents, 49900)

    def test_encode_writes_the_current_version(self):
        raw = encode_order_items(make_payload([("tee-black", 2, 50000)]))

        self.assertEqual(raw["version"], 2)
        self.assertEqual(decode_order_items(raw).items_total_cents, 100000)

    def test_empty_payload_decodes_to_no_items(self):
        self.assertEqual(decode_order_items(None).items, [])

    def test_rejects_malformed_payloads(self):
        for raw in ("{not json", {"version": 9, "items": []}, [{"name": "no id"}], [{"productId": "x", "quantity": "many"}], 42):
            with self.subTest(raw=raw):
                with self.assertRaises(ValidationError):
                    decode_order_items(raw)
