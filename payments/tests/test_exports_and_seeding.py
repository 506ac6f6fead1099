# payments/tests/test_exports_and_seeding.py

from __future__ import annotations

import csv
import io
from io import StringIO

from django.core.management import call_command
from django.test import SimpleTestCase, TestCase

from orders.models import Order
from orders.tests.factories import make_default_rules, make_order
from payments.exports import export_ledger_csv, export_orders_csv, export_payouts_csv, mask_sensitive
from payments.models import Partner, PayoutRule
from payments.payouts import generate_payouts_for_order


def _rows(response) -> list[list[str]]:
    return list(csv.reader(io.StringIO(response.content.decode("utf-8"))))


class MaskSensitiveTests(SimpleTestCase):
    def test_masking(self):
        self.assertEqual(mask_sensitive("jan.novak@example.cz"), "ja...cz")
        self.assertEqual(mask_sensitive("a@b"), "****")
        self.assertEqual(mask_sensitive(""), "")
        self.assertEqual(mask_sensitive(None), "")


class ExportTests(TestCase):
    def setUp(self):
        make_default_rules()
        self.order = make_order(total_cents=123456, manual_review=True, payment_status=Order.PaymentStatus.PAID)
        generate_payouts_for_order(self.order.pk)

    def test_orders_export_masks_email(self):
        response = export_orders_csv()

        self.assertEqual(response["Content-Type"], "text/csv; charset=utf-8")
        self.assertIn('filename="orders-', response["Content-Disposition"])
        header, row = _rows(response)
        self.assertEqual(header[0], "id")
        record = dict(zip(header, row))
        self.assertEqual(record["total"], "1234.56")
        self.assertEqual(record["manualReview"], "yes")
        self.assertEqual(record["customerEmailMasked"], "ja...cz")
        self.assertNotIn("jan.novak@example.cz", response.content.decode("utf-8"))

    def test_ledger_and_payout_exports(self):
        ledger = _rows(export_ledger_csv())
        self.assertEqual(len(ledger), 2)
        self.assertEqual(dict(zip(ledger[0], ledger[1]))["dedupeKey"], f"sale-{self.order.pk}")

        payouts = _rows(export_payouts_csv())
        self.assertEqual(len(payouts), 4)
        amounts = sorted(row[2] for row in payouts[1:])
        self.assertEqual(amounts, ["246.91", "493.82", "493.82"])


class SeedPayoutRulesCommandTests(TestCase):
    def test_seeds_once(self):
        out = StringIO()
        call_command("seed_payout_rules", stdout=out)
        self.assertIn("Partners created: 4. Payout rules created: 3.", out.getvalue())

        out = StringIO()
        call_command("seed_payout_rules", stdout=out)
        self.assertIn("Partners created: 0. Payout rules created: 0.", out.getvalue())

        self.assertEqual(
            dict(PayoutRule.objects.values_list("partner_code", "percent")),
            {"ZABR": 20, "KOSTA": 40, "TOMAS": 40},
        )
        self.assertEqual(Partner.objects.get(code="GROWTH_FUND").kind, Partner.Kind.FUND)
