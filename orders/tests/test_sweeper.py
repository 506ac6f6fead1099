# orders/tests/test_sweeper.py

from __future__ import annotations

from datetime import timedelta
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.db.models import QuerySet
from django.test import TestCase, override_settings
from django.utils import timezone

from orders.models import Order
from orders.sweeper import abandoned_orders, get_sweeper_config, run_abandoned_order_sweep
from orders.tests.factories import make_order


def _aged(hours: float, **fields) -> Order:
    return make_order(created_at=timezone.now() - timedelta(hours=hours), **fields)


@override_settings(ABANDONED_ORDER_TTL_MINUTES=24 * 60)
class AbandonedOrderSweepTests(TestCase):
    def test_only_stale_unpaid_prepaid_orders_are_cancelled(self):
        stale = _aged(25)
        bank = _aged(25, payment_method=Order.PaymentMethod.BANK)
        cod = _aged(25, payment_method=Order.PaymentMethod.COD)
        paid = _aged(25, status=Order.Status.CONFIRMED, payment_status=Order.PaymentStatus.PAID)
        committed = _aged(25, stock_deducted_at=timezone.now())
        fresh = _aged(2)

        result = run_abandoned_order_sweep()

        self.assertEqual((result.matched, result.cancelled), (2, 2))
        status = dict(Order.objects.values_list("pk", "status"))
        self.assertEqual(status[stale.pk], Order.Status.CANCELLED)
        self.assertEqual(status[bank.pk], Order.Status.CANCELLED)
        for order in (cod, fresh, committed):
            self.assertEqual(status[order.pk], Order.Status.PENDING)
        self.assertEqual(status[paid.pk], Order.Status.CONFIRMED)

    def test_order_paid_after_selection_is_not_cancelled(self):
        stale = _aged(25)
        racer = _aged(25)
        candidates = abandoned_orders(ttl_minutes=24 * 60)
        self.assertEqual(candidates.count(), 2)

        Order.objects.filter(pk=racer.pk).update(
            status=Order.Status.CONFIRMED, payment_status=Order.PaymentStatus.PAID
        )
        cancelled = candidates.update(status=Order.Status.CANCELLED)

        self.assertEqual(cancelled, 1)
        racer.refresh_from_db()
        self.assertEqual((racer.status, racer.payment_status), (Order.Status.CONFIRMED, Order.PaymentStatus.PAID))
        self.assertEqual(Order.objects.get(pk=stale.pk).status, Order.Status.CANCELLED)

    def test_payment_landing_mid_sweep_wins(self):
        stale = _aged(25)
        racer = _aged(25)
        original_count = QuerySet.count

        def count_then_pay(queryset):
            matched = original_count(queryset)
            Order.objects.filter(pk=racer.pk).update(
                status=Order.Status.CONFIRMED, payment_status=Order.PaymentStatus.PAID
            )
            return matched

        with patch.object(QuerySet, "count", autospec=True, side_effect=count_then_pay):
            result = run_abandoned_order_sweep()

        self.assertEqual((result.matched, result.cancelled), (2, 1))
        status = dict(Order.objects.values_list("pk", "status"))
        self.assertEqual(status[stale.pk], Order.Status.CANCELLED)
        self.assertEqual(status[racer.pk], Order.Status.CONFIRMED)

    def test_payment_status_is_left_unpaid(self):
        stale = _aged(30)
        run_abandoned_order_sweep()
        stale.refresh_from_db()
        self.assertEqual(stale.payment_status, Order.PaymentStatus.UNPAID)

    def test_dry_run_changes_nothing(self):
        stale = _aged(25)

        result = run_abandoned_order_sweep(dry_run=True)

        self.assertEqual((result.matched, result.cancelled, result.dry_run), (1, 0, True))
        self.assertEqual(Order.objects.get(pk=stale.pk).status, Order.Status.PENDING)

    def test_command_reports_counts(self):
        _aged(25)
        out = StringIO()

        call_command("sweep_abandoned_orders", "--dry-run", stdout=out)
        self.assertIn("[DRY RUN] matched=1 cancelled=0 ttl=1440m", out.getvalue())

        out = StringIO()
        call_command("sweep_abandoned_orders", stdout=out)
        self.assertIn("matched=1 cancelled=1", out.getvalue())


class SweeperConfigTests(TestCase):
    @override_settings(ABANDONED_ORDER_TTL_MINUTES=0, ABANDONED_SWEEP_INTERVAL_SECONDS=1)
    def test_values_are_clamped_low(self):
        config = get_sweeper_config()
        self.assertEqual((config.ttl_minutes, config.interval_seconds), (1, 10))

    @override_settings(ABANDONED_ORDER_TTL_MINUTES=10**6, ABANDONED_SWEEP_INTERVAL_SECONDS=10**6)
    def test_values_are_clamped_high(self):
        config = get_sweeper_config()
        self.assertEqual((config.ttl_minutes, config.interval_seconds), (7 * 24 * 60, 6 * 60 * 60))

    @override_settings(ABANDONED_ORDER_TTL_MINUTES="soon")
    def test_garbage_falls_back_to_default(self):
        self.assertEqual(get_sweeper_config().ttl_minutes, 24 * 60)
