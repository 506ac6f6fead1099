# refunds/management/commands/refund_order.py
from __future__ import annotations

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError

from orders.models import Order
from refunds.services import apply_refund_for_order


class Command(BaseCommand):
    help = "Record a manual refund for an order (ledger, payouts, order status). Money is returned in Stripe separately."

    def add_arguments(self, parser):
        parser.add_argument("order_id")
        parser.add_argument("amount_cents", type=int)
        parser.add_argument("--reason", default="", help="Reason stored on the order and in the audit log.")
        parser.add_argument(
            "--ref",
            required=True,
            help="Unique refund reference (e.g. the Stripe refund id). Re-running with the same ref is a no-op.",
        )

    def handle(self, *args, **options):
        try:
            result = apply_refund_for_order(
                order_id=options["order_id"],
                amount_cents=options["amount_cents"],
                reason=options["reason"],
                provider_event_id=options["ref"],
            )
        except Order.DoesNotExist:
            raise CommandError(f"Order {options['order_id']} not found.")
        except ValidationError as exc:
            raise CommandError("; ".join(exc.messages))

        if result.skipped:
            self.stdout.write(self.style.WARNING(f"Refund {options['ref']} was already applied."))
            return

        self.stdout.write(
            self.style.SUCCESS(
                f"Refunded {result.amount_cents} on order {result.order_id}; "
                f"{result.cancelled_payouts} pending payout(s) cancelled."
            )
        )
