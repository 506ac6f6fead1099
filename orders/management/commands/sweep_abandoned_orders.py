# orders/management/commands/sweep_abandoned_orders.py
from __future__ import annotations

import logging
import time

from django.core.management.base import BaseCommand
from django.db import close_old_connections

from orders.sweeper import get_sweeper_config, run_abandoned_order_sweep

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Cancel pending, unpaid, non-COD orders older than ABANDONED_ORDER_TTL_MINUTES."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Only report how many orders would be cancelled.",
        )
        parser.add_argument(
            "--loop",
            action="store_true",
            help="Keep sweeping every ABANDONED_SWEEP_INTERVAL_SECONDS.",
        )

    def _sweep_once(self, dry_run: bool) -> None:
        result = run_abandoned_order_sweep(dry_run=dry_run)
        prefix = "[DRY RUN] " if dry_run else ""
        self.stdout.write(
            f"{prefix}matched={result.matched} cancelled={result.cancelled} "
            f"ttl={result.ttl_minutes}m interval={result.interval_seconds}s"
        )

    def handle(self, *args, **options):
        dry_run: bool = options["dry_run"]

        if not options["loop"]:
            self._sweep_once(dry_run)
            return

        config = get_sweeper_config()
        self.stdout.write(self.style.SUCCESS(f"Sweeping every {config.interval_seconds}s (Ctrl+C to stop)."))

        if not config.run_on_boot:
            time.sleep(config.interval_seconds)

        while True:
            try:
                self._sweep_once(dry_run)
            except Exception:
                logger.exception("abandoned order sweep failed")
            finally:
                close_old_connections()
            time.sleep(config.interval_seconds)
