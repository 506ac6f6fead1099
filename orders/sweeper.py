# orders/sweeper.py
"""
Abandoned-order sweeper.

Cancels card/bank orders that were started but never paid. The cancel is one
conditional UPDATE whose WHERE clause repeats every predicate, so an order
that gets paid while a sweep is running no longer matches when the statement
executes and is left alone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from django.conf import settings
from django.db.models import QuerySet
from django.utils import timezone

from .models import Order

logger = logging.getLogger(__name__)

DEFAULT_TTL_MINUTES = 24 * 60
MIN_TTL_MINUTES = 1
MAX_TTL_MINUTES = 7 * 24 * 60

DEFAULT_INTERVAL_SECONDS = 30 * 60
MIN_INTERVAL_SECONDS = 10
MAX_INTERVAL_SECONDS = 6 * 60 * 60


@dataclass(frozen=True)
class SweeperConfig:
    ttl_minutes: int
    interval_seconds: int
    run_on_boot: bool


@dataclass(frozen=True)
class SweepResult:
    matched: int
    cancelled: int
    ttl_minutes: int
    interval_seconds: int
    dry_run: bool


def _clamp(value, default: int, low: int, high: int) -> int:
    try:
        value = int(value)
    except (TypeError, ValueError):
        value = default
    return min(high, max(low, value))


def get_sweeper_config() -> SweeperConfig:
    return SweeperConfig(
        ttl_minutes=_clamp(
            getattr(settings, "ABANDONED_ORDER_TTL_MINUTES", DEFAULT_TTL_MINUTES),
            DEFAULT_TTL_MINUTES,
            MIN_TTL_MINUTES,
            MAX_TTL_MINUTES,
        ),
        interval_seconds=_clamp(
            getattr(settings, "ABANDONED_SWEEP_INTERVAL_SECONDS", DEFAULT_INTERVAL_SECONDS),
            DEFAULT_INTERVAL_SECONDS,
            MIN_INTERVAL_SECONDS,
            MAX_INTERVAL_SECONDS,
        ),
        run_on_boot=bool(getattr(settings, "ABANDONED_SWEEP_RUN_ON_BOOT", True)),
    )


def abandoned_orders(*, ttl_minutes: int, now=None) -> QuerySet[Order]:
    cutoff = (now or timezone.now()) - timedelta(minutes=ttl_minutes)
    return (
        Order.objects.filter(
            status=Order.Status.PENDING,
            payment_status=Order.PaymentStatus.UNPAID,
            stock_deducted_at__isnull=True,
            created_at__lt=cutoff,
        )
        .exclude(payment_method=Order.PaymentMethod.COD)
    )


def run_abandoned_order_sweep(*, dry_run: bool = False, now=None) -> SweepResult:
    config = get_sweeper_config()
    candidates = abandoned_orders(ttl_minutes=config.ttl_minutes, now=now)

    matched = candidates.count()
    cancelled = 0
    if not dry_run and matched:
        cancelled = candidates.update(status=Order.Status.CANCELLED, updated_at=timezone.now())

    result = SweepResult(
        matched=matched,
        cancelled=cancelled,
        ttl_minutes=config.ttl_minutes,
        interval_seconds=config.interval_seconds,
        dry_run=dry_run,
    )
    logger.info(
        "abandoned sweep ttl=%sm interval=%ss matched=%s cancelled=%s dry_run=%s",
        result.ttl_minutes,
        result.interval_seconds,
        result.matched,
        result.cancelled,
        result.dry_run,
    )
    return result
