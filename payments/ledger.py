# payments/ledger.py
"""
Ledger writes.

Every financial row goes through append_ledger_entry(). The unique dedupe_key
column is the only idempotency check: there is no "exists? then insert" here.
A concurrent or repeated insert with the same key lands in IntegrityError
inside a savepoint, is confirmed by re-reading the key, and is reported as
created=False.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

from django.core.serializers.json import DjangoJSONEncoder
from django.db import IntegrityError, transaction

from .models import LedgerEntry

logger = logging.getLogger(__name__)


def sale_dedupe_key(order_id) -> str:
    return f"sale-{order_id}"


def refund_dedupe_key(order_id, provider_event_id: str) -> str:
    return f"refund:{order_id}:{provider_event_id}"


def chargeback_dedupe_key(order_id, provider_event_id: str) -> str:
    return f"chargeback:{order_id}:{provider_event_id}"


def chargeback_fee_dedupe_key(order_id, provider_event_id: str) -> str:
    return f"chargeback_fee:{order_id}:{provider_event_id}"


def sale_recorded(order_id) -> bool:
    return LedgerEntry.objects.filter(dedupe_key=sale_dedupe_key(order_id)).exists()


def _jsonable(meta: Optional[Mapping[str, Any]]) -> dict:
    return json.loads(json.dumps(dict(meta or {}), cls=DjangoJSONEncoder))


def append_ledger_entry(
    *,
    dedupe_key: str,
    type: str,
    amount_cents: int,
    currency: str,
    order=None,
    meta: Optional[Mapping[str, Any]] = None,
) -> tuple[Optional[LedgerEntry], bool]:
    """
    Insert-if-absent on dedupe_key. Returns (entry, created); entry is None
    when someone else already wrote the key.

    Direction is derived from the sign: positive is IN, negative is OUT.
    """
    if not dedupe_key:
        raise ValueError("dedupe_key is required")
    amount_cents = int(amount_cents)
    if amount_cents == 0:
        raise ValueError("Ledger amounts must be non-zero")

    direction = LedgerEntry.Direction.IN if amount_cents > 0 else LedgerEntry.Direction.OUT

    try:
        with transaction.atomic():
            entry = LedgerEntry.objects.create(
                order=order,
                type=type,
                direction=direction,
                amount_cents=amount_cents,
                currency=(currency or "czk").lower(),
                meta=_jsonable(meta),
                dedupe_key=dedupe_key,
            )
        return entry, True
    except IntegrityError:
        if LedgerEntry.objects.filter(dedupe_key=dedupe_key).exists():
            logger.info("ledger entry already present dedupe_key=%s", dedupe_key)
            return None, False
        raise
