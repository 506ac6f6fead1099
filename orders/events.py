# orders/events.py
"""
Provider event log.

record_order_event() is insert-if-absent on (provider, provider_event_id),
backed by the uniq_order_event_provider_event constraint. A duplicate insert
(replayed webhook, second verification poll, concurrent racer) returns False;
it is not an error.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from django.db import IntegrityError, transaction

from .models import Order, OrderEvent

logger = logging.getLogger(__name__)


def event_already_recorded(*, provider: str, provider_event_id: str) -> bool:
    if not provider_event_id:
        return False
    return OrderEvent.objects.filter(provider=provider, provider_event_id=provider_event_id).exists()


def record_order_event(
    *,
    order: Optional[Order],
    type: str,
    provider: str = "",
    provider_event_id: str = "",
    message: str = "",
    payload: Optional[dict[str, Any]] = None,
) -> bool:
    """
    Returns True when a row was written, False when (provider,
    provider_event_id) was already present.
    """
    provider_event_id = (provider_event_id or "").strip()

    if not provider_event_id:
        OrderEvent.objects.create(order=order, type=type, provider=provider, message=message, payload=payload)
        return True

    try:
        with transaction.atomic():
            OrderEvent.objects.create(
                order=order,
                type=type,
                provider=provider,
                provider_event_id=provider_event_id,
                message=message,
                payload=payload,
            )
        return True
    except IntegrityError:
        if event_already_recorded(provider=provider, provider_event_id=provider_event_id):
            logger.info("duplicate provider event skipped provider=%s event=%s", provider, provider_event_id)
            return False
        raise


def add_history_note(order: Order, type: str, message: str = "", **payload: Any) -> None:
    """Internal history row (no provider id, never deduplicated)."""
    OrderEvent.objects.create(order=order, type=type, message=message, payload=payload or None)
