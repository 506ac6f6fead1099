# core/ops_events.py
"""
Operational event hooks (payment confirmed, stock issue, chargeback, ...).

Disabled unless OPS_EVENTS_ENABLED (or DEBUG). When OPS_WEBHOOK_URL is set the
event is POSTed from the background pool, signed with OPS_WEBHOOK_SECRET
(X-Ops-Signature: hex HMAC-SHA256 of the raw body). Emitting never raises.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from typing import Any, Optional

import requests
from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.utils import timezone

from .tasks import submit

logger = logging.getLogger(__name__)


class OpsEventType:
    ORDER_CREATED = "ORDER_CREATED"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    REFUND_CREATED = "REFUND_CREATED"
    STOCK_ISSUE = "STOCK_ISSUE"
    PAYOUTS_GENERATED = "PAYOUTS_GENERATED"
    CHARGEBACK_RECEIVED = "CHARGEBACK_RECEIVED"
    MANUAL_REVIEW_REQUIRED = "MANUAL_REVIEW_REQUIRED"


def _enabled() -> bool:
    return bool(getattr(settings, "OPS_EVENTS_ENABLED", False) or settings.DEBUG)


def sign_body(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def _post_event(url: str, body: bytes) -> None:
    headers = {"Content-Type": "application/json"}
    secret = getattr(settings, "OPS_WEBHOOK_SECRET", "") or ""
    if secret:
        headers["X-Ops-Signature"] = sign_body(body, secret)

    timeout = int(getattr(settings, "OPS_WEBHOOK_TIMEOUT_SECONDS", 5) or 5)
    resp = requests.post(url, data=body, headers=headers, timeout=timeout)
    resp.raise_for_status()


def emit_ops_event(event_type: str, order_id: Any = None, **payload: Any) -> Optional[dict]:
    try:
        if not _enabled():
            return None

        event = {
            "type": event_type,
            "timestamp": timezone.now().isoformat(),
            "orderId": str(order_id) if order_id else None,
            **payload,
        }
        body = json.dumps(event, cls=DjangoJSONEncoder).encode("utf-8")
        logger.info("ops event %s %s", event_type, body.decode("utf-8"))

        url = getattr(settings, "OPS_WEBHOOK_URL", "") or ""
        if url:
            submit(_post_event, url, body, label=f"ops_webhook:{event_type}")
        return event
    except Exception:
        logger.exception("ops event emit failed type=%s order=%s", event_type, order_id)
        return None
