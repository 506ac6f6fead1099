# core/audit.py
from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction

from .logging_context import get_context
from .models import AuditLogEntry

logger = logging.getLogger(__name__)

Severity = AuditLogEntry.Severity


def _jsonable(meta: Optional[Mapping[str, Any]]) -> dict:
    # Decimals, UUIDs and datetimes show up in meta; normalise before JSONField sees them.
    return json.loads(json.dumps(dict(meta or {}), cls=DjangoJSONEncoder))


def record_audit(
    *,
    action: str,
    entity: str,
    entity_id: Any = "",
    meta: Optional[Mapping[str, Any]] = None,
    severity: str = Severity.INFO,
    actor=None,
) -> Optional[AuditLogEntry]:
    """
    Best-effort audit write.

    Runs in its own savepoint so a failed insert never poisons the caller's
    transaction. Returns None when the write failed.
    """
    ctx = get_context()
    try:
        with transaction.atomic():
            return AuditLogEntry.objects.create(
                actor=actor if getattr(actor, "pk", None) else None,
                action=action,
                entity=entity,
                entity_id=str(entity_id or ""),
                meta=_jsonable(meta),
                severity=severity,
                request_id=ctx.request_id if ctx else "",
            )
    except Exception:
        logger.exception("audit write failed action=%s entity=%s:%s", action, entity, entity_id)
        return None
