# core/logging_filters.py
from __future__ import annotations

import logging

from .logging_context import get_context


class RequestContextFilter(logging.Filter):
    """Inject request (or background task) context into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = get_context()
        record.request_id = ctx.request_id if ctx else "-"
        record.user_id = ctx.user_id if ctx else None
        if ctx and ctx.task:
            record.path = f"task:{ctx.task}"
        else:
            record.path = ctx.path if ctx else ""
        return True
