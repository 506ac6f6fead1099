# core/logging_context.py
from __future__ import annotations

import contextlib
import threading
import uuid
from dataclasses import dataclass, replace
from typing import Iterator, Optional

_local = threading.local()


@dataclass(frozen=True)
class RequestContext:
    request_id: str
    user_id: Optional[int] = None
    path: str = ""
    task: str = ""


def set_context(*, request_id: str, user_id: Optional[int], path: str) -> None:
    _local.ctx = RequestContext(request_id=request_id, user_id=user_id, path=path)


def clear_context() -> None:
    if hasattr(_local, "ctx"):
        delattr(_local, "ctx")


def get_context() -> RequestContext | None:
    return getattr(_local, "ctx", None)


def new_request_id() -> str:
    return uuid.uuid4().hex


@contextlib.contextmanager
def bound_context(ctx: RequestContext | None, *, task: str = "") -> Iterator[RequestContext]:
    """
    Re-bind a captured request context inside a worker thread.

    Background work keeps the originating request id so webhook -> payout -> email
    log lines can be correlated.
    """
    previous = get_context()
    bound = replace(ctx, task=task) if ctx else RequestContext(request_id=new_request_id(), task=task)
    _local.ctx = bound
    try:
        yield bound
    finally:
        if previous is None:
            clear_context()
        else:
            _local.ctx = previous
