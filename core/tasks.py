# core/tasks.py
"""
Detached background work.

Payout generation, e-mails and ops webhooks must never hold up (or fail) the
request that triggered them. They are submitted here instead:

  - submit(fn, ...)            run in the worker pool now
  - submit_on_commit(fn, ...)  run in the worker pool after the current
                               transaction commits (nothing runs on rollback)

Each job runs inside its own error boundary: exceptions are logged with the
originating request id and swallowed. Worker threads close their DB
connections when done.

With settings.BACKGROUND_TASKS_EAGER the job runs inline (still inside the
error boundary), which is what the test settings use.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from django.conf import settings
from django.db import close_old_connections, transaction

from .logging_context import bound_context, get_context

logger = logging.getLogger(__name__)

_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            workers = max(1, int(getattr(settings, "BACKGROUND_TASK_WORKERS", 4) or 4))
            _executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bg-task")
        return _executor


def _task_label(fn: Callable, label: str) -> str:
    return label or f"{getattr(fn, '__module__', '')}.{getattr(fn, '__qualname__', repr(fn))}"


def _run(fn: Callable, label: str, ctx, args: tuple, kwargs: dict, *, in_worker: bool) -> None:
    with bound_context(ctx, task=label):
        try:
            fn(*args, **kwargs)
        except Exception:
            logger.exception("background task failed task=%s", label)
        finally:
            if in_worker:
                close_old_connections()


def submit(fn: Callable, *args: Any, label: str = "", **kwargs: Any) -> Optional[Future]:
    label = _task_label(fn, label)
    ctx = get_context()

    if getattr(settings, "BACKGROUND_TASKS_EAGER", False):
        _run(fn, label, ctx, args, kwargs, in_worker=False)
        return None

    return _get_executor().submit(_run, fn, label, ctx, args, kwargs, in_worker=True)


def submit_on_commit(fn: Callable, *args: Any, label: str = "", **kwargs: Any) -> None:
    transaction.on_commit(lambda: submit(fn, *args, label=label, **kwargs))


def shutdown(wait: bool = True) -> None:
    global _executor
    with _executor_lock:
        if _executor is not None:
            _executor.shutdown(wait=wait)
            _executor = None
