# core/tests/test_core.py

from __future__ import annotations

import json
from unittest.mock import patch

import requests
from django.test import TestCase, override_settings

from core.audit import Severity, record_audit
from core.logging_context import bound_context, clear_context, get_context, set_context
from core.models import AuditLogEntry
from core.ops_events import OpsEventType, emit_ops_event, sign_body
from core.tasks import submit, submit_on_commit


class AuditTests(TestCase):
    def tearDown(self):
        clear_context()

    def test_entry_carries_request_id(self):
        set_context(request_id="req-42", user_id=None, path="/orders/webhooks/stripe/")

        entry = record_audit(action="refund_applied", entity="order", entity_id=7, meta={"amount": 1}, severity=Severity.IMPORTANT)

        self.assertEqual(entry.request_id, "req-42")
        self.assertEqual(entry.entity_id, "7")
        self.assertEqual(entry.severity, AuditLogEntry.Severity.IMPORTANT)

    def test_entries_are_append_only(self):
        entry = record_audit(action="x", entity="order")
        with self.assertRaises(ValueError):
            entry.save()
        with self.assertRaises(ValueError):
            entry.delete()

    def test_write_failure_returns_none(self):
        with patch("core.audit.AuditLogEntry.objects.create", side_effect=RuntimeError("db gone")):
            self.assertIsNone(record_audit(action="x", entity="order"))


class OpsEventTests(TestCase):
    def test_disabled_by_default(self):
        self.assertIsNone(emit_ops_event(OpsEventType.ORDER_CREATED, "o-1"))

    @override_settings(OPS_EVENTS_ENABLED=True, OPS_WEBHOOK_URL="https://ops.example/hook", OPS_WEBHOOK_SECRET="s3cret")
    def test_posts_signed_payload(self):
        with patch("core.ops_events.requests.post") as post:
            event = emit_ops_event(OpsEventType.CHARGEBACK_RECEIVED, "o-1", amountCents=100000)

        self.assertEqual(event["type"], "CHARGEBACK_RECEIVED")
        self.assertEqual(event["orderId"], "o-1")
        args, kwargs = post.call_args
        self.assertEqual(args, ("https://ops.example/hook",))
        self.assertEqual(json.loads(kwargs["data"])["amountCents"], 100000)
        self.assertEqual(kwargs["headers"]["X-Ops-Signature"], sign_body(kwargs["data"], "s3cret"))

    @override_settings(OPS_EVENTS_ENABLED=True, OPS_WEBHOOK_URL="https://ops.example/hook")
    def test_delivery_failure_never_raises(self):
        with patch("core.ops_events.requests.post", side_effect=requests.ConnectionError("refused")):
            event = emit_ops_event(OpsEventType.STOCK_ISSUE, "o-1")
        self.assertIsNotNone(event)


class TaskTests(TestCase):
    def test_eager_submit_runs_inline_and_swallows_errors(self):
        calls = []
        submit(calls.append, 1)

        def boom():
            raise RuntimeError("task failed")

        submit(boom)
        self.assertEqual(calls, [1])

    def test_on_commit_work_waits_for_commit(self):
        calls = []
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            submit_on_commit(calls.append, "sent")

        self.assertEqual(calls, [])
        self.assertEqual(len(callbacks), 1)
        callbacks[0]()
        self.assertEqual(calls, ["sent"])

    def test_task_context_is_restored(self):
        set_context(request_id="req-1", user_id=3, path="/x/")
        try:
            with bound_context(get_context(), task="payouts") as ctx:
                self.assertEqual((ctx.request_id, ctx.task), ("req-1", "payouts"))
            self.assertEqual(get_context().task, "")
        finally:
            clear_context()


class RequestIdMiddlewareTests(TestCase):
    def test_echoes_safe_ids_and_replaces_others(self):
        resp = self.client.get("/ops/summary/", HTTP_X_REQUEST_ID="abc-123")
        self.assertEqual(resp["X-Request-ID"], "abc-123")

        resp = self.client.get("/ops/summary/", HTTP_X_REQUEST_ID="bad id!")
        self.assertNotEqual(resp["X-Request-ID"], "bad id!")
        self.assertEqual(len(resp["X-Request-ID"]), 32)
        self.assertIsNone(get_context())
