# orders/tests/test_webhooks.py

from __future__ import annotations

import hashlib
import hmac
import json
import time
import uuid
from unittest.mock import patch

import stripe
from django.core import mail
from django.test import TestCase, override_settings

from core.models import AuditLogEntry
from orders.models import Order, OrderEvent
from orders.tests.factories import make_default_rules, make_order, make_product
from payments.models import LedgerEntry, OrderPayout
from products.models import Product

WEBHOOK_URL = "/orders/webhooks/stripe/"


def _event(event_type: str, obj: dict, event_id: str = "evt_1") -> dict:
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


def _session(order: Order, **extra) -> dict:
    data = {
        "id": "cs_test_1",
        "object": "checkout.session",
        "payment_status": "paid",
        "payment_intent": "pi_1",
        "metadata": {"order_id": str(order.pk)},
    }
    data.update(extra)
    return data


class StripeWebhookTests(TestCase):
    def setUp(self):
        make_product("tee-black", stock=5)
        make_default_rules()
        self.order = make_order(lines=[("tee-black", 2, 50000)])

    def _post(self, event: dict | None = None, *, side_effect=None, signature: str = "t=1,v1=abc"):
        headers = {"HTTP_STRIPE_SIGNATURE": signature} if signature else {}
        with patch("orders.webhooks.verify_and_parse_webhook", return_value=event, side_effect=side_effect):
            return self.client.post(
                WEBHOOK_URL,
                data=json.dumps(event or {}),
                content_type="application/json",
                **headers,
            )

    def test_checkout_completed_confirms_the_order(self):
        with self.captureOnCommitCallbacks(execute=True):
            resp = self._post(_event("checkout.session.completed", _session(self.order)))

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"received": True, "status": "processed"})

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.CONFIRMED)
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.PAID)
        self.assertEqual(self.order.payment_intent_id, "pi_1")
        self.assertEqual(self.order.stripe_session_id, "cs_test_1")
        self.assertEqual(Product.objects.get(pk="tee-black").stock, 3)
        self.assertEqual(LedgerEntry.objects.filter(type=LedgerEntry.Type.SALE).count(), 1)
        self.assertEqual(OrderPayout.objects.filter(order=self.order).count(), 3)
        self.assertEqual(mail.outbox[-1].to, ["ops@zle.test"])
        self.assertTrue(AuditLogEntry.objects.filter(action="payment_finalized").exists())

    def test_replayed_event_has_no_second_effect(self):
        event = _event("checkout.session.completed", _session(self.order))
        with self.captureOnCommitCallbacks(execute=True):
            self._post(event)
        with self.captureOnCommitCallbacks(execute=True):
            resp = self._post(event)

        self.assertEqual(resp.json()["status"], "duplicate")
        self.assertEqual(OrderEvent.objects.filter(provider="stripe", provider_event_id="evt_1").count(), 1)
        self.assertEqual(LedgerEntry.objects.count(), 1)
        self.assertEqual(OrderPayout.objects.count(), 3)
        self.assertEqual(Product.objects.get(pk="tee-black").stock, 3)
        self.assertEqual(len(mail.outbox), 2)

    def test_payment_intent_succeeded_after_checkout_is_harmless(self):
        self._post(_event("checkout.session.completed", _session(self.order)))
        resp = self._post(
            _event(
                "payment_intent.succeeded",
                {"id": "pi_1", "object": "payment_intent", "metadata": {"orderId": str(self.order.pk)}},
                event_id="evt_2",
            )
        )

        self.assertEqual(resp.json()["status"], "processed")
        self.assertEqual(LedgerEntry.objects.count(), 1)
        self.assertEqual(Product.objects.get(pk="tee-black").stock, 3)

    def test_unpaid_checkout_is_ignored(self):
        resp = self._post(_event("checkout.session.completed", _session(self.order, payment_status="unpaid")))

        self.assertEqual(resp.json()["status"], "ignored")
        self.assertEqual(Order.objects.get(pk=self.order.pk).payment_status, Order.PaymentStatus.UNPAID)

    def test_unhandled_event_type_is_acknowledged(self):
        resp = self._post(_event("customer.created", {"id": "cus_1"}))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "ignored")

    def test_missing_signature_is_rejected(self):
        resp = self._post(_event("checkout.session.completed", _session(self.order)), signature="")
        self.assertEqual(resp.status_code, 400)

    def test_bad_signature_is_rejected(self):
        resp = self._post(side_effect=stripe.SignatureVerificationError("bad signature", "t=1,v1=abc"))
        self.assertEqual(resp.status_code, 400)

        resp = self._post(side_effect=ValueError("bad payload"))
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(OrderEvent.objects.filter(provider="stripe").exists())

    def test_unknown_order_is_404(self):
        session = _session(self.order, metadata={"order_id": str(uuid.uuid4())})
        resp = self._post(_event("checkout.session.completed", session))
        self.assertEqual(resp.status_code, 404)

    def test_processing_failure_is_500_and_retryable(self):
        event = _event("checkout.session.completed", _session(self.order))
        with patch("orders.webhooks.confirm_order_payment", side_effect=RuntimeError("db down")):
            resp = self._post(event)

        self.assertEqual(resp.status_code, 500)
        self.assertFalse(OrderEvent.objects.filter(provider_event_id="evt_1").exists())

        resp = self._post(event)
        self.assertEqual(resp.json()["status"], "processed")
        self.assertEqual(Order.objects.get(pk=self.order.pk).payment_status, Order.PaymentStatus.PAID)

    def test_payment_failed_marks_unpaid_order_failed(self):
        intent = {
            "id": "pi_9",
            "object": "payment_intent",
            "metadata": {"order_id": str(self.order.pk)},
            "last_payment_error": {"message": "Your card was declined.", "code": "card_declined"},
        }
        resp = self._post(_event("payment_intent.payment_failed", intent, event_id="evt_fail"))

        self.assertEqual(resp.json()["status"], "processed")
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.FAILED)
        self.assertEqual(self.order.events.get(type=OrderEvent.Type.PAYMENT_FAILED).message, "Your card was declined.")

    @override_settings(STRIPE_CHARGEBACK_FEE_CENTS=1500)
    def test_dispute_records_chargeback_and_fee(self):
        Order.objects.filter(pk=self.order.pk).update(
            payment_intent_id="pi_1",
            payment_status=Order.PaymentStatus.PAID,
            status=Order.Status.CONFIRMED,
        )
        dispute = {"id": "dp_1", "object": "dispute", "amount": 100000, "payment_intent": "pi_1", "reason": "fraudulent"}

        resp = self._post(_event("charge.dispute.created", dispute, event_id="evt_dp"))
        replay = self._post(_event("charge.dispute.created", dispute, event_id="evt_dp"))

        self.assertEqual(resp.json()["status"], "processed")
        self.assertEqual(replay.json()["status"], "duplicate")
        amounts = dict(LedgerEntry.objects.values_list("type", "amount_cents"))
        self.assertEqual(amounts, {"chargeback": -100000, "chargeback_fee": -1500})
        self.assertTrue(Order.objects.get(pk=self.order.pk).manual_review)

    def test_free_checkout_confirms_the_order(self):
        resp = self._post(_event("checkout.session.completed", _session(self.order, payment_status="no_payment_required")))

        self.assertEqual(resp.json()["status"], "processed")
        self.assertEqual(Order.objects.get(pk=self.order.pk).payment_status, Order.PaymentStatus.PAID)

    def test_finalization_leaves_its_own_history_row(self):
        self._post(_event("checkout.session.completed", _session(self.order)))

        finalized = self.order.events.get(type=OrderEvent.Type.PAYMENT_FINALIZED)
        self.assertEqual(finalized.provider_event_id, "")
        self.assertEqual(finalized.payload["providerEventId"], "evt_1")
        self.assertEqual(
            self.order.events.get(provider="stripe", provider_event_id="evt_1").type,
            OrderEvent.Type.CHECKOUT_COMPLETED,
        )


def _signature_header(payload: str, secret: str, timestamp: int | None = None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


class SignedStripeWebhookTests(TestCase):
    """Real signature check, no patching of the Stripe boundary."""

    def setUp(self):
        make_product("tee-black", stock=5)
        make_default_rules()
        self.order = make_order(lines=[("tee-black", 2, 50000)])
        self.body = json.dumps(
            {
                "id": "evt_signed",
                "object": "event",
                "type": "checkout.session.completed",
                "data": {"object": _session(self.order)},
            }
        )

    def _post(self, signature: str):
        return self.client.post(
            WEBHOOK_URL,
            data=self.body,
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=signature,
        )

    def test_signed_delivery_confirms_the_order(self):
        with self.captureOnCommitCallbacks(execute=True):
            resp = self._post(_signature_header(self.body, "whsec_dummy"))

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"received": True, "status": "processed"})
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.PAID)
        self.assertEqual(LedgerEntry.objects.filter(type=LedgerEntry.Type.SALE).count(), 1)
        self.assertEqual(OrderPayout.objects.filter(order=self.order).count(), 3)

    def test_wrong_secret_is_rejected(self):
        resp = self._post(_signature_header(self.body, "whsec_other"))

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(Order.objects.get(pk=self.order.pk).payment_status, Order.PaymentStatus.UNPAID)

    def test_stale_timestamp_is_rejected(self):
        resp = self._post(_signature_header(self.body, "whsec_dummy", timestamp=int(time.time()) - 3600))
        self.assertEqual(resp.status_code, 400)
