# orders/tests/test_views.py

from __future__ import annotations

import json
import uuid
from unittest.mock import patch

import stripe
from django.contrib.auth import get_user_model
from django.test import TestCase

from orders.confirmation import PaymentConfirmationError
from orders.models import Order, OrderEvent
from orders.tests.factories import make_order, make_product
from payments.models import LedgerEntry
from products.models import Product

VERIFY_URL = "/orders/checkout/verify/"


class PlaceOrderTests(TestCase):
    def setUp(self):
        make_product("tee-black", stock=3)

    def _post(self, body: dict):
        return self.client.post("/orders/place/", data=json.dumps(body), content_type="application/json")

    def test_legacy_cart_payload_creates_pending_order(self):
        resp = self._post(
            {
                "customer": {"name": "Jan Novak", "email": "jan@example.cz", "city": "Brno"},
                "items": [{"productId": "tee-black", "name": "Tee", "price": 500, "size": "L", "quantity": 2}],
                "paymentMethod": "card",
            }
        )

        self.assertEqual(resp.status_code, 201)
        data = resp.json()
        self.assertEqual(data["status"], "pending")
        self.assertEqual(data["paymentStatus"], "unpaid")
        self.assertEqual(data["totalCents"], 100000)
        self.assertIsNone(data["stockDeductedAt"])
        self.assertEqual(Order.objects.get(pk=data["id"]).payload.items[0].size, "L")

    def test_insufficient_stock_is_400_with_details(self):
        resp = self._post(
            {
                "customer": {"name": "Jan", "email": "jan@example.cz"},
                "items": {"version": 2, "items": [{"product_id": "tee-black", "quantity": 5, "unit_price_cents": 100}]},
            }
        )

        self.assertEqual(resp.status_code, 400)
        self.assertIn("Insufficient stock.", resp.json()["details"])

    def test_non_json_body_is_400(self):
        resp = self.client.post("/orders/place/", data="nope", content_type="text/plain")
        self.assertEqual(resp.status_code, 400)


class VerifyCheckoutSessionTests(TestCase):
    def setUp(self):
        make_product("tee-black", stock=5)
        self.order = make_order(lines=[("tee-black", 1, 50000)])

    def _session(self, **extra) -> dict:
        data = {
            "id": "cs_1",
            "payment_status": "paid",
            "payment_intent": "pi_1",
            "metadata": {"order_id": str(self.order.pk)},
        }
        data.update(extra)
        return data

    def _get(self, session=None, *, side_effect=None, session_id="cs_1"):
        with patch("orders.views.retrieve_checkout_session", return_value=session, side_effect=side_effect):
            return self.client.get(VERIFY_URL, {"session_id": session_id} if session_id else {})

    def test_paid_session_confirms_once(self):
        first = self._get(self._session())
        second = self._get(self._session())

        self.assertEqual(first.json()["paymentStatus"], "paid")
        self.assertEqual(first.json()["status"], "confirmed")
        self.assertEqual(second.json()["paymentStatus"], "paid")
        self.assertEqual(LedgerEntry.objects.filter(type=LedgerEntry.Type.SALE).count(), 1)
        self.assertEqual(Product.objects.get(pk="tee-black").stock, 4)
        self.assertTrue(
            OrderEvent.objects.filter(type=OrderEvent.Type.PAYMENT_VERIFIED, provider_event_id="verify:cs_1").exists()
        )

    def test_unpaid_session_reports_pending(self):
        resp = self._get(self._session(payment_status="unpaid"))

        self.assertEqual(resp.json()["paymentStatus"], "pending")
        self.assertFalse(LedgerEntry.objects.exists())

    def test_provider_error_is_unverified_not_missing(self):
        resp = self._get(side_effect=RuntimeError("stripe unreachable"))

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["paymentStatus"], "unverified")

    def test_confirmation_error_is_unverified_and_rolled_back(self):
        with patch("orders.views.confirm_order_payment", side_effect=PaymentConfirmationError("boom")):
            resp = self._get(self._session())

        self.assertEqual(resp.json(), {"paymentStatus": "unverified", "orderId": str(self.order.pk)})
        self.assertFalse(OrderEvent.objects.filter(provider_event_id="verify:cs_1").exists())

    def test_unknown_order_is_404(self):
        resp = self._get(self._session(metadata={"order_id": str(uuid.uuid4())}))
        self.assertEqual(resp.status_code, 404)

    def test_session_id_is_required(self):
        self.assertEqual(self._get(session_id="").status_code, 400)

    def test_free_session_confirms(self):
        resp = self._get(self._session(payment_status="no_payment_required"))

        self.assertEqual(resp.json()["paymentStatus"], "paid")
        self.assertEqual(LedgerEntry.objects.filter(type=LedgerEntry.Type.SALE).count(), 1)

    def test_sdk_session_object_is_read(self):
        sdk_session = stripe.checkout.Session.construct_from(self._session(), "sk_test_dummy")

        with patch("orders.stripe_service.stripe.checkout.Session.retrieve", return_value=sdk_session) as retrieve:
            resp = self.client.get(VERIFY_URL, {"session_id": "cs_1"})

        retrieve.assert_called_once_with("cs_1")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["paymentStatus"], "paid")
        self.assertEqual(Order.objects.get(pk=self.order.pk).payment_intent_id, "pi_1")


class MyOrdersTests(TestCase):
    def test_lists_only_the_buyers_orders(self):
        User = get_user_model()
        buyer = User.objects.create_user("buyer", password="pw-12345")
        other = User.objects.create_user("other", password="pw-12345")
        mine = make_order(buyer=buyer)
        make_order(buyer=other)

        self.client.force_login(buyer)
        resp = self.client.get("/orders/mine/")

        self.assertEqual([o["id"] for o in resp.json()["orders"]], [str(mine.pk)])

    def test_requires_login(self):
        self.assertEqual(self.client.get("/orders/mine/").status_code, 302)
