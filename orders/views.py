# orders/views.py

from __future__ import annotations

import json
import logging

from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.db import transaction
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from .confirmation import confirm_order_payment
from .events import record_order_event
from .items import decode_order_items
from .models import Order, OrderEvent
from .serializers import order_summary
from .services import CustomerInfo, create_order, get_order, orders_for_user
from .stripe_service import retrieve_checkout_session, session_is_paid
from .webhooks import resolve_order_id

logger = logging.getLogger(__name__)


def _json_body(request) -> dict:
    try:
        data = json.loads(request.body or b"{}")
    except ValueError:
        raise ValidationError("Request body must be JSON.")
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


@require_POST
def place_order(request):
    """
    Create a pending/unpaid order from a checkout draft.

    Body: {"customer": {...}, "items": <items payload>, "paymentMethod": "card",
    "totalCents": 123}. Stock is checked, not reserved.
    """
    try:
        data = _json_body(request)
        raw_customer = data.get("customer") or {}
        customer = CustomerInfo(
            name=str(raw_customer.get("name") or ""),
            email=str(raw_customer.get("email") or ""),
            phone=str(raw_customer.get("phone") or ""),
            address=str(raw_customer.get("address") or ""),
            city=str(raw_customer.get("city") or ""),
            zip=str(raw_customer.get("zip") or ""),
            country=str(raw_customer.get("country") or "CZ"),
        )
        total = data.get("totalCents")
        order = create_order(
            customer=customer,
            items=decode_order_items(data.get("items")),
            payment_method=str(data.get("paymentMethod") or Order.PaymentMethod.CARD),
            total_cents=int(total) if total is not None else None,
            buyer=request.user,
        )
    except (ValidationError, TypeError, ValueError) as exc:
        messages = getattr(exc, "messages", None) or [str(exc)]
        return JsonResponse({"error": "invalid order", "details": messages}, status=400)

    return JsonResponse(order_summary(order), status=201)


@require_GET
def verify_checkout_session(request):
    """
    Client poll after returning from Stripe Checkout.

    If Stripe says the session is paid, runs the same confirmation as the
    webhook. Provider errors report paymentStatus "unverified"; they never
    claim the order is missing.
    """
    session_id = (request.GET.get("session_id") or "").strip()
    if not session_id:
        return JsonResponse({"error": "session_id is required"}, status=400)

    try:
        session = retrieve_checkout_session(session_id)
    except Exception:
        logger.exception("checkout session lookup failed session=%s", session_id)
        return JsonResponse({"paymentStatus": "unverified", "orderId": None})

    order_id = resolve_order_id(session)
    order = get_order(order_id) if order_id else None
    if order is None:
        return JsonResponse({"error": "order not found", "paymentStatus": "unknown"}, status=404)

    if session_is_paid(session) and not order.is_paid:
        try:
            with transaction.atomic():
                recorded = record_order_event(
                    order=order,
                    type=OrderEvent.Type.PAYMENT_VERIFIED,
                    provider=OrderEvent.Provider.STRIPE,
                    provider_event_id=f"verify:{session_id}",
                    payload={"sessionId": session_id},
                )
                if recorded:
                    confirm_order_payment(
                        order_id=order.pk,
                        provider=OrderEvent.Provider.STRIPE,
                        provider_event_id=f"verify:{session_id}",
                        payment_intent_id=str(session.get("payment_intent") or ""),
                        session_id=session_id,
                        source="verify",
                    )
        except Exception:
            logger.exception("payment confirmation from verify failed order=%s", order.pk)
            return JsonResponse({"paymentStatus": "unverified", "orderId": str(order.pk)})

        order.refresh_from_db()

    return JsonResponse(
        {
            "orderId": str(order.pk),
            "paymentStatus": "paid" if order.is_paid else "pending",
            "status": order.status,
        }
    )


@login_required
@require_GET
def my_orders(request):
    orders = [order_summary(o) for o in orders_for_user(request.user)[:100]]
    return JsonResponse({"orders": orders})
