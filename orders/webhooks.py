# orders/webhooks.py
"""
Stripe webhook endpoint.

Each delivery is processed inside one transaction together with its event
log row, so a failure rolls back everything (including the dedupe row) and
Stripe's redelivery retries it. A replayed event id hits the unique
(provider, provider_event_id) constraint and is acknowledged as a duplicate.

Responses: 400 bad signature, 404 unknown order, 500 processing failure,
200 otherwise (processed, duplicate, ignored).
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Optional

import stripe
from django.db import transaction
from django.http import HttpResponseBadRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from refunds.services import handle_chargeback

from .confirmation import confirm_order_payment
from .events import record_order_event
from .models import Order, OrderEvent
from .services import mark_payment_failed
from .stripe_service import dispute_fee_cents, session_is_paid, verify_and_parse_webhook

logger = logging.getLogger(__name__)

PROCESSED = "processed"
DUPLICATE = "duplicate"
IGNORED = "ignored"


def _clean_order_id(raw: Any) -> Optional[str]:
    try:
        return str(uuid.UUID(str(raw)))
    except (TypeError, ValueError):
        return None


def resolve_order_id(obj: dict) -> Optional[str]:
    """metadata.order_id / metadata.orderId, then client_reference_id, then payment intent lookup."""
    metadata = obj.get("metadata") or {}
    for candidate in (metadata.get("order_id"), metadata.get("orderId"), obj.get("client_reference_id")):
        order_id = _clean_order_id(candidate) if candidate else None
        if order_id:
            return order_id

    intent = obj.get("payment_intent")
    if not intent and str(obj.get("object") or "") == "payment_intent":
        intent = obj.get("id")
    if isinstance(intent, dict):
        intent = intent.get("id")
    if intent:
        pk = Order.objects.filter(payment_intent_id=str(intent)).values_list("pk", flat=True).first()
        if pk:
            return str(pk)
    return None


def _confirm_from_event(
    *,
    event_id: str,
    event_type: str,
    order_id: str,
    payment_intent_id: str = "",
    session_id: str = "",
) -> str:
    order = Order.objects.filter(pk=order_id).first()
    if order is None:
        raise Order.DoesNotExist(order_id)

    recorded = record_order_event(
        order=order,
        type=event_type,
        provider=OrderEvent.Provider.STRIPE,
        provider_event_id=event_id,
        payload={"sessionId": session_id, "paymentIntentId": payment_intent_id},
    )
    if not recorded:
        return DUPLICATE

    confirm_order_payment(
        order_id=order.pk,
        provider=OrderEvent.Provider.STRIPE,
        provider_event_id=event_id,
        payment_intent_id=payment_intent_id,
        session_id=session_id,
        source="webhook",
    )
    return PROCESSED


def _handle_checkout_completed(event_id: str, session: dict) -> str:
    order_id = resolve_order_id(session)
    if not order_id:
        logger.warning("checkout.session.completed without order reference event=%s", event_id)
        return IGNORED

    if not session_is_paid(session):
        # Async payment methods complete later via payment_intent.succeeded.
        logger.info("checkout completed but unpaid order=%s event=%s", order_id, event_id)
        return IGNORED

    return _confirm_from_event(
        event_id=event_id,
        event_type=OrderEvent.Type.CHECKOUT_COMPLETED,
        order_id=order_id,
        payment_intent_id=str(session.get("payment_intent") or ""),
        session_id=str(session.get("id") or ""),
    )


def _handle_payment_succeeded(event_id: str, intent: dict) -> str:
    order_id = resolve_order_id(intent)
    if not order_id:
        return IGNORED

    return _confirm_from_event(
        event_id=event_id,
        event_type=OrderEvent.Type.PAYMENT_SUCCEEDED,
        order_id=order_id,
        payment_intent_id=str(intent.get("id") or ""),
    )


def _handle_payment_failed(event_id: str, intent: dict) -> str:
    order_id = resolve_order_id(intent)
    if not order_id:
        return IGNORED

    order = Order.objects.filter(pk=order_id).first()
    if order is None:
        raise Order.DoesNotExist(order_id)

    error = intent.get("last_payment_error") or {}
    reason = str(error.get("message") or "")

    recorded = record_order_event(
        order=order,
        type=OrderEvent.Type.PAYMENT_FAILED,
        provider=OrderEvent.Provider.STRIPE,
        provider_event_id=event_id,
        message=reason,
        payload={"paymentIntentId": intent.get("id"), "code": error.get("code")},
    )
    if not recorded:
        return DUPLICATE

    mark_payment_failed(order.pk, reason=reason)
    return PROCESSED


def _handle_dispute_created(event_id: str, dispute: dict) -> str:
    order_id = resolve_order_id(dispute)
    if not order_id:
        logger.warning("dispute for unknown payment intent=%s event=%s", dispute.get("payment_intent"), event_id)
        return IGNORED

    result = handle_chargeback(
        order_id=order_id,
        chargeback_cents=int(dispute.get("amount") or 0),
        fee_cents=dispute_fee_cents(dispute),
        provider_event_id=event_id,
        reason=str(dispute.get("reason") or ""),
    )
    return DUPLICATE if result.skipped else PROCESSED


HANDLERS: dict[str, Callable[[str, dict], str]] = {
    "checkout.session.completed": _handle_checkout_completed,
    "payment_intent.succeeded": _handle_payment_succeeded,
    "payment_intent.payment_failed": _handle_payment_failed,
    "charge.dispute.created": _handle_dispute_created,
}


@csrf_exempt
@require_POST
def stripe_webhook(request):
    payload = request.body
    sig_header = request.headers.get("Stripe-Signature", "")

    if not sig_header:
        return HttpResponseBadRequest("Missing signature")

    try:
        event = verify_and_parse_webhook(payload, sig_header)
    except (ValueError, stripe.SignatureVerificationError):
        logger.warning("stripe webhook signature verification failed")
        return HttpResponseBadRequest("Invalid signature")

    event_id = str(event.get("id") or "")
    event_type = str(event.get("type") or "")
    data_object = (event.get("data") or {}).get("object") or {}

    handler = HANDLERS.get(event_type)
    if handler is None or not event_id:
        logger.info("stripe webhook ignored type=%s event=%s", event_type, event_id)
        return JsonResponse({"received": True, "status": IGNORED})

    try:
        with transaction.atomic():
            outcome = handler(event_id, data_object)
    except Order.DoesNotExist:
        logger.warning("stripe webhook for unknown order type=%s event=%s", event_type, event_id)
        return JsonResponse({"received": False, "error": "order not found"}, status=404)
    except Exception:
        logger.exception("stripe webhook processing failed type=%s event=%s", event_type, event_id)
        return JsonResponse({"received": False, "error": "processing failed"}, status=500)

    logger.info("stripe webhook %s type=%s event=%s", outcome, event_type, event_id)
    return JsonResponse({"received": True, "status": outcome})
