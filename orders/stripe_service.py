# orders/stripe_service.py
"""
The only module that talks to the Stripe SDK. Tests patch these functions.

Everything returned from here is a plain dict: StripeObject stopped being a
dict subclass in stripe 15, and the webhook and verify code read payloads
with .get().
"""

from __future__ import annotations

import json
from typing import Any

import stripe
from django.conf import settings

PAID_SESSION_STATUSES = ("paid", "no_payment_required")


def _stripe_init() -> None:
    stripe.api_key = settings.STRIPE_SECRET_KEY


def verify_and_parse_webhook(payload: bytes, sig_header: str) -> dict:
    """
    Checks the Stripe-Signature header and returns the event body as a dict.
    Raises ValueError for a malformed body and stripe.SignatureVerificationError
    for a bad signature.
    """
    _stripe_init()
    if hasattr(payload, "decode"):
        payload = payload.decode("utf-8")
    stripe.WebhookSignature.verify_header(payload, sig_header, settings.STRIPE_WEBHOOK_SECRET)
    event = json.loads(payload)
    if not isinstance(event, dict):
        raise ValueError("webhook body is not a JSON object")
    return event


def retrieve_checkout_session(session_id: str) -> dict:
    _stripe_init()
    session = stripe.checkout.Session.retrieve(session_id)
    return session.to_dict()


def session_is_paid(session: dict) -> bool:
    return (session.get("payment_status") or "") in PAID_SESSION_STATUSES


def dispute_fee_cents(dispute: Any) -> int:
    """
    Stripe attaches the dispute fee as a balance transaction. Falls back to
    STRIPE_CHARGEBACK_FEE_CENTS when the dispute carries none.
    """
    fee = 0
    for txn in (dispute or {}).get("balance_transactions") or []:
        try:
            fee += int(txn.get("fee") or 0)
        except (TypeError, ValueError):
            continue
    if fee > 0:
        return fee
    return int(getattr(settings, "STRIPE_CHARGEBACK_FEE_CENTS", 0) or 0)
