# payments/seeding.py
from __future__ import annotations

import logging
from decimal import Decimal

from django.db import transaction

from .models import Partner, PayoutRule

logger = logging.getLogger(__name__)

DEFAULT_PARTNERS = (
    ("ZABR", "Zabr", Partner.Kind.PERSON),
    ("KOSTA", "Kosta", Partner.Kind.PERSON),
    ("TOMAS", "Tomáš", Partner.Kind.PERSON),
    ("GROWTH_FUND", "Growth Fund", Partner.Kind.FUND),
)

DEFAULT_RULES = (
    ("ZABR", Decimal("20.00"), "Default 20% share"),
    ("KOSTA", Decimal("40.00"), "Default 40% share"),
    ("TOMAS", Decimal("40.00"), "Default 40% share"),
)


@transaction.atomic
def seed_partners_and_rules() -> tuple[int, int]:
    """Create missing partners; create default rules only when no rules exist. Returns (partners, rules) created."""
    partners_created = 0
    for code, name, kind in DEFAULT_PARTNERS:
        _, created = Partner.objects.get_or_create(code=code, defaults={"display_name": name, "kind": kind})
        if created:
            partners_created += 1
            logger.info("created partner %s", code)

    rules_created = 0
    if not PayoutRule.objects.exists():
        for code, percent, notes in DEFAULT_RULES:
            PayoutRule.objects.create(partner_code=code, percent=percent, notes=notes)
            rules_created += 1
            logger.info("created payout rule %s %s%%", code, percent)

    return partners_created, rules_created
