# payments/management/commands/seed_payout_rules.py
from __future__ import annotations

from django.core.management.base import BaseCommand

from payments.seeding import seed_partners_and_rules


class Command(BaseCommand):
    help = "Create the default partners and payout rules (rules only when none exist yet)."

    def handle(self, *args, **options):
        partners, rules = seed_partners_and_rules()
        self.stdout.write(self.style.SUCCESS(f"Partners created: {partners}. Payout rules created: {rules}."))
