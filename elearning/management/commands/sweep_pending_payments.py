"""
Sweep Pending Payments Command - Academy Storefront

Dieses Management Command fragt für Bestellungen, die zu lange in
PENDING_PAYMENT stehen, den Transaktionsstatus bei WaafiPay ab.
Gedacht für einen regelmäßigen Cronjob als Ersatz für verlorene Callbacks.

Usage:
    python manage.py sweep_pending_payments
    python manage.py sweep_pending_payments --minutes 60

Author: Academy Development Team
Version: 1.0.0
"""

from datetime import timedelta

from django.core.management.base import BaseCommand

from elearning.payments.reconciliation import ReconciliationEngine


class Command(BaseCommand):
    help = "Gleicht hängende Zahlungen (PENDING_PAYMENT) mit dem Gateway ab."

    def add_arguments(self, parser):
        parser.add_argument(
            "--minutes",
            type=int,
            default=15,
            help="Nur Bestellungen berücksichtigen, die älter als N Minuten sind (Standard: 15)",
        )

    def handle(self, *args, **options):
        minutes = max(0, options["minutes"])
        outcomes = ReconciliationEngine().sweep_stale_payments(timedelta(minutes=minutes))

        for outcome in outcomes:
            line = f"{outcome.order.reference_id}: {outcome.order.status} / {outcome.payment_status}"
            if outcome.fanout_error:
                line += f" (fan-out failed: {outcome.fanout_error})"
            self.stdout.write(line)

        self.stdout.write(self.style.SUCCESS(f"{len(outcomes)} order(s) updated."))
