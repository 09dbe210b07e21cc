"""
Fix Order Enrollment Command - Academy Storefront

Dieses Management Command repariert eine bezahlte Bestellung, deren
Einschreibungen fehlen oder unvollständig sind.

Features:
- Markiert die Bestellung über die Reconciliation Engine als bezahlt, falls nötig
- Führt den Enrollment-Fan-out erneut aus; Vorhandenes wird übersprungen
- Ausgabe der angelegten Einschreibungen und Fehler pro Kurs

Usage:
    python manage.py fix_order_enrollment ORD-LX2K9A1B-3F9A1C2D

Author: Academy Development Team
Version: 1.0.0
"""

import logging

from django.core.management.base import BaseCommand, CommandError

from elearning.payments.exceptions import PaymentFlowError
from elearning.payments.reconciliation import ReconciliationEngine

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Markiert eine Bestellung als bezahlt (falls nötig) und führt die Einschreibung erneut aus."

    def add_arguments(self, parser):
        parser.add_argument("reference_id", help="Referenz-ID der Bestellung (ORD-...)")

    def handle(self, *args, **options):
        reference_id = options["reference_id"]
        try:
            outcome = ReconciliationEngine().repair_order(reference_id)
        except PaymentFlowError as e:
            raise CommandError(f"{reference_id}: {e.message}")

        order = outcome.order
        self.stdout.write(f"Order {order.reference_id}: {order.status} / {order.payment_status}")

        if outcome.fanout_error:
            raise CommandError(f"Fan-out failed: {outcome.fanout_error}")

        report = outcome.fanout
        if report is None:
            self.stdout.write(self.style.WARNING("Fan-out did not run."))
            return

        self.stdout.write(f"  edX username: {report.edx_username or '-'}")
        self.stdout.write(f"  Enrollments created: {report.enrollments_created}")
        self.stdout.write(f"  Tuition packs granted: {report.tuition_purchases_created}")
        for title in report.remote_enrolled:
            self.stdout.write(f"  edX enrolled: {title}")
        for failure in report.remote_failures:
            self.stdout.write(self.style.ERROR(f"  edX failed: {failure['course_id']} ({failure['error']})"))

        if report.remote_failures:
            self.stdout.write(self.style.WARNING("Repair finished with remote failures."))
        else:
            self.stdout.write(self.style.SUCCESS("Repair finished."))
