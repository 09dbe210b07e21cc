"""
Fix User edX Command - Academy Storefront

Dieses Management Command bringt einen Käufer auf der Open-edX-Plattform
auf den Stand seiner bezahlten Bestellungen: Registrierung, falls sie fehlt,
und Einschreibung in alle gekauften Kurse. Kurse, deren Einschreibung auch
nach der Reparatur fehlt, werden über die Bulk-Einschreibung nachgeholt.

Usage:
    python manage.py fix_user_edx student@example.com

Author: Academy Development Team
Version: 1.0.0
"""

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from core.edx_integration.client import edx_client
from elearning.catalog.models import Course
from elearning.payments.models import OrderStatus
from elearning.payments.reconciliation import ReconciliationEngine
from elearning.payments.store import OrderStore

User = get_user_model()


class Command(BaseCommand):
    help = "Registriert einen Käufer auf edX und holt fehlende Einschreibungen nach."

    def add_arguments(self, parser):
        parser.add_argument("email", help="E-Mail-Adresse des Käufers")

    def handle(self, *args, **options):
        email = options["email"]
        user = User.objects.filter(email__iexact=email).first()
        if user is None:
            raise CommandError(f"User not found: {email}")

        orders = list(user.orders.filter(status=OrderStatus.COMPLETED).order_by("created_at"))
        if not orders:
            self.stdout.write(self.style.WARNING(f"{email} has no completed orders."))
            return

        engine = ReconciliationEngine()
        failures = 0
        failed_course_ids = []
        for order in orders:
            outcome = engine.repair_order(order.reference_id)
            report = outcome.fanout
            if outcome.fanout_error or report is None:
                failures += 1
                self.stdout.write(self.style.ERROR(f"{order.reference_id}: {outcome.fanout_error}"))
                continue
            for failure in report.remote_failures:
                if failure["course_id"] not in failed_course_ids:
                    failed_course_ids.append(failure["course_id"])
            self.stdout.write(
                f"{order.reference_id}: {report.enrollments_created} created, "
                f"{len(report.remote_enrolled)} enrolled on edX, "
                f"{len(report.remote_failures)} failed"
            )

        if failed_course_ids:
            recovered = self.bulk_enroll(user, failed_course_ids)
            failures += len([course_id for course_id in failed_course_ids if course_id not in recovered])

        if failures:
            self.stdout.write(self.style.WARNING(f"Finished with {failures} failure(s)."))
        else:
            self.stdout.write(self.style.SUCCESS("Finished."))

    def bulk_enroll(self, user, course_ids):
        """Retry the failed courses through the bulk endpoint; returns the recovered ids."""
        self.stdout.write(f"Trying bulk enrollment for {len(course_ids)} course(s)...")
        result = edx_client.bulk_enroll([user.email], course_ids, auto_enroll=True)
        if not result.success:
            self.stdout.write(self.style.ERROR(f"Bulk enrollment failed: {result.error_message}"))
            return []

        store = OrderStore()
        recovered = result.enrolled_courses(user.email)
        for course in Course.objects.filter(edx_course_id__in=recovered):
            enrollment = store.get_enrollment(user, course=course)
            if enrollment is not None and not enrollment.edx_enrolled:
                mode = course.edx_enrollment_mode or settings.EDX_DEFAULT_ENROLLMENT_MODE
                store.mark_enrollment_remote(enrollment, mode, course.edx_course_id)
            self.stdout.write(f"  bulk enrolled: {course.edx_course_id}")

        for course_id in course_ids:
            if course_id not in recovered:
                self.stdout.write(self.style.ERROR(f"  still missing: {course_id}"))
        return recovered
