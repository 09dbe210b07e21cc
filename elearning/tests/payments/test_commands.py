from datetime import timedelta
from io import StringIO
from unittest.mock import patch

from django.core.management import CommandError, call_command
from django.test import TestCase
from django.utils import timezone

from core.edx_integration.results import BulkEnrollmentResult, EnrollmentResult
from elearning.payments.models import Enrollment, Order, OrderStatus
from elearning.payments.store import OrderStore

from ..factories import fake_edx, fake_gateway, make_course, make_order, make_user

"""
    Tests für die Management Commands zur Reparatur und Kontrolle von Bestellungen.
"""


class CommandTestCase(TestCase):
    def setUp(self):
        self.user = make_user()
        self.course = make_course()
        self.order = make_order(self.user, self.course)
        self.gateway = fake_gateway()
        self.edx = fake_edx()
        for target, replacement in (
            ("elearning.payments.reconciliation.waafipay_client", self.gateway),
            ("elearning.payments.fanout.edx_client", self.edx),
            ("elearning.management.commands.fix_user_edx.edx_client", self.edx),
        ):
            patcher = patch(target, replacement)
            patcher.start()
            self.addCleanup(patcher.stop)

    def call(self, *args, **options):
        out = StringIO()
        call_command(*args, stdout=out, **options)
        return out.getvalue()


class FixOrderEnrollmentTests(CommandTestCase):
    def test_marks_paid_and_enrolls(self):
        output = self.call("fix_order_enrollment", self.order.reference_id)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.COMPLETED)
        self.assertTrue(Enrollment.objects.get(user=self.user, course=self.course).edx_enrolled)
        self.assertIn("edX enrolled: Intro to Algebra", output)
        self.assertIn("Repair finished.", output)

    def test_reports_remote_failures(self):
        self.edx.enroll_user_in_course.side_effect = None
        self.edx.enroll_user_in_course.return_value = EnrollmentResult(success=False, error_message="course closed")

        output = self.call("fix_order_enrollment", self.order.reference_id)

        self.assertIn("course closed", output)
        self.assertIn("remote failures", output)

    def test_unknown_order(self):
        with self.assertRaises(CommandError):
            self.call("fix_order_enrollment", "ORD-NOPE-00000000")

    def test_refunded_order(self):
        self.order.status = OrderStatus.REFUNDED
        self.order.save()

        with self.assertRaises(CommandError):
            self.call("fix_order_enrollment", self.order.reference_id)


class CheckOrderTests(CommandTestCase):
    def test_prints_order_state(self):
        OrderStore().create_pending_payment(self.order, transaction_id="TX-1")

        output = self.call("check_order", self.order.reference_id)

        self.assertIn(self.order.reference_id, output)
        self.assertIn("PENDING_PAYMENT", output)
        self.assertIn("tx=TX-1", output)
        self.assertIn("[course] Intro to Algebra", output)

    def test_unknown_order(self):
        with self.assertRaises(CommandError):
            self.call("check_order", "ORD-NOPE-00000000")


class SweepPendingPaymentsTests(CommandTestCase):
    def test_sweeps_stale_orders(self):
        OrderStore().create_pending_payment(self.order, transaction_id="TX-1")
        Order.objects.filter(pk=self.order.pk).update(created_at=timezone.now() - timedelta(hours=1))

        output = self.call("sweep_pending_payments", "--minutes", "30")

        self.assertIn(f"{self.order.reference_id}: COMPLETED / APPROVED", output)
        self.assertIn("1 order(s) updated.", output)

    def test_nothing_to_sweep(self):
        output = self.call("sweep_pending_payments")

        self.assertIn("0 order(s) updated.", output)
        self.gateway.get_transaction_info.assert_not_called()


class FixUserEdxTests(CommandTestCase):
    def test_repairs_completed_orders(self):
        Order.objects.filter(pk=self.order.pk).update(status=OrderStatus.COMPLETED, payment_status="APPROVED")

        output = self.call("fix_user_edx", "AHMED@example.com")

        self.assertIn(f"{self.order.reference_id}: 1 created, 1 enrolled on edX, 0 failed", output)
        self.assertIn("Finished.", output)
        self.edx.register_user.assert_called_once()
        self.edx.bulk_enroll.assert_not_called()

    def test_user_without_completed_orders(self):
        output = self.call("fix_user_edx", "ahmed@example.com")

        self.assertIn("no completed orders", output)
        self.edx.register_user.assert_not_called()

    def test_unknown_user(self):
        with self.assertRaises(CommandError):
            self.call("fix_user_edx", "nobody@example.com")

    def test_failed_courses_fall_back_to_bulk_enrollment(self):
        Order.objects.filter(pk=self.order.pk).update(status=OrderStatus.COMPLETED, payment_status="APPROVED")
        self.edx.enroll_user_in_course.side_effect = None
        self.edx.enroll_user_in_course.return_value = EnrollmentResult(success=False, error_message="mode rejected")
        self.edx.bulk_enroll.return_value = BulkEnrollmentResult(success=True, result={
            "courses": {
                self.course.edx_course_id: {
                    "action": "enroll",
                    "results": [{"identifier": "ahmed@example.com", "after": {"enrollment": True}}],
                },
            },
        })

        output = self.call("fix_user_edx", "ahmed@example.com")

        self.edx.bulk_enroll.assert_called_once_with(
            ["ahmed@example.com"], [self.course.edx_course_id], auto_enroll=True
        )
        self.assertIn(f"bulk enrolled: {self.course.edx_course_id}", output)
        self.assertIn("Finished.", output)
        self.assertTrue(Enrollment.objects.get(user=self.user, course=self.course).edx_enrolled)

    def test_bulk_enrollment_failure_is_reported(self):
        Order.objects.filter(pk=self.order.pk).update(status=OrderStatus.COMPLETED, payment_status="APPROVED")
        self.edx.enroll_user_in_course.side_effect = None
        self.edx.enroll_user_in_course.return_value = EnrollmentResult(success=False, error_message="mode rejected")
        self.edx.bulk_enroll.return_value = BulkEnrollmentResult(success=False, error_message="forbidden")

        output = self.call("fix_user_edx", "ahmed@example.com")

        self.assertIn("Bulk enrollment failed: forbidden", output)
        self.assertIn("Finished with 1 failure(s).", output)
        self.assertFalse(Enrollment.objects.get(user=self.user, course=self.course).edx_enrolled)
