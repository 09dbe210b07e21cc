from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase
from django.utils import timezone

from core.edx_integration.results import EnrollmentResult
from core.waafipay_integration.results import PurchaseResult, RefundResult, TransactionInfo
from elearning.payments.exceptions import (
    OrderNotCancellable,
    OrderNotFound,
    OrderNotPayable,
    PaymentFlowError,
    PaymentGatewayError,
    PaymentNotRefundable,
)
from elearning.payments.fanout import EnrollmentFanout
from elearning.payments.models import Enrollment, Order, OrderStatus, Payment, PaymentStatus
from elearning.payments.reconciliation import (
    ReconciliationEngine,
    map_gateway_state,
    order_status_for,
)

from ..factories import fake_edx, fake_gateway, make_course, make_order, make_user

"""
    Tests für die Zahlungsabstimmung: Callback, Verifikation, Sweep,
    Erstattung und Stornierung. Gateway und edX sind Fakes.
"""


def callback(reference_id, state="APPROVED", transaction_id="TX-1", **extra):
    payload = {
        "referenceId": reference_id,
        "transactionId": transaction_id,
        "state": state,
        "responseCode": "2001" if state == "APPROVED" else "5310",
        "responseMsg": "RCS_SUCCESS" if state == "APPROVED" else "RCS_USER_REJECTED",
    }
    payload.update(extra)
    return payload


class StateMappingTests(TestCase):
    def test_gateway_states(self):
        self.assertEqual(map_gateway_state("approved"), PaymentStatus.APPROVED)
        self.assertEqual(map_gateway_state("TIMEOUT"), PaymentStatus.TIMEOUT)
        self.assertEqual(map_gateway_state("SOMETHING_ELSE"), PaymentStatus.FAILED)
        self.assertEqual(map_gateway_state(None), PaymentStatus.FAILED)

    def test_order_status(self):
        self.assertEqual(order_status_for(PaymentStatus.APPROVED), OrderStatus.COMPLETED)
        self.assertEqual(order_status_for(PaymentStatus.PENDING), OrderStatus.PENDING_PAYMENT)
        self.assertEqual(order_status_for(PaymentStatus.CANCELLED), OrderStatus.CANCELLED)
        self.assertEqual(order_status_for(PaymentStatus.DECLINED), OrderStatus.FAILED)
        self.assertEqual(order_status_for(PaymentStatus.EXPIRED), OrderStatus.FAILED)


class EngineTestCase(TestCase):
    def setUp(self):
        self.user = make_user()
        self.course = make_course()
        self.order = make_order(self.user, self.course)
        self.gateway = fake_gateway()
        self.edx = fake_edx()
        self.engine = ReconciliationEngine(gateway=self.gateway, fanout=EnrollmentFanout(edx=self.edx))

    def start_payment(self, transaction_id="TX-1"):
        return self.engine.store.create_pending_payment(self.order, gateway_order_id="GW-1", transaction_id=transaction_id)

    def reload(self):
        self.order.refresh_from_db()
        return self.order


class CallbackTests(EngineTestCase):
    def test_approved_callback_completes_order_and_fans_out(self):
        payment = self.start_payment()

        outcome = self.engine.handle_callback(callback(self.order.reference_id, amount="29.90", currency="USD"))

        order = self.reload()
        self.assertEqual(order.status, OrderStatus.COMPLETED)
        self.assertEqual(order.payment_status, PaymentStatus.APPROVED)
        self.assertTrue(outcome.verified)
        self.assertTrue(outcome.transitioned)
        payment.refresh_from_db()
        self.assertEqual(payment.status, PaymentStatus.APPROVED)
        self.assertIsNotNone(payment.paid_at)
        self.assertEqual(Payment.objects.filter(order=order).count(), 1)
        self.assertTrue(Enrollment.objects.filter(user=self.user, course=self.course).exists())
        self.edx.enroll_user_in_course.assert_called_once()

    def test_duplicate_callback_is_idempotent(self):
        self.start_payment()
        payload = callback(self.order.reference_id)

        first = self.engine.handle_callback(payload)
        second = self.engine.handle_callback(payload)

        self.assertTrue(first.transitioned)
        self.assertFalse(second.transitioned)
        self.assertTrue(second.verified)
        self.assertEqual(Payment.objects.filter(order=self.order).count(), 1)
        self.assertEqual(Enrollment.objects.filter(user=self.user).count(), 1)
        self.edx.register_user.assert_called_once()
        self.edx.enroll_user_in_course.assert_called_once()

    def test_reference_with_query_suffix_is_matched(self):
        self.start_payment()

        self.engine.handle_callback(callback(f"{self.order.reference_id}?utm_source=hpp"))

        self.assertEqual(self.reload().status, OrderStatus.COMPLETED)

    def test_callback_without_pending_payment_creates_row(self):
        self.engine.handle_callback(callback(self.order.reference_id, transaction_id="TX-9"))

        payment = Payment.objects.get(order=self.order)
        self.assertEqual(payment.transaction_id, "TX-9")
        self.assertEqual(payment.amount, self.order.total)

    def test_declined_then_approved(self):
        self.start_payment()

        declined = self.engine.handle_callback(callback(self.order.reference_id, state="DECLINED"))
        self.assertEqual(self.reload().status, OrderStatus.FAILED)
        self.assertFalse(declined.verified)
        payment = Payment.objects.get(order=self.order)
        self.assertEqual(payment.error_code, "5310")
        self.edx.enroll_user_in_course.assert_not_called()

        approved = self.engine.handle_callback(callback(self.order.reference_id, transaction_id="TX-2"))

        self.assertTrue(approved.transitioned)
        self.assertEqual(self.reload().status, OrderStatus.COMPLETED)
        self.edx.enroll_user_in_course.assert_called_once()

    def test_cancelled_callback(self):
        self.start_payment()

        self.engine.handle_callback(callback(self.order.reference_id, state="CANCELLED"))

        order = self.reload()
        self.assertEqual(order.status, OrderStatus.CANCELLED)
        self.assertEqual(order.payment_status, PaymentStatus.CANCELLED)

    def test_late_decline_does_not_downgrade_paid_order(self):
        self.start_payment()
        self.engine.handle_callback(callback(self.order.reference_id))

        self.engine.handle_callback(callback(self.order.reference_id, state="DECLINED"))

        order = self.reload()
        self.assertEqual(order.status, OrderStatus.COMPLETED)
        self.assertEqual(order.payment_status, PaymentStatus.APPROVED)

    def test_second_approved_transaction_is_recorded_separately(self):
        self.start_payment()
        self.engine.handle_callback(callback(self.order.reference_id))

        outcome = self.engine.handle_callback(callback(self.order.reference_id, transaction_id="TX-2"))

        self.assertFalse(outcome.transitioned)
        self.assertEqual(
            set(Payment.objects.filter(order=self.order).values_list("transaction_id", flat=True)),
            {"TX-1", "TX-2"},
        )
        self.edx.enroll_user_in_course.assert_called_once()

    def test_callback_after_redirect_approval_fills_same_row(self):
        self.start_payment(transaction_id=None)
        self.engine.verify_payment(self.order.reference_id, self.user, callback_status="success")

        outcome = self.engine.handle_callback(
            callback(self.order.reference_id, transaction_id="TX1", amount="29.90", issuerTransactionId="ISS-9")
        )

        self.assertFalse(outcome.transitioned)
        payments = Payment.objects.filter(order=self.order)
        self.assertEqual(payments.count(), 1)
        payment = payments.get()
        self.assertEqual(payment.status, PaymentStatus.APPROVED)
        self.assertEqual(payment.transaction_id, "TX1")
        self.assertEqual(payment.issuer_transaction_id, "ISS-9")
        self.edx.enroll_user_in_course.assert_called_once()

    def test_refunded_order_ignores_signals(self):
        self.order.status = OrderStatus.REFUNDED
        self.order.payment_status = PaymentStatus.CANCELLED
        self.order.save()

        outcome = self.engine.handle_callback(callback(self.order.reference_id))

        self.assertEqual(self.reload().status, OrderStatus.REFUNDED)
        self.assertFalse(outcome.verified)
        self.assertFalse(Payment.objects.filter(order=self.order).exists())
        self.edx.register_user.assert_not_called()

    def test_amount_mismatch_is_still_applied(self):
        self.start_payment()

        with self.assertLogs("elearning.payments.reconciliation", level="WARNING") as logs:
            self.engine.handle_callback(callback(self.order.reference_id, amount="1.00"))

        self.assertEqual(self.reload().status, OrderStatus.COMPLETED)
        self.assertTrue(any("Amount mismatch" in line for line in logs.output))

    def test_missing_reference(self):
        with self.assertRaises(PaymentFlowError):
            self.engine.handle_callback({"state": "APPROVED"})

    def test_unknown_reference(self):
        with self.assertRaises(OrderNotFound):
            self.engine.handle_callback(callback("ORD-UNKNOWN-00000000"))

    def test_fanout_failure_keeps_payment(self):
        self.start_payment()
        self.edx.register_user.side_effect = RuntimeError("platform down")

        outcome = self.engine.handle_callback(callback(self.order.reference_id))

        self.assertEqual(self.reload().status, OrderStatus.COMPLETED)
        self.assertIsNone(outcome.fanout_error)
        self.assertTrue(Enrollment.objects.filter(user=self.user, course=self.course).exists())
        self.edx.enroll_user_in_course.assert_not_called()

    def test_unexpected_fanout_error_is_reported(self):
        self.start_payment()

        with patch.object(self.engine.fanout, "run", side_effect=RuntimeError("boom")):
            outcome = self.engine.handle_callback(callback(self.order.reference_id))

        self.assertEqual(outcome.fanout_error, "boom")
        self.assertEqual(self.reload().status, OrderStatus.COMPLETED)


class VerifyTests(EngineTestCase):
    def test_success_hint_completes_order(self):
        self.start_payment()

        outcome = self.engine.verify_payment(self.order.reference_id, self.user, callback_status="success")

        self.assertTrue(outcome.verified)
        self.assertEqual(self.reload().status, OrderStatus.COMPLETED)
        self.gateway.get_transaction_info.assert_not_called()

    def test_polls_gateway_for_pending_payment(self):
        self.start_payment()

        outcome = self.engine.verify_payment(self.order.reference_id, self.user)

        self.gateway.get_transaction_info.assert_called_once_with("TX-1")
        self.assertTrue(outcome.verified)
        self.assertEqual(self.reload().status, OrderStatus.COMPLETED)

    def test_gateway_still_pending(self):
        self.start_payment()
        self.gateway.get_transaction_info.return_value = TransactionInfo(success=True, state="PENDING")

        outcome = self.engine.verify_payment(self.order.reference_id, self.user)

        self.assertFalse(outcome.verified)
        self.assertEqual(outcome.payment_status, PaymentStatus.PENDING)
        self.assertEqual(self.reload().status, OrderStatus.PENDING_PAYMENT)

    def test_gateway_lookup_failure_returns_stored_state(self):
        self.start_payment()
        self.gateway.get_transaction_info.return_value = TransactionInfo(
            success=False, error_code="TIMEOUT", error_message="timed out"
        )

        outcome = self.engine.verify_payment(self.order.reference_id, self.user)

        self.assertFalse(outcome.verified)
        self.assertEqual(self.reload().status, OrderStatus.PENDING_PAYMENT)

    def test_paid_order_is_not_polled(self):
        self.start_payment()
        self.engine.handle_callback(callback(self.order.reference_id))

        outcome = self.engine.verify_payment(self.order.reference_id, self.user)

        self.assertTrue(outcome.verified)
        self.gateway.get_transaction_info.assert_not_called()

    def test_other_users_order_is_not_found(self):
        stranger = make_user(username="stranger", email="stranger@example.com")

        with self.assertRaises(OrderNotFound):
            self.engine.verify_payment(self.order.reference_id, stranger, callback_status="success")
        self.assertEqual(self.reload().status, OrderStatus.PENDING_PAYMENT)


class SweepTests(EngineTestCase):
    def test_sweeps_only_stale_pending_orders(self):
        self.start_payment()
        Order.objects.filter(pk=self.order.pk).update(created_at=timezone.now() - timedelta(minutes=30))
        fresh = make_order(self.user, self.course)
        self.engine.store.create_pending_payment(fresh, transaction_id="TX-FRESH")

        outcomes = self.engine.sweep_stale_payments(timedelta(minutes=15))

        self.assertEqual([outcome.order.pk for outcome in outcomes], [self.order.pk])
        self.assertEqual(self.reload().status, OrderStatus.COMPLETED)
        fresh.refresh_from_db()
        self.assertEqual(fresh.status, OrderStatus.PENDING_PAYMENT)

    def test_sweep_skips_orders_without_transaction(self):
        Order.objects.filter(pk=self.order.pk).update(created_at=timezone.now() - timedelta(hours=1))

        self.assertEqual(self.engine.sweep_stale_payments(timedelta(minutes=15)), [])
        self.gateway.get_transaction_info.assert_not_called()

    def test_sweep_continues_after_error(self):
        self.start_payment()
        other = make_order(self.user, self.course)
        self.engine.store.create_pending_payment(other, transaction_id="TX-2")
        Order.objects.update(created_at=timezone.now() - timedelta(hours=1))
        self.gateway.get_transaction_info.side_effect = [
            RuntimeError("gateway exploded"),
            TransactionInfo(success=True, transaction_id="TX-2", state="DECLINED"),
        ]

        outcomes = self.engine.sweep_stale_payments(timedelta(minutes=15))

        self.assertEqual(len(outcomes), 1)
        self.assertEqual(outcomes[0].payment_status, PaymentStatus.DECLINED)


class RepairTests(EngineTestCase):
    def test_repair_marks_unpaid_order_paid(self):
        outcome = self.engine.repair_order(self.order.reference_id)

        self.assertTrue(outcome.transitioned)
        self.assertEqual(self.reload().status, OrderStatus.COMPLETED)

    def test_repair_of_paid_order_reruns_fanout(self):
        self.start_payment()
        self.edx.enroll_user_in_course.side_effect = None
        self.edx.enroll_user_in_course.return_value = EnrollmentResult(success=False, error_message="platform down")
        self.engine.handle_callback(callback(self.order.reference_id))
        self.edx.enroll_user_in_course.return_value = EnrollmentResult(success=True, course_id=self.course.edx_course_id)

        outcome = self.engine.repair_order(self.order.reference_id)

        self.assertFalse(outcome.transitioned)
        self.assertEqual(outcome.fanout.remote_enrolled, [self.course.title])
        self.assertTrue(Enrollment.objects.get(user=self.user, course=self.course).edx_enrolled)

    def test_refunded_order_cannot_be_repaired(self):
        self.order.status = OrderStatus.REFUNDED
        self.order.save()

        with self.assertRaises(OrderNotPayable):
            self.engine.repair_order(self.order.reference_id)


class InitiateTests(EngineTestCase):
    def test_initiate_creates_pending_payment(self):
        initiation = self.engine.initiate_payment(self.order.reference_id, self.user, payer_phone="615550000")

        self.assertEqual(initiation.hpp_url, "https://gateway.test/hpp/abc")
        payment = initiation.payment
        self.assertEqual(payment.status, PaymentStatus.PENDING)
        self.assertEqual(payment.transaction_id, "TX-1")
        self.assertEqual(payment.waafipay_order_id, "GW-1")
        self.assertEqual(payment.amount, self.order.total)

        kwargs = self.gateway.initiate_purchase.call_args.kwargs
        self.assertEqual(kwargs["reference_id"], self.order.reference_id)
        self.assertEqual(kwargs["amount"], Decimal("29.90"))
        self.assertEqual(kwargs["payment_method"], "MWALLET_ACCOUNT")
        self.assertIn("status=success", kwargs["success_url"])
        self.assertIn(self.order.reference_id, kwargs["failure_url"])

    def test_gateway_rejection(self):
        self.gateway.initiate_purchase.return_value = PurchaseResult(
            success=False, error_code="5310", error_message="RCS_USER_REJECTED"
        )

        with self.assertRaises(PaymentGatewayError) as ctx:
            self.engine.initiate_payment(self.order.reference_id, self.user)
        self.assertEqual(ctx.exception.error_code, "5310")
        self.assertFalse(Payment.objects.filter(order=self.order).exists())

    def test_hosted_page_requires_url(self):
        self.gateway.initiate_purchase.return_value = PurchaseResult(success=True, transaction_id="TX-1")

        with self.assertRaises(PaymentGatewayError):
            self.engine.initiate_payment(self.order.reference_id, self.user, require_hpp_url=True)

    def test_completed_order_is_not_payable(self):
        self.engine.handle_callback(callback(self.order.reference_id))

        with self.assertRaises(OrderNotPayable):
            self.engine.initiate_payment(self.order.reference_id, self.user)
        self.gateway.initiate_purchase.assert_not_called()


class RefundAndCancelTests(EngineTestCase):
    def pay(self):
        self.start_payment()
        self.engine.handle_callback(callback(self.order.reference_id))
        return Payment.objects.get(order=self.order)

    def test_full_refund(self):
        payment = self.pay()

        outcome = self.engine.refund_payment(payment.pk, self.user, reason="Changed mind")

        self.assertEqual(outcome.refund_transaction_id, "RF-1")
        self.gateway.refund.assert_called_once_with("TX-1", Decimal("29.90"), "Changed mind")
        order = self.reload()
        self.assertEqual(order.status, OrderStatus.REFUNDED)
        payment.refresh_from_db()
        self.assertEqual(payment.status, PaymentStatus.CANCELLED)
        self.assertEqual(payment.error_message, "Refunded: Changed mind")

    def test_partial_refund_amount(self):
        payment = self.pay()

        self.engine.refund_payment(payment.pk, self.user, amount="10")

        self.assertEqual(self.gateway.refund.call_args.args[1], Decimal("10.00"))

    def test_refund_amount_out_of_range(self):
        payment = self.pay()

        for amount in ("0", "-5", "100", "abc"):
            with self.assertRaises(PaymentNotRefundable):
                self.engine.refund_payment(payment.pk, self.user, amount=amount)
        self.gateway.refund.assert_not_called()

    def test_pending_payment_is_not_refundable(self):
        payment = self.start_payment()

        with self.assertRaises(PaymentNotRefundable):
            self.engine.refund_payment(payment.pk, self.user)

    def test_gateway_refusal_keeps_state(self):
        payment = self.pay()
        self.gateway.refund.return_value = RefundResult(success=False, error_code="E1", error_message="nope")

        with self.assertRaises(PaymentGatewayError):
            self.engine.refund_payment(payment.pk, self.user)
        self.assertEqual(self.reload().status, OrderStatus.COMPLETED)

    def test_cancel_unpaid_order(self):
        order = self.engine.cancel_order(self.order.reference_id, self.user)

        self.assertEqual(order.status, OrderStatus.CANCELLED)
        self.assertEqual(order.payment_status, PaymentStatus.CANCELLED)

    def test_paid_order_cannot_be_cancelled(self):
        self.pay()

        with self.assertRaises(OrderNotCancellable):
            self.engine.cancel_order(self.order.reference_id, self.user)
