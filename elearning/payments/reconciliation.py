"""
Payment Reconciliation Engine

This module turns gateway signals into authoritative order and payment
state and triggers the enrollment fan-out exactly once per approval.

Entry points:
- ``handle_callback``: server-to-server gateway push (no user scope)
- ``verify_payment``: client poll after returning from the payment page
- ``sweep_stale_payments``: periodic poll for orders stuck in PENDING_PAYMENT
- ``repair_order``: operator repair of a paid order

All of them converge on ``_apply_gateway_state``, which reads and writes
the order under a row lock inside ``transaction.atomic()``. The fan-out runs
after that transaction commits, so a failing remote platform never rolls
back a recorded payment.

State rules:
- Gateway APPROVED, DECLINED, CANCELLED, PENDING, EXPIRED and TIMEOUT map to
  the payment status of the same name; anything else is FAILED.
- Order status follows: APPROVED -> COMPLETED, PENDING -> PENDING_PAYMENT,
  CANCELLED -> CANCELLED, otherwise FAILED.
- A COMPLETED+APPROVED order never changes again. A different approved
  transaction arriving later is recorded as its own payment row and logged
  as a possible duplicate charge.
- REFUNDED orders ignore all further signals.
- FAILED and CANCELLED orders can still be approved by a later signal.

The engine also owns the other writers of ``Order.status``: payment
initiation, refunds and user cancellation.

Author: Academy Development Team
Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.waafipay_integration.client import clean_reference_id, waafipay_client

from .exceptions import (
    OrderNotCancellable,
    OrderNotPayable,
    PaymentFlowError,
    PaymentGatewayError,
    PaymentNotFound,
    PaymentNotRefundable,
)
from .fanout import EnrollmentFanout, FanoutReport
from .models import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus
from .store import OrderStore

logger = logging.getLogger(__name__)

GATEWAY_STATES = {
    "APPROVED": PaymentStatus.APPROVED,
    "DECLINED": PaymentStatus.DECLINED,
    "CANCELLED": PaymentStatus.CANCELLED,
    "PENDING": PaymentStatus.PENDING,
    "EXPIRED": PaymentStatus.EXPIRED,
    "TIMEOUT": PaymentStatus.TIMEOUT,
}

GATEWAY_PAYMENT_METHODS = {
    PaymentMethod.CARD: "CREDIT_CARD",
}
DEFAULT_GATEWAY_PAYMENT_METHOD = "MWALLET_ACCOUNT"
DEFAULT_REFUND_REASON = "Customer requested refund"


def map_gateway_state(state: Optional[str]) -> str:
    return GATEWAY_STATES.get((state or "").upper(), PaymentStatus.FAILED)


def order_status_for(payment_status: str) -> str:
    if payment_status == PaymentStatus.APPROVED:
        return OrderStatus.COMPLETED
    if payment_status == PaymentStatus.PENDING:
        return OrderStatus.PENDING_PAYMENT
    if payment_status == PaymentStatus.CANCELLED:
        return OrderStatus.CANCELLED
    return OrderStatus.FAILED


@dataclass
class ReconciliationOutcome:
    """
    Result of one reconciliation attempt.

    Attributes:
        order: The order after the attempt
        payment: Payment row written or read
        payment_status: Payment status of the order after the attempt
        verified: True when the order is paid
        transitioned: True when this call moved the order to COMPLETED
        fanout: Fan-out report when the fan-out ran
        fanout_error: Error message when the fan-out raised
    """

    order: Order
    payment: Optional[Payment]
    payment_status: str
    verified: bool
    transitioned: bool = False
    fanout: Optional[FanoutReport] = None
    fanout_error: Optional[str] = None


@dataclass
class PaymentInitiation:
    order: Order
    payment: Payment
    hpp_url: Optional[str]
    gateway_order_id: Optional[str]
    transaction_id: Optional[str]


@dataclass
class RefundOutcome:
    order: Order
    payment: Payment
    refund_transaction_id: Optional[str]


class ReconciliationEngine:
    """
    Orchestrates order and payment state transitions.

    Example:
        >>> engine = ReconciliationEngine()
        >>> outcome = engine.handle_callback(request.data)
        >>> outcome.order.status
        'COMPLETED'
    """

    def __init__(self, store: Optional[OrderStore] = None, gateway=None, fanout: Optional[EnrollmentFanout] = None) -> None:
        self.store = store or OrderStore()
        self.gateway = gateway or waafipay_client
        self.fanout = fanout or EnrollmentFanout(store=self.store)

    # ------------------------------------------------------------------
    # Gateway signals
    # ------------------------------------------------------------------

    def handle_callback(self, payload: Dict[str, Any]) -> ReconciliationOutcome:
        """
        Apply a server-to-server gateway callback.

        Raises:
            PaymentFlowError: If the payload carries no reference id
            OrderNotFound: If no order matches the reference id
        """
        data = self.gateway.parse_callback(payload)
        if not data.reference_id:
            raise PaymentFlowError("Reference ID is required")

        logger.info(
            f"Gateway callback for {data.reference_id}: state={data.state} "
            f"transaction={data.transaction_id}"
        )
        return self._apply_gateway_state(
            data.reference_id,
            map_gateway_state(data.state),
            transaction_id=data.transaction_id,
            amount=data.amount,
            currency=data.currency,
            issuer_transaction_id=data.issuer_transaction_id,
            payer_id=data.payer_id,
            error_code=None if data.is_approved else data.response_code,
            error_message=None if data.is_approved else data.response_msg,
        )

    def verify_payment(self, reference_id: str, user, callback_status: Optional[str] = None) -> ReconciliationOutcome:
        """
        Resolve the payment state of one of ``user``'s orders.

        Order of checks: already paid, the ``callbackStatus=success`` hint
        from the payment page redirect, then a gateway lookup of the latest
        pending transaction. Otherwise the stored state is returned.

        Raises:
            OrderNotFound: If the user owns no order with this reference
        """
        order = self.store.get_order_by_reference(reference_id, user=user)

        if order.is_paid or order.status == OrderStatus.REFUNDED:
            return self._stored_outcome(order)

        if callback_status == "success":
            logger.info(f"Marking order {order.reference_id} approved from payment page redirect")
            return self._apply_gateway_state(order.reference_id, PaymentStatus.APPROVED, user=user)

        latest = self.store.get_latest_payment(order)
        if latest and latest.transaction_id and latest.status == PaymentStatus.PENDING:
            outcome = self._poll_gateway(order, latest, user=user)
            if outcome is not None:
                return outcome

        return self._stored_outcome(order)

    def sweep_stale_payments(self, older_than: timedelta) -> List[ReconciliationOutcome]:
        """
        Poll the gateway for orders stuck in PENDING_PAYMENT.

        Only orders whose latest payment is PENDING with a transaction id are
        polled; one failing order does not stop the sweep.
        """
        outcomes = []
        cutoff = timezone.now() - older_than
        for order in self.store.find_stale_orders(cutoff):
            latest = self.store.get_latest_payment(order)
            if not (latest and latest.transaction_id and latest.status == PaymentStatus.PENDING):
                continue
            try:
                outcome = self._poll_gateway(order, latest)
            except Exception:
                logger.exception(f"Sweep failed for order {order.reference_id}")
                continue
            if outcome is not None:
                outcomes.append(outcome)
        logger.info(f"Swept stale payments older than {older_than}: {len(outcomes)} updated")
        return outcomes

    def repair_order(self, reference_id: str) -> ReconciliationOutcome:
        """
        Mark an order paid if needed and re-run the fan-out.

        The fan-out skips everything already provisioned.

        Raises:
            OrderNotFound: If no order matches
            OrderNotPayable: If the order was refunded
        """
        order = self.store.get_order_by_reference(reference_id)
        if order.status == OrderStatus.REFUNDED:
            raise OrderNotPayable("Refunded orders cannot be repaired")

        if not order.is_paid:
            logger.warning(f"Repair: marking order {order.reference_id} approved")
            return self._apply_gateway_state(order.reference_id, PaymentStatus.APPROVED)

        outcome = self._stored_outcome(order)
        self._run_fanout(outcome)
        return outcome

    def _poll_gateway(self, order: Order, payment: Payment, user=None) -> Optional[ReconciliationOutcome]:
        info = self.gateway.get_transaction_info(payment.transaction_id)
        if not info.success:
            logger.warning(
                f"Transaction lookup failed for {order.reference_id}: "
                f"{info.error_code} {info.error_message}"
            )
            return None

        payment_status = map_gateway_state(info.state)
        if payment_status == PaymentStatus.PENDING:
            return None

        return self._apply_gateway_state(
            order.reference_id,
            payment_status,
            user=user,
            transaction_id=payment.transaction_id,
            amount=info.amount,
            currency=info.currency,
            issuer_transaction_id=info.issuer_transaction_id,
            payer_id=info.payer_id,
        )

    def _apply_gateway_state(
        self,
        reference_id: str,
        payment_status: str,
        user=None,
        **payment_fields,
    ) -> ReconciliationOutcome:
        """
        Record a gateway state for an order and fan out on first approval.

        Database errors propagate so the gateway retries the callback.
        """
        reference_id = clean_reference_id(reference_id)
        transaction_id = payment_fields.get("transaction_id")

        with transaction.atomic():
            order = self.store.get_order_by_reference(reference_id, user=user, lock=True)
            self._check_amount(order, payment_fields.get("amount"))

            if order.status == OrderStatus.REFUNDED:
                logger.info(f"Ignoring {payment_status} for refunded order {reference_id}")
                return self._stored_outcome(order)

            if order.is_paid:
                payment = self._record_late_signal(order, payment_status, payment_fields)
                return ReconciliationOutcome(
                    order=order,
                    payment=payment or self.store.get_latest_payment(order),
                    payment_status=order.payment_status,
                    verified=True,
                )

            order_status = order_status_for(payment_status)
            payment = self.store.record_payment_outcome(
                order, order_status, payment_status, **payment_fields
            )

        logger.info(
            f"Order {reference_id} -> {order_status}/{payment_status} "
            f"(payment {payment.pk}, transaction {transaction_id})"
        )
        outcome = ReconciliationOutcome(
            order=order,
            payment=payment,
            payment_status=payment_status,
            verified=payment_status == PaymentStatus.APPROVED,
            transitioned=payment_status == PaymentStatus.APPROVED,
        )
        if outcome.transitioned:
            self._run_fanout(outcome)
        return outcome

    def _record_late_signal(self, order: Order, payment_status: str, payment_fields: dict) -> Optional[Payment]:
        transaction_id = payment_fields.get("transaction_id")
        if payment_status != PaymentStatus.APPROVED or not transaction_id:
            logger.info(f"Order {order.reference_id} already completed; ignoring {payment_status}")
            return None
        if self.store.find_payment_for_transaction(order, transaction_id) is not None:
            logger.info(f"Duplicate callback for {order.reference_id} transaction {transaction_id}")
            return None

        approved = self.store.get_latest_approved_payment(order)
        if approved is not None and not approved.transaction_id:
            logger.info(
                f"Attaching transaction {transaction_id} to approved payment {approved.pk} "
                f"of order {order.reference_id}"
            )
            return self.store.upsert_payment(
                order, PaymentStatus.APPROVED, payment=approved, **payment_fields
            )

        logger.warning(
            f"Possible duplicate charge: order {order.reference_id} is already paid "
            f"but transaction {transaction_id} was approved"
        )
        return self.store.upsert_payment(order, PaymentStatus.APPROVED, force_new=True, **payment_fields)

    def _check_amount(self, order: Order, amount: Optional[Decimal]) -> None:
        if amount is not None and amount != order.total:
            logger.warning(
                f"Amount mismatch for {order.reference_id}: gateway {amount}, order {order.total}"
            )

    def _run_fanout(self, outcome: ReconciliationOutcome) -> None:
        try:
            outcome.fanout = self.fanout.run(outcome.order)
        except Exception as e:
            logger.exception(f"Enrollment fan-out failed for {outcome.order.reference_id}")
            outcome.fanout_error = str(e)

    def _stored_outcome(self, order: Order) -> ReconciliationOutcome:
        return ReconciliationOutcome(
            order=order,
            payment=self.store.get_latest_payment(order),
            payment_status=order.payment_status,
            verified=order.payment_status == PaymentStatus.APPROVED,
        )

    # ------------------------------------------------------------------
    # User-initiated transitions
    # ------------------------------------------------------------------

    def initiate_payment(
        self,
        reference_id: str,
        user,
        payer_phone: Optional[str] = None,
        payment_method: Optional[str] = None,
        require_hpp_url: bool = False,
    ) -> PaymentInitiation:
        """
        Start a hosted payment page session for an unpaid order.

        Raises:
            OrderNotFound: If the user owns no order with this reference
            OrderNotPayable: If the order is not PENDING or PENDING_PAYMENT
            PaymentGatewayError: If the gateway rejects the request
        """
        order = self.store.get_order_by_reference(reference_id, user=user)
        if not order.is_payable:
            raise OrderNotPayable()

        ref = order.reference_id
        item_names = ", ".join(item.name for item in self.store.get_order_items(order))
        result = self.gateway.initiate_purchase(
            reference_id=ref,
            amount=order.total,
            currency=order.currency,
            description=f"{settings.STORE_NAME}: {item_names}"[:100],
            payer_phone=payer_phone or order.billing_phone or self.store.get_profile(user).phone,
            payment_method=payment_method
            or GATEWAY_PAYMENT_METHODS.get(order.payment_method, DEFAULT_GATEWAY_PAYMENT_METHOD),
            success_url=f"{settings.FRONTEND_URL}/payment/callback?status=success&ref={ref}",
            failure_url=f"{settings.FRONTEND_URL}/payment/callback?status=failure&ref={ref}",
            callback_url=f"{settings.BACKEND_URL}/api/payments/callback/",
        )

        if not result.success or (require_hpp_url and not result.hpp_url):
            raise PaymentGatewayError(
                result.error_message or "Payment initiation failed",
                error_code=result.error_code,
            )

        with transaction.atomic():
            order = self.store.get_order_by_reference(ref, user=user, lock=True)
            if not order.is_payable:
                raise OrderNotPayable()
            self.store.set_order_status(order, OrderStatus.PENDING_PAYMENT, PaymentStatus.PENDING)
            payment = self.store.create_pending_payment(
                order,
                gateway_order_id=result.gateway_order_id,
                transaction_id=result.transaction_id,
            )

        logger.info(f"Payment {payment.pk} initiated for {ref} (transaction {result.transaction_id})")
        return PaymentInitiation(
            order=order,
            payment=payment,
            hpp_url=result.hpp_url,
            gateway_order_id=result.gateway_order_id,
            transaction_id=result.transaction_id,
        )

    def refund_payment(self, payment_id, user, amount=None, reason: Optional[str] = None) -> RefundOutcome:
        """
        Refund an approved payment through the gateway.

        Raises:
            PaymentNotFound: If the user owns no such payment
            PaymentNotRefundable: If it is not APPROVED, has no transaction id
                or the amount is out of range
            PaymentGatewayError: If the gateway rejects the refund
        """
        payment = self.store.get_payment_for_user(payment_id, user)
        if payment is None:
            raise PaymentNotFound()
        if payment.status != PaymentStatus.APPROVED:
            raise PaymentNotRefundable()
        if not payment.transaction_id:
            raise PaymentNotRefundable("No transaction ID for refund")

        refund_amount = self._refund_amount(payment, amount)
        result = self.gateway.refund(
            payment.transaction_id, refund_amount, reason or DEFAULT_REFUND_REASON
        )
        if not result.success:
            raise PaymentGatewayError(
                result.error_message or "Refund failed", error_code=result.error_code
            )

        with transaction.atomic():
            payment = self.store.get_payment_for_user(payment_id, user, lock=True)
            order = self.store.get_order_by_reference(payment.order.reference_id, lock=True)
            payment.status = PaymentStatus.CANCELLED
            payment.error_message = f"Refunded: {reason or 'No reason provided'}"[:500]
            payment.save(update_fields=["status", "error_message", "updated_at"])
            self.store.set_order_status(order, OrderStatus.REFUNDED, PaymentStatus.CANCELLED)

        logger.info(
            f"Refunded payment {payment.pk} ({refund_amount}) for {order.reference_id}: "
            f"{result.refund_transaction_id}"
        )
        return RefundOutcome(
            order=order, payment=payment, refund_transaction_id=result.refund_transaction_id
        )

    @staticmethod
    def _refund_amount(payment: Payment, amount) -> Decimal:
        if amount in (None, ""):
            return payment.amount
        try:
            value = Decimal(str(amount)).quantize(Decimal("0.01"))
        except (InvalidOperation, ValueError):
            raise PaymentNotRefundable("Invalid refund amount")
        if value <= 0 or value > payment.amount:
            raise PaymentNotRefundable("Refund amount must be positive and not exceed the payment")
        return value

    def cancel_order(self, reference_id: str, user) -> Order:
        """
        Cancel an unpaid order.

        Raises:
            OrderNotFound: If the user owns no order with this reference
            OrderNotCancellable: If the order is no longer PENDING or PENDING_PAYMENT
        """
        with transaction.atomic():
            order = self.store.get_order_by_reference(reference_id, user=user, lock=True)
            if not order.is_payable:
                raise OrderNotCancellable()
            self.store.set_order_status(order, OrderStatus.CANCELLED, PaymentStatus.CANCELLED)
        logger.info(f"Order {order.reference_id} cancelled by user {user.pk}")
        return order
