"""
Payments Views for the WaafiPay Checkout
========================================

This module provides the API endpoints of the storefront checkout: orders,
hosted payment page sessions, the gateway callback, payment verification,
refunds and the buyer's enrollments.

Endpoints:
----------

1. PaymentCallbackView
   - URL: /api/payments/callback/
   - Method: POST
   - Auth: Public (called by the gateway)
   - Purpose:
       Applies the transaction state pushed by WaafiPay. Safe to receive
       several times for the same transaction.

2. PaymentVerifyView
   - URL: /api/payments/verify/<reference_id>/?callbackStatus=success|failure
   - Method: GET
   - Auth: Required, owner only
   - Purpose:
       Called by the frontend after the redirect back from the payment page.
       Returns the authoritative payment state, polling the gateway while
       the latest payment is still pending.

3. PaymentInitiateView / HostedPaymentView
   - URL: /api/payments/initiate/ and /api/payments/hpp/
   - Method: POST
   - Auth: Required
   - Expected Body:
       {
           "orderReferenceId": "ORD-LX2K9A1B-3F9A1C2D",
           "payerPhone": "615550000",
           "paymentMethod": "MWALLET_ACCOUNT"
       }
   - Purpose:
       Opens a hosted payment page session. The hpp variant fails when the
       gateway returns no page URL.

4. PaymentRefundView
   - URL: /api/payments/refund/<payment_id>/
   - Method: POST
   - Auth: Required, owner only
   - Expected Body: {"amount": "10.00", "reason": "..."} (both optional)

5. PaymentHistoryView / PaymentDetailView / GatewayStatusView
   - URL: /api/payments/, /api/payments/<id>/, /api/payments/status/
   - Method: GET
   - Auth: Required (status probe: staff only)

6. OrderListCreateView / OrderDetailView / OrderCancelView
   - URL: /api/orders/, /api/orders/<reference_id>/, /api/orders/<reference_id>/cancel/
   - Methods: GET, POST / GET / PATCH
   - Auth: Required

7. EnrollmentListView / EnrollmentProgressView
   - URL: /api/enrollments/, /api/enrollments/progress/
   - Method: GET
   - Auth: Required

Error bodies are ``{"detail": "..."}`` with the status code of the raised
payment flow error. Gateway error codes are never shown on verification.

Author: Academy Development Team
Version: 1.0.0
"""

import logging

from rest_framework import status
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.edx_integration.client import edx_client
from core.waafipay_integration.client import waafipay_client

from .exceptions import OrderNotFound, PaymentFlowError
from .models import Enrollment
from .reconciliation import ReconciliationEngine
from .serializers import (
    EnrollmentSerializer,
    OrderCreateSerializer,
    OrderSerializer,
    PaymentInitiateSerializer,
    PaymentSerializer,
    RefundSerializer,
    TuitionPackPurchaseSerializer,
)
from .store import OrderStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def _error(exc: PaymentFlowError) -> Response:
    body = {"detail": exc.message}
    if exc.error_code:
        body["error_code"] = exc.error_code
    return Response(body, status=exc.status_code)


def _int_param(value, default: int, maximum: int = None) -> int:
    try:
        number = max(0, int(value))
    except (TypeError, ValueError):
        return default
    return min(number, maximum) if maximum is not None else number


# ---------------------------------------------------------------------------
# Gateway signals
# ---------------------------------------------------------------------------


class PaymentCallbackView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        try:
            outcome = ReconciliationEngine().handle_callback(request.data)
        except OrderNotFound:
            return Response({"detail": "Order not found"}, status=status.HTTP_404_NOT_FOUND)
        except PaymentFlowError as e:
            return _error(e)

        return Response({"success": True, "status": outcome.payment_status})


class PaymentVerifyView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, reference_id):
        callback_status = request.query_params.get("callbackStatus")
        try:
            outcome = ReconciliationEngine().verify_payment(
                reference_id, request.user, callback_status=callback_status
            )
        except OrderNotFound:
            return Response({"detail": "Order not found"}, status=status.HTTP_404_NOT_FOUND)
        except PaymentFlowError as e:
            logger.warning(f"Verification of {reference_id} failed: {e.message}")
            return Response(
                {"detail": "Payment verification failed"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        return Response({
            "success": True,
            "verified": outcome.verified,
            "status": outcome.payment_status,
            "order": OrderSerializer(outcome.order).data,
        })


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


class PaymentInitiateView(APIView):
    """Start a hosted payment page session for an unpaid order."""

    permission_classes = [IsAuthenticated]
    require_hpp_url = False

    def post(self, request):
        serializer = PaymentInitiateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"detail": "Order reference ID is required", "errors": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )
        data = serializer.validated_data

        try:
            initiation = ReconciliationEngine().initiate_payment(
                data["orderReferenceId"],
                request.user,
                payer_phone=data.get("payerPhone") or None,
                payment_method=data.get("paymentMethod") or None,
                require_hpp_url=self.require_hpp_url,
            )
        except PaymentFlowError as e:
            return _error(e)

        return Response({
            "success": True,
            "hppUrl": initiation.hpp_url,
            "orderId": initiation.gateway_order_id,
            "transactionId": initiation.transaction_id,
            "referenceId": initiation.order.reference_id,
        })


class HostedPaymentView(PaymentInitiateView):
    require_hpp_url = True


class PaymentRefundView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, payment_id):
        serializer = RefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            outcome = ReconciliationEngine().refund_payment(
                payment_id,
                request.user,
                amount=data.get("amount"),
                reason=data.get("reason") or None,
            )
        except PaymentFlowError as e:
            return _error(e)

        return Response({
            "success": True,
            "detail": "Refund processed successfully",
            "refundTransactionId": outcome.refund_transaction_id,
        })


# ---------------------------------------------------------------------------
# Payment history
# ---------------------------------------------------------------------------


class PaymentHistoryView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        limit = _int_param(request.query_params.get("limit"), DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)
        offset = _int_param(request.query_params.get("offset"), 0)

        queryset = OrderStore().list_payments(request.user, request.query_params.get("status"))
        total = queryset.count()
        payments = queryset[offset:offset + limit]
        return Response({
            "success": True,
            "payments": PaymentSerializer(payments, many=True).data,
            "total": total,
        })


class PaymentDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, payment_id):
        payment = OrderStore().get_payment_for_user(payment_id, request.user)
        if payment is None:
            return Response({"detail": "Payment not found"}, status=status.HTTP_404_NOT_FOUND)
        return Response({"success": True, "payment": PaymentSerializer(payment).data})


class GatewayStatusView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request):
        probe = waafipay_client.test_connection()
        return Response({
            "success": probe.success,
            "message": probe.message,
            "apiUrl": probe.api_url,
            "merchantUid": probe.merchant_uid,
            "hppKeyConfigured": probe.hpp_key_configured,
            "responseCode": probe.response_code,
            "responseMsg": probe.response_msg,
        })


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


class OrderListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        orders = OrderStore().list_orders(request.user, request.query_params.get("status"))
        return Response(OrderSerializer(orders, many=True).data)

    def post(self, request):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            order = OrderStore().create_order(
                request.user,
                items=data["items"],
                payment_method=data.get("paymentMethod"),
                mobile_provider=data.get("mobileProvider"),
                billing=data.get("billing"),
                promo_code=data.get("promoCode"),
            )
        except PaymentFlowError as e:
            return _error(e)

        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


class OrderDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, reference_id):
        try:
            order = OrderStore().get_order_by_reference(reference_id, user=request.user)
        except PaymentFlowError as e:
            return _error(e)
        return Response(OrderSerializer(order).data)


class OrderCancelView(APIView):
    permission_classes = [IsAuthenticated]

    def patch(self, request, reference_id):
        try:
            order = ReconciliationEngine().cancel_order(reference_id, request.user)
        except PaymentFlowError as e:
            return _error(e)
        return Response(OrderSerializer(order).data)


# ---------------------------------------------------------------------------
# Enrollments
# ---------------------------------------------------------------------------


class EnrollmentListView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        enrollments = OrderStore().list_enrollments(request.user)
        tuition = request.user.tuition_purchases.select_related("tuition_pack")
        return Response({
            "enrollments": EnrollmentSerializer(enrollments, many=True).data,
            "tuition_packs": TuitionPackPurchaseSerializer(tuition, many=True).data,
        })


class EnrollmentProgressView(APIView):
    """
    Refresh progress of the user's remotely enrolled courses.

    Progress is fetched from the learning platform concurrently and stored
    on the local enrollment rows. Courses whose progress cannot be read keep
    their stored value.
    """

    permission_classes = [IsAuthenticated]

    def get(self, request):
        store = OrderStore()
        profile = store.get_profile(request.user)
        enrollments = [
            enrollment
            for enrollment in store.list_enrollments(request.user)
            if enrollment.course_id and enrollment.edx_enrolled and enrollment.edx_course_id
        ]
        if not profile.has_edx_account or not enrollments:
            return Response({"progress": []})

        progress_by_course = edx_client.get_courses_progress(
            profile.edx_username, [enrollment.edx_course_id for enrollment in enrollments]
        )

        payload = []
        for enrollment in enrollments:
            progress = progress_by_course.get(enrollment.edx_course_id)
            if progress is not None and progress.error_message is None:
                store.update_enrollment_progress(enrollment, progress.progress)
            payload.append({
                "enrollment_id": enrollment.pk,
                "course_id": enrollment.edx_course_id,
                "course_title": enrollment.course.title,
                "progress": enrollment.progress,
                "completed": enrollment.status == Enrollment.Status.COMPLETED,
                "has_passing_grade": bool(progress and progress.has_passing_grade),
            })
        return Response({"progress": payload})
