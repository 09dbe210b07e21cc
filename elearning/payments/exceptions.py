"""
Domain errors raised by the order and payment services.

Views translate them into ``{"detail": ...}`` responses using
``status_code``.
"""

from rest_framework import status


class PaymentFlowError(Exception):
    """Base class for usage errors in the order and payment flow."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Payment request could not be processed"

    def __init__(self, message: str = None, error_code: str = None) -> None:
        self.message = message or self.default_message
        self.error_code = error_code
        super().__init__(self.message)


class OrderNotFound(PaymentFlowError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Order not found"


class OrderNotPayable(PaymentFlowError):
    default_message = "Order not found or already processed"


class OrderNotCancellable(PaymentFlowError):
    default_message = "Only unpaid orders can be cancelled"


class PaymentNotFound(PaymentFlowError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Payment not found"


class PaymentNotRefundable(PaymentFlowError):
    default_message = "Payment not found or not refundable"


class PaymentGatewayError(PaymentFlowError):
    """The gateway rejected or could not process a request."""

    default_message = "Payment gateway request failed"


class InvalidOrderItems(PaymentFlowError):
    default_message = "Order items are invalid"
