"""
WaafiPay Integration Exceptions

These exceptions never leave ``WaafiPayClient``: the public methods convert
them into failed result objects.
"""

from typing import Optional, Dict, Any


class WaafiPayException(Exception):
    """
    Raised when a gateway call fails before a usable response is received.

    Attributes:
        message (str): Human-readable error message
        error_code (Optional[str]): Short machine-readable failure code
        details (Optional[Dict[str, Any]]): Extra context
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
            "exception_type": self.__class__.__name__,
        }


class WaafiPayTimeoutException(WaafiPayException):
    def __init__(self, timeout: int) -> None:
        super().__init__(
            f"WaafiPay request timed out after {timeout}s",
            error_code="TIMEOUT",
        )


class WaafiPayConnectionException(WaafiPayException):
    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="CONNECTION_ERROR")


class WaafiPayInvalidResponseException(WaafiPayException):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(
            message,
            error_code="INVALID_RESPONSE",
            details={"status_code": status_code} if status_code else None,
        )
