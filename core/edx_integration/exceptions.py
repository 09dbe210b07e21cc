"""
Open edX Integration Exceptions

This module provides the exception hierarchy used inside the Open edX
integration layer. The public client methods translate these exceptions
into structured result objects (see ``results.py``), so callers such as the
enrollment fan-out never need ``try/except`` for expected remote failures.

Inside the integration layer the exceptions carry the HTTP status code and
the platform's error payload, which lets the client distinguish
"unrecognised user", "already exists" and "not found" responses without
string matching on messages.

Author: Academy Development Team
Version: 1.0.0
"""

from typing import Optional, Dict, Any


class EdxIntegrationException(Exception):
    """
    Base exception class for all Open edX API related errors.

    Attributes:
        message (str): Human-readable error message
        status_code (Optional[int]): HTTP status code if applicable
        error_code (Optional[str]): Platform-specific error code
        details (Optional[Dict[str, Any]]): Raw error payload or extra context

    Example:
        >>> try:
        ...     client.edx_request("POST", "/api/enrollment/v1/enrollment")
        ... except EdxIntegrationException as e:
        ...     logger.error("edX API error: %s", e.message)
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for serialization.

        Returns:
            Dictionary representation of the exception
        """
        return {
            "message": self.message,
            "status_code": self.status_code,
            "error_code": self.error_code,
            "details": self.details,
            "exception_type": self.__class__.__name__,
        }


class EdxAuthException(EdxIntegrationException):
    """
    Raised when the OAuth2 client-credentials flow fails.

    Attributes:
        auth_step (Optional[str]): The authentication step where the error occurred
    """

    def __init__(
        self,
        message: str,
        auth_step: Optional[str] = None,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.auth_step = auth_step
        super().__init__(message, status_code, error_code)


class EdxTokenRejectedException(EdxAuthException):
    """Raised when the platform rejects a cached access token (HTTP 401)."""

    def __init__(self, message: str = "edX access token was rejected") -> None:
        super().__init__(
            message=message,
            auth_step="token_rejected",
            status_code=401,
            error_code="TokenRejected",
        )


class EdxUserNotFoundException(EdxIntegrationException):
    """
    Raised when the enrollment API does not recognise the user identifier.

    The enrollment endpoint answers 406 when a username is unknown; the
    client uses this exception to retry once with the e-mail address.
    """

    def __init__(
        self,
        message: str = "User not recognised by the edX platform",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=406,
            error_code="UserNotFound",
            details=details,
        )


class EdxResourceNotFoundException(EdxIntegrationException):
    """Raised when a requested course, user or enrollment does not exist."""

    def __init__(
        self,
        message: str = "Requested edX resource not found",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=404,
            error_code="NotFound",
            details=details,
        )


class EdxBadRequestException(EdxIntegrationException):
    """Raised when the platform rejects a request as invalid (HTTP 400/409)."""

    def __init__(
        self,
        message: str = "Bad request to edX API",
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 400,
    ) -> None:
        super().__init__(
            message=message,
            status_code=status_code,
            error_code="BadRequest",
            details=details,
        )


class EdxRateLimitException(EdxIntegrationException):
    """
    Raised when the platform throttles the client (HTTP 429).

    Attributes:
        retry_after (Optional[int]): Seconds to wait before retrying
    """

    def __init__(
        self,
        message: str = "edX API rate limit exceeded",
        retry_after: Optional[int] = None,
    ) -> None:
        self.retry_after = retry_after
        details = {}
        if retry_after:
            details["retry_after"] = retry_after
        super().__init__(
            message=message,
            status_code=429,
            error_code="TooManyRequests",
            details=details,
        )


class EdxServiceUnavailableException(EdxIntegrationException):
    """Raised when the platform is temporarily unavailable or unreachable."""

    def __init__(
        self,
        message: str = "edX platform temporarily unavailable",
        status_code: Optional[int] = 503,
    ) -> None:
        super().__init__(
            message=message,
            status_code=status_code,
            error_code="ServiceUnavailable",
        )


# Exception mapping for HTTP status codes
EXCEPTION_MAPPING = {
    400: EdxBadRequestException,
    404: EdxResourceNotFoundException,
    406: EdxUserNotFoundException,
    429: EdxRateLimitException,
    503: EdxServiceUnavailableException,
}


def create_exception_from_response(
    status_code: int,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> EdxIntegrationException:
    """
    Factory function to create the matching exception for an HTTP status code.

    Args:
        status_code: HTTP status code from the response
        message: Error message extracted from the response
        details: Parsed error payload, if any

    Returns:
        Exception instance matching the status code

    Example:
        >>> exc = create_exception_from_response(404, "Not found")
        >>> isinstance(exc, EdxResourceNotFoundException)
        True
    """
    if status_code == 401:
        return EdxTokenRejectedException(message)
    if status_code == 409:
        return EdxBadRequestException(message, details=details, status_code=409)
    if status_code == 429:
        return EdxRateLimitException(message)
    if status_code in (502, 503, 504):
        return EdxServiceUnavailableException(message, status_code=status_code)

    exception_class = EXCEPTION_MAPPING.get(status_code)
    if exception_class is None:
        return EdxIntegrationException(
            message, status_code=status_code, details=details
        )
    if exception_class is EdxServiceUnavailableException:
        return exception_class(message)
    return exception_class(message, details=details)
