"""
Open edX Platform Client

This module wraps the Open edX REST APIs used by the storefront: account
registration, course enrollment, enrollment lookups, bulk enrollment,
session login for single sign-on and course progress.

Features:
- OAuth2 client-credentials authentication through ``EdxTokenManager``
- Automatic token invalidation and single retry on HTTP 401
- Rate-limit retry with exponential backoff
- Structured result objects instead of raised exceptions for expected
  remote failures (validation errors, unknown users, timeouts)
- Concurrent progress retrieval for several courses

Structure:
- ``edx_request``: authenticated JSON call that raises integration exceptions
- Public methods: translate those exceptions into result objects

Author: Academy Development Team
Version: 1.0.0
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from functools import wraps
from time import sleep
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

import requests
from django.conf import settings

from .credentials import generate_username
from .exceptions import (
    EdxIntegrationException,
    EdxRateLimitException,
    EdxResourceNotFoundException,
    EdxServiceUnavailableException,
    EdxTokenRejectedException,
    EdxUserNotFoundException,
    create_exception_from_response,
)
from .results import (
    BulkEnrollmentResult,
    ConnectionStatus,
    CourseProgress,
    EnrollmentCheck,
    EnrollmentResult,
    LoginSession,
    RegistrationResult,
    UserEnrollments,
)
from .token_manager import edx_token_manager

logger = logging.getLogger(__name__)


def retry_on_rate_limit(max_retries: int = 2, base_delay: float = 1.0):
    """
    Decorator to retry edX API calls on rate limit errors.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Base delay in seconds (exponentially increased)
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except EdxRateLimitException as e:
                    if attempt >= max_retries:
                        logger.error(f"edX rate limit exceeded after {max_retries} retries")
                        raise
                    delay = e.retry_after if e.retry_after else base_delay * (2 ** attempt)
                    logger.warning(
                        f"edX rate limit hit on attempt {attempt + 1}/{max_retries + 1}. "
                        f"Retrying in {delay}s..."
                    )
                    sleep(delay)

        return wrapper

    return decorator


class EdxClient:
    """
    Client for the Open edX registration, enrollment and progress APIs.

    Attributes:
        REGISTRATION_PATH (str): Account registration endpoint (form-encoded)
        ENROLLMENT_PATH (str): Enrollment create/update endpoint
        BULK_ENROLL_PATH (str): Instructor bulk enrollment endpoint
        PROGRESS_PATH (str): Learner progress endpoint template
        LOGIN_PAGE_PATH (str): Login page that sets the CSRF cookie
        LOGIN_SESSION_PATH (str): Session login endpoint (single sign-on)

    Example:
        >>> client = EdxClient()
        >>> result = client.enroll_user_in_course("ahmed_ali_x7k2", "a@b.so", "course-v1:X+Y+Z")
        >>> if result.success:
        ...     print(result.enrollment)
    """

    REGISTRATION_PATH = "/api/user/v1/account/registration/"
    ENROLLMENT_PATH = "/api/enrollment/v1/enrollment"
    BULK_ENROLL_PATH = "/api/bulk_enroll/v1/bulk_enroll/"
    PROGRESS_PATH = "/api/course_home/v1/progress/{course_id}/{username}"
    LOGIN_PAGE_PATH = "/login"
    LOGIN_SESSION_PATH = "/api/user/v1/account/login_session/"

    def __init__(self, base_url: Optional[str] = None, token_manager=None) -> None:
        self.base_url = (base_url or settings.EDX_BASE_URL).rstrip("/")
        self.token_manager = token_manager or edx_token_manager
        self.timeout = settings.EDX_REQUEST_TIMEOUT
        self.username_retries = settings.EDX_USERNAME_RETRIES
        self.progress_workers = settings.EDX_PROGRESS_WORKERS

    # ------------------------------------------------------------------
    # Low-level request handling
    # ------------------------------------------------------------------

    @retry_on_rate_limit(max_retries=2)
    def edx_request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Execute an authenticated JSON call against the platform.

        A 401 invalidates the cached token and the call is retried once with
        a fresh one.

        Raises:
            EdxIntegrationException: Or a subclass matching the HTTP status
        """
        try:
            return self._send(method, path, json=json, params=params)
        except EdxTokenRejectedException:
            logger.warning(f"edX token rejected for {method} {path}; refreshing")
            self.token_manager.invalidate_cache()
            return self._send(method, path, json=json, params=params)

    def _send(self, method, path, json=None, params=None) -> Any:
        access_token = self.token_manager.get_access_token()
        url = f"{self.base_url}{path}"
        headers = {
            "Authorization": f"JWT {access_token}",
            "Accept": "application/json",
        }

        logger.debug(f"edX API call: {method} {path}")
        try:
            response = requests.request(
                method,
                url,
                json=json,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            raise EdxServiceUnavailableException(
                f"edX request timed out after {self.timeout}s", status_code=None
            )
        except requests.exceptions.RequestException as e:
            raise EdxServiceUnavailableException(
                f"edX request failed: {str(e)}", status_code=None
            )

        return self._process_response(response, path)

    def _process_response(self, response: requests.Response, path: str) -> Any:
        try:
            data = response.json()
        except ValueError:
            data = None

        if response.ok:
            return data

        message = response.reason or f"HTTP {response.status_code}"
        if isinstance(data, dict):
            message = data.get("message") or data.get("detail") or message
        logger.error(f"edX API error [{path}]: {response.status_code} {message}")

        exc = create_exception_from_response(
            response.status_code,
            str(message),
            details=data if isinstance(data, dict) else {"body": data},
        )
        if isinstance(exc, EdxRateLimitException):
            retry_after = response.headers.get("Retry-After")
            if retry_after and retry_after.isdigit():
                exc.retry_after = int(retry_after)
        raise exc

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_user(
        self,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
        username: Optional[str] = None,
    ) -> RegistrationResult:
        """
        Register an account on the platform.

        A duplicate e-mail is reported as success with ``already_exists``.
        A duplicate username is retried with a regenerated username, at most
        ``EDX_USERNAME_RETRIES`` times.
        """
        edx_username = username or generate_username(email, first_name, last_name)
        full_name = f"{first_name} {last_name}".strip() or email

        for attempt in range(self.username_retries + 1):
            form = {
                "email": email,
                "username": edx_username,
                "password": password,
                "name": full_name,
                "honor_code": "true",
                "terms_of_service": "true",
            }
            try:
                response = requests.post(
                    f"{self.base_url}{self.REGISTRATION_PATH}",
                    data=form,
                    headers={"Accept": "application/json"},
                    timeout=self.timeout,
                )
            except requests.exceptions.RequestException as e:
                logger.error(f"edX registration request failed for {email}: {str(e)}")
                return RegistrationResult(
                    success=False,
                    username=edx_username,
                    email=email,
                    error_message=f"edX registration request failed: {str(e)}",
                )

            if response.status_code == 200:
                logger.info(f"edX user registered: {email} ({edx_username})")
                return RegistrationResult(success=True, username=edx_username, email=email)

            try:
                error_data = response.json()
            except ValueError:
                error_data = {}
            if not isinstance(error_data, dict):
                error_data = {}

            if self._is_duplicate_email(error_data):
                logger.info(f"edX user already exists: {email}")
                return RegistrationResult(
                    success=True,
                    username=edx_username,
                    email=email,
                    already_exists=True,
                )

            if error_data.get("username") and attempt < self.username_retries:
                edx_username = generate_username(email, first_name, last_name)
                logger.info(f"edX username conflict, retrying with: {edx_username}")
                continue

            logger.error(f"edX registration error for {email}: {error_data}")
            return RegistrationResult(
                success=False,
                username=edx_username,
                email=email,
                error_message="Registration failed",
                errors=error_data,
            )

        return RegistrationResult(
            success=False,
            username=edx_username,
            email=email,
            error_message="Registration failed: no unique username available",
        )

    DUPLICATE_EMAIL_MARKERS = ("already exists", "already registered", "existing account")

    @classmethod
    def _is_duplicate_email(cls, error_data: Dict[str, Any]) -> bool:
        if error_data.get("error_code") == "duplicate-email":
            return True
        for email_error in error_data.get("email") or []:
            message = ""
            if isinstance(email_error, dict):
                message = email_error.get("user_message", "")
            elif isinstance(email_error, str):
                message = email_error
            if any(marker in message for marker in cls.DUPLICATE_EMAIL_MARKERS):
                return True
        return False

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    def enroll_user_in_course(
        self,
        username: str,
        email: Optional[str],
        course_id: str,
        mode: Optional[str] = None,
    ) -> EnrollmentResult:
        """
        Enroll a user, retrying once by e-mail if the username is unknown.
        """
        mode = mode or settings.EDX_DEFAULT_ENROLLMENT_MODE
        try:
            enrollment = self._post_enrollment(username, course_id, mode)
            logger.info(f"edX enrollment successful: {username} -> {course_id}")
            return EnrollmentResult(
                success=True, course_id=course_id, identifier=username, enrollment=enrollment
            )
        except EdxIntegrationException as e:
            if not (email and self._is_unknown_user(e)):
                logger.error(f"edX enrollment error for {username} -> {course_id}: {e.message}")
                return self._enrollment_failure(course_id, username, e)

        logger.info(f"edX user not found by username, trying email: {email}")
        try:
            enrollment = self._post_enrollment(email, course_id, mode)
        except EdxIntegrationException as e:
            logger.error(f"edX enrollment via email failed for {email} -> {course_id}: {e.message}")
            return self._enrollment_failure(course_id, email, e)

        logger.info(f"edX enrollment successful via email: {email} -> {course_id}")
        return EnrollmentResult(
            success=True, course_id=course_id, identifier=email, enrollment=enrollment
        )

    def _post_enrollment(self, user: str, course_id: str, mode: str) -> Dict[str, Any]:
        return self.edx_request(
            "POST",
            self.ENROLLMENT_PATH,
            json={
                "user": user,
                "mode": mode,
                "is_active": True,
                "course_details": {"course_id": course_id},
                "email_opt_in": True,
            },
        ) or {}

    @staticmethod
    def _is_unknown_user(exc: EdxIntegrationException) -> bool:
        if isinstance(exc, EdxUserNotFoundException):
            return True
        if exc.status_code == 400:
            message = exc.message.lower()
            return "user" in message and ("not found" in message or "does not exist" in message)
        return False

    @staticmethod
    def _enrollment_failure(course_id, identifier, exc) -> EnrollmentResult:
        return EnrollmentResult(
            success=False,
            course_id=course_id,
            identifier=identifier,
            error_message=exc.message,
            status_code=exc.status_code,
        )

    def unenroll_user_from_course(self, username: str, course_id: str) -> EnrollmentResult:
        try:
            enrollment = self.edx_request(
                "POST",
                self.ENROLLMENT_PATH,
                json={
                    "user": username,
                    "is_active": False,
                    "course_details": {"course_id": course_id},
                },
            ) or {}
        except EdxIntegrationException as e:
            logger.error(f"edX unenrollment error for {username} -> {course_id}: {e.message}")
            return self._enrollment_failure(course_id, username, e)

        logger.info(f"edX unenrollment successful: {username} -> {course_id}")
        return EnrollmentResult(
            success=True, course_id=course_id, identifier=username, enrollment=enrollment
        )

    def check_enrollment(self, username: str, course_id: str) -> EnrollmentCheck:
        path = f"{self.ENROLLMENT_PATH}/{quote(username, safe='')},{quote(course_id, safe='')}"
        try:
            enrollment = self.edx_request("GET", path)
        except EdxResourceNotFoundException:
            return EnrollmentCheck(success=True, enrolled=False)
        except EdxIntegrationException as e:
            return EnrollmentCheck(success=False, error_message=e.message)

        enrollment = enrollment if isinstance(enrollment, dict) else {}
        return EnrollmentCheck(
            success=True,
            enrolled=enrollment.get("is_active") is True,
            enrollment=enrollment,
        )

    def get_user_enrollments(self, username: str) -> UserEnrollments:
        try:
            data = self.edx_request("GET", self.ENROLLMENT_PATH, params={"user": username})
        except EdxIntegrationException as e:
            logger.error(f"edX get_user_enrollments error for {username}: {e.message}")
            return UserEnrollments(success=False, error_message=e.message)

        if isinstance(data, dict):
            data = data.get("results", [])
        return UserEnrollments(success=True, enrollments=list(data or []))

    def bulk_enroll(
        self,
        emails: Iterable[str],
        course_ids: Iterable[str],
        auto_enroll: bool = True,
    ) -> BulkEnrollmentResult:
        emails = list(emails)
        try:
            result = self.edx_request(
                "POST",
                self.BULK_ENROLL_PATH,
                json={
                    "auto_enroll": auto_enroll,
                    "email_students": True,
                    "action": "enroll",
                    "courses": ",".join(course_ids),
                    "identifiers": ",".join(emails),
                },
            )
        except EdxIntegrationException as e:
            logger.error(f"edX bulk enrollment error: {e.message}")
            return BulkEnrollmentResult(success=False, error_message=e.message)

        logger.info(f"edX bulk enrollment completed for {len(emails)} users")
        return BulkEnrollmentResult(success=True, result=result or {})

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def get_course_progress(self, username: str, course_id: str) -> CourseProgress:
        """
        Get completion progress for one course.

        Never raises: any failure yields ``progress=0``.
        """
        path = self.PROGRESS_PATH.format(course_id=quote(course_id, safe=":+"), username=quote(username, safe=""))
        try:
            data = self.edx_request("GET", path) or {}
        except EdxIntegrationException as e:
            logger.warning(f"edX progress unavailable for {username} in {course_id}: {e.message}")
            return CourseProgress(course_id=course_id, error_message=e.message)

        summary = data.get("completion_summary") or {}
        complete = int(summary.get("complete_count") or 0)
        incomplete = int(summary.get("incomplete_count") or 0)
        locked = int(summary.get("locked_count") or 0)
        total = complete + incomplete + locked

        return CourseProgress(
            course_id=course_id,
            progress=round(complete / total * 100) if total else 0,
            has_passing_grade=bool(data.get("user_has_passing_grade")),
            completion_summary={
                "complete_count": complete,
                "incomplete_count": incomplete,
                "locked_count": locked,
            },
        )

    def get_courses_progress(
        self, username: str, course_ids: Iterable[str]
    ) -> Dict[str, CourseProgress]:
        """Fetch progress for several courses concurrently."""
        course_ids = list(dict.fromkeys(course_ids))
        if not course_ids:
            return {}

        workers = max(1, min(self.progress_workers, len(course_ids)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = executor.map(
                lambda course_id: self.get_course_progress(username, course_id),
                course_ids,
            )
            return {progress.course_id: progress for progress in results}

    # ------------------------------------------------------------------
    # Single sign-on
    # ------------------------------------------------------------------

    def login_user(self, email: str, password: str) -> LoginSession:
        """
        Open a platform session with the user's own credentials.

        The login page is fetched first for its ``csrftoken`` cookie, which
        the session login endpoint requires.
        """
        session = requests.Session()
        login_page = f"{self.base_url}{self.LOGIN_PAGE_PATH}"
        try:
            session.get(login_page, headers={"Accept": "text/html"}, timeout=self.timeout)
            csrf_token = session.cookies.get("csrftoken")
            if not csrf_token:
                logger.error("Could not get CSRF token from edX")
                return LoginSession(success=False, error_message="Could not get CSRF token")

            response = session.post(
                f"{self.base_url}{self.LOGIN_SESSION_PATH}",
                json={"email": email, "password": password},
                headers={"X-CSRFToken": csrf_token, "Referer": login_page},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"edX login request failed for {email}: {str(e)}")
            return LoginSession(success=False, error_message=f"edX login request failed: {str(e)}")

        if not response.ok:
            try:
                error_data = response.json()
            except ValueError:
                error_data = None
            message = error_data.get("value") if isinstance(error_data, dict) else None
            logger.error(f"edX login failed for {email}: {response.status_code}")
            return LoginSession(
                success=False,
                error_message=message or "Login failed",
                status_code=response.status_code,
            )

        logger.info(f"edX login successful for: {email}")
        return LoginSession(
            success=True,
            session_id=session.cookies.get("sessionid"),
            csrf_token=session.cookies.get("csrftoken") or csrf_token,
            user_info=session.cookies.get("edx-user-info"),
        )

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def test_connection(self) -> ConnectionStatus:
        try:
            self.token_manager.get_access_token()
        except EdxIntegrationException as e:
            logger.error(f"edX connection test failed: {e.message}")
            return ConnectionStatus(success=False, message=e.message)
        return ConnectionStatus(success=True, message="Connected to edX platform")


class _LazyEdxClient:
    """Defers reading settings until the client is first used."""

    def __init__(self):
        self._instance: Optional[EdxClient] = None

    def __getattr__(self, name):
        if self._instance is None:
            self._instance = EdxClient()
        return getattr(self._instance, name)

    def reset(self):
        self._instance = None


edx_client = _LazyEdxClient()
