"""
Result types returned by the Open edX client.

Every public client method returns one of these objects instead of raw
platform JSON. Callers branch on ``success``; expected remote failures are
never raised.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class RegistrationResult:
    success: bool
    username: Optional[str] = None
    email: Optional[str] = None
    already_exists: bool = False
    error_message: Optional[str] = None
    errors: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EnrollmentResult:
    success: bool
    course_id: Optional[str] = None
    identifier: Optional[str] = None
    enrollment: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None
    status_code: Optional[int] = None


@dataclass
class EnrollmentCheck:
    success: bool
    enrolled: bool = False
    enrollment: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None


@dataclass
class UserEnrollments:
    success: bool
    enrollments: List[Dict[str, Any]] = field(default_factory=list)
    error_message: Optional[str] = None


@dataclass
class BulkEnrollmentResult:
    success: bool
    result: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None

    def enrolled_courses(self, identifier: str) -> List[str]:
        """Course ids in which ``identifier`` ended up enrolled."""
        identifier = identifier.lower()
        courses = []
        for course_id, course_result in (self.result.get("courses") or {}).items():
            for row in course_result.get("results") or []:
                if (row.get("identifier") or "").lower() != identifier:
                    continue
                if (row.get("after") or {}).get("enrollment"):
                    courses.append(course_id)
        return courses


@dataclass
class LoginSession:
    """Session cookies of a user logged in on the platform."""

    success: bool
    session_id: Optional[str] = None
    csrf_token: Optional[str] = None
    user_info: Optional[str] = None
    error_message: Optional[str] = None
    status_code: Optional[int] = None


@dataclass
class CourseProgress:
    """Completion figures for one course; ``progress`` is a 0-100 integer."""

    course_id: str
    progress: int = 0
    has_passing_grade: bool = False
    completion_summary: Dict[str, int] = field(default_factory=dict)
    error_message: Optional[str] = None


@dataclass
class ConnectionStatus:
    success: bool
    message: str = ""


@dataclass
class EdxCredentials:
    """A freshly generated platform password and its encrypted form."""

    password: str
    encrypted_password: str
