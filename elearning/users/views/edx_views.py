"""
Open edX Views - Academy Storefront

Staff endpoints for inspecting and correcting accounts on the learning
platform, and the single sign-on hand-off for students.

Endpoints:
----------

1. EdxStatusView
   - URL: /api/edx/status/
   - Method: GET
   - Auth: Staff only

2. EdxEnrollView / EdxUnenrollView
   - URL: /api/edx/enroll/ and /api/edx/unenroll/
   - Method: POST
   - Auth: Staff only
   - Expected Body:
       {
           "username": "ahmed_ali_x7k2",
           "email": "ahmed@example.com",
           "course_id": "course-v1:Academy+MATH101+2025",
           "mode": "honor"
       }

3. EdxUserEnrollmentsView / EdxCheckEnrollmentView
   - URL: /api/edx/enrollments/<username>/
          /api/edx/check-enrollment/<username>/?course_id=<course id>
   - Method: GET
   - Auth: Staff only

4. EdxBulkEnrollView
   - URL: /api/edx/bulk-enroll/
   - Method: POST
   - Auth: Staff only
   - Expected Body: {"emails": [...], "course_ids": [...], "auto_enroll": true}

5. EdxLoginView
   - URL: /api/users/edx-login/
   - Method: POST
   - Auth: Required
   - Purpose:
       Logs the student in on the platform with the stored credentials and
       returns the session data the frontend needs for the redirect.

Author: Academy Development Team
Version: 1.0.0
"""

import logging
from dataclasses import asdict

from django.conf import settings
from django.utils.translation import gettext_lazy as _
from rest_framework import status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.edx_integration.client import edx_client
from core.edx_integration.credentials import decrypt_password

from ..models import get_profile
from ..serializers import EdxBulkEnrollSerializer, EdxEnrollmentSerializer

logger = logging.getLogger(__name__)


def _result_response(result) -> Response:
    return Response(
        asdict(result),
        status=status.HTTP_200_OK if result.success else status.HTTP_502_BAD_GATEWAY,
    )


class EdxStatusView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request):
        connection = edx_client.test_connection()
        return Response({
            "success": connection.success,
            "message": connection.message,
            "baseUrl": settings.EDX_BASE_URL,
        })


class EdxEnrollView(APIView):
    permission_classes = [IsAdminUser]

    def post(self, request):
        serializer = EdxEnrollmentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        logger.info(f"Staff {request.user.username} enrolls {data.get('username') or data.get('email')} in {data['course_id']}")
        result = edx_client.enroll_user_in_course(
            username=data.get("username") or data["email"],
            email=data.get("email") or None,
            course_id=data["course_id"],
            mode=data.get("mode") or None,
        )
        return _result_response(result)


class EdxUnenrollView(APIView):
    permission_classes = [IsAdminUser]

    def post(self, request):
        serializer = EdxEnrollmentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        if not data.get("username"):
            return Response(
                {"detail": _("Username is required.")},
                status=status.HTTP_400_BAD_REQUEST,
            )
        logger.info(f"Staff {request.user.username} unenrolls {data['username']} from {data['course_id']}")
        return _result_response(edx_client.unenroll_user_from_course(data["username"], data["course_id"]))


class EdxUserEnrollmentsView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request, username):
        return _result_response(edx_client.get_user_enrollments(username))


class EdxCheckEnrollmentView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request, username):
        course_id = request.query_params.get("course_id")
        if not course_id:
            return Response(
                {"detail": _("course_id query parameter is required.")},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return _result_response(edx_client.check_enrollment(username, course_id))


class EdxBulkEnrollView(APIView):
    permission_classes = [IsAdminUser]

    def post(self, request):
        serializer = EdxBulkEnrollSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        logger.info(
            f"Staff {request.user.username} bulk enrolls {len(data['emails'])} users "
            f"in {len(data['course_ids'])} courses"
        )
        result = edx_client.bulk_enroll(data["emails"], data["course_ids"], auto_enroll=data["auto_enroll"])
        return _result_response(result)


class EdxLoginView(APIView):
    """
    Single sign-on into the learning platform.

    The stored password is decrypted only for the duration of this request.
    """

    permission_classes = [IsAuthenticated]

    def post(self, request):
        profile = get_profile(request.user)
        if not profile.has_edx_account or not profile.edx_password:
            return Response(
                {"detail": _("User not registered on edX platform.")},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            password = decrypt_password(profile.edx_password)
        except ValueError:
            logger.error(f"Stored edX password of user {request.user.pk} cannot be decrypted")
            return Response(
                {"detail": _("Stored edX credentials are unreadable.")},
                status=status.HTTP_409_CONFLICT,
            )

        session = edx_client.login_user(request.user.email, password)
        if not session.success:
            return Response(
                {
                    "detail": session.error_message or _("edX login failed."),
                    "edxBaseUrl": settings.EDX_BASE_URL,
                    "loginUrl": f"{settings.EDX_BASE_URL}/login",
                },
                status=status.HTTP_502_BAD_GATEWAY,
            )

        return Response({
            "success": True,
            "edxBaseUrl": settings.EDX_BASE_URL,
            "edxUsername": profile.edx_username,
            "sessionId": session.session_id,
            "csrfToken": session.csrf_token,
            "returnUrl": request.data.get("returnUrl") or f"{settings.EDX_BASE_URL}/dashboard",
        })
