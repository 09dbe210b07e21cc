"""
E-Learning User Authentication Views

This module provides the cookie-based JWT authentication endpoints used by
the storefront.

Views:
- CustomTokenObtainPairView: Login, tokens stored in HTTP-only cookies
- CustomTokenRefreshView: Token refresh from the refresh cookie
- LogoutView: Refresh token blacklisting and cookie removal
- StudentRegistrationView: Public sign-up
- CurrentUserView: Own account data

Author: Academy Development Team
Version: 1.0.0
"""

import logging

from django.http import JsonResponse
from django.utils.translation import gettext_lazy as _
from rest_framework import status, generics
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.serializers import TokenRefreshSerializer
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenObtainPairView

from django.conf import settings

from backend.custom_auth import ACCESS_COOKIE, REFRESH_COOKIE

from ..serializers import (
    CustomTokenObtainPairSerializer,
    StudentRegistrationSerializer,
    UserSerializer,
)

logger = logging.getLogger(__name__)


def _set_auth_cookies(response, access=None, refresh=None):
    cookie_options = {
        "httponly": True,
        "secure": settings.AUTH_COOKIE_SECURE,
        "samesite": settings.AUTH_COOKIE_SAMESITE,
        "path": "/",
    }
    if refresh:
        response.set_cookie(
            REFRESH_COOKIE,
            refresh,
            max_age=settings.SIMPLE_JWT["REFRESH_TOKEN_LIFETIME"],
            **cookie_options,
        )
    if access:
        response.set_cookie(
            ACCESS_COOKIE,
            access,
            max_age=settings.SIMPLE_JWT["ACCESS_TOKEN_LIFETIME"],
            **cookie_options,
        )


class CustomTokenObtainPairView(TokenObtainPairView):
    """
    Login endpoint storing JWT tokens in HTTP-only cookies instead of the
    response body.
    """

    serializer_class = CustomTokenObtainPairSerializer

    def post(self, request, *args, **kwargs):
        response = super().post(request, *args, **kwargs)
        if response.status_code == 200:
            data = response.data
            _set_auth_cookies(
                response,
                access=data.pop("access", None),
                refresh=data.pop("refresh", None),
            )
        return response


class CustomTokenRefreshView(APIView):
    """Issue new tokens from the ``refresh_token`` cookie."""

    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request, *args, **kwargs):
        refresh_token = request.COOKIES.get(REFRESH_COOKIE)
        if not refresh_token:
            return Response(
                {"detail": "Refresh token not provided"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        serializer = TokenRefreshSerializer(data={"refresh": refresh_token})
        try:
            serializer.is_valid(raise_exception=True)
        except TokenError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        response = Response(status=status.HTTP_200_OK)
        _set_auth_cookies(response, access=data.get("access"), refresh=data.get("refresh"))
        return response


class LogoutView(APIView):
    """
    Blacklist the refresh token and clear both auth cookies.

    Always answers 205, even when the token was already invalid.
    """

    permission_classes = [AllowAny]

    def post(self, request):
        refresh_token = request.COOKIES.get(REFRESH_COOKIE)
        if refresh_token:
            try:
                RefreshToken(refresh_token).blacklist()
            except TokenError as e:
                logger.info(f"Logout with unusable refresh token: {e}")
        response = JsonResponse({"detail": "Successfully logged out."}, status=205)
        response.delete_cookie(REFRESH_COOKIE)
        response.delete_cookie(ACCESS_COOKIE)
        return response


class StudentRegistrationView(generics.CreateAPIView):
    """
    Public sign-up for storefront buyers.

    Request Body Example (JSON):
    {
        "username": "ahmed",
        "email": "ahmed@example.com",
        "first_name": "Ahmed",
        "last_name": "Ali",
        "phone": "+252615550000",
        "password": "secret1234!",
        "password_confirm": "secret1234!"
    }
    """

    serializer_class = StudentRegistrationSerializer
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()
            logger.info(f"Registered storefront user {user.pk}")
            return Response(
                {"detail": _("Registration successful.")},
                status=status.HTTP_201_CREATED,
            )
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


class CurrentUserView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(UserSerializer(request.user).data)
