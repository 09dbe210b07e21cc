"""
Cookie based JWT authentication for the storefront API.

The login view stores the access and refresh tokens in HTTP-only cookies
(see ``elearning/users/views/auth_views.py``). This authenticator reads the
access token from the cookie; the ``Authorization`` header stays available
through simplejwt's own class, which is listed second in ``REST_FRAMEWORK``.
"""

from typing import Optional, Tuple

from rest_framework import HTTP_HEADER_ENCODING
from rest_framework.request import Request
from rest_framework_simplejwt.authentication import JWTAuthentication as HeaderJWTAuthentication
from rest_framework_simplejwt.tokens import Token

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


class JWTAuthentication(HeaderJWTAuthentication):
    """Read the JWT from the ``access_token`` cookie instead of the header."""

    www_authenticate_realm = "api"
    media_type = "application/json"

    def authenticate(self, request: Request) -> Optional[Tuple[object, Token]]:
        cookie = request.COOKIES.get(ACCESS_COOKIE)
        if not cookie:
            return None

        validated_token = self.get_validated_token(cookie.encode(HTTP_HEADER_ENCODING))
        return self.get_user(validated_token), validated_token
