"""
Open edX OAuth2 Token Manager

This module manages the OAuth2 client-credentials access token used for all
server-to-server calls against the Open edX platform. It handles token
acquisition, caching and invalidation with proper error handling and logging.

Tokens are cached in Django's cache framework. With the default LocMem
backend the cache is per process; when ``REDIS_URL`` is configured the
django-redis backend makes the token shared between all workers.

Author: Academy Development Team
Version: 1.0.0
"""

import logging
from typing import Optional, Dict, Any
from threading import Lock

import requests
from django.conf import settings
from django.core.cache import cache

from .exceptions import EdxAuthException, EdxServiceUnavailableException

logger = logging.getLogger(__name__)


class EdxTokenManager:
    """
    Thread-safe OAuth2 token manager for the Open edX REST APIs.

    Implements the client-credentials flow against ``/oauth2/access_token``
    requesting a JWT, and caches the token until shortly before it expires.

    Attributes:
        CACHE_PREFIX (str): Prefix for cache keys
        TOKEN_PATH (str): OAuth2 token endpoint path
        TOKEN_BUFFER_SECONDS (int): Buffer time before token expiration
        DEFAULT_EXPIRES_IN (int): Lifetime assumed when the platform omits one

    Example:
        >>> token_manager = EdxTokenManager()
        >>> access_token = token_manager.get_access_token()
    """

    CACHE_PREFIX = "edx_token"
    TOKEN_PATH = "/oauth2/access_token"
    TOKEN_BUFFER_SECONDS = 300  # 5 minutes buffer before expiration
    DEFAULT_EXPIRES_IN = 3600

    def __init__(
        self,
        base_url: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> None:
        self._lock = Lock()
        self.base_url = (base_url or settings.EDX_BASE_URL).rstrip("/")
        self.client_id = client_id or settings.EDX_OAUTH_CLIENT_ID
        self.client_secret = client_secret or settings.EDX_OAUTH_CLIENT_SECRET
        self.timeout = timeout or settings.EDX_REQUEST_TIMEOUT

    @property
    def cache_key(self) -> str:
        return f"{self.CACHE_PREFIX}_{self.client_id}"

    def _validate_credentials(self) -> None:
        missing_credentials = []
        if not self.client_id:
            missing_credentials.append("EDX_OAUTH_CLIENT_ID")
        if not self.client_secret:
            missing_credentials.append("EDX_OAUTH_CLIENT_SECRET")

        if missing_credentials:
            raise EdxAuthException(
                f"Missing required edX OAuth credentials: {', '.join(missing_credentials)}.",
                auth_step="credential_validation",
            )

    def get_access_token(self, force_refresh: bool = False) -> str:
        """
        Get a valid edX access token, using the cache when possible.

        Args:
            force_refresh: Skip the cache and request a new token

        Returns:
            Access token string

        Raises:
            EdxAuthException: If token acquisition fails
            EdxServiceUnavailableException: If the platform is unavailable
        """
        with self._lock:
            if not force_refresh:
                cached_token = cache.get(self.cache_key)
                if cached_token:
                    logger.debug("Using cached edX access token")
                    return cached_token

            self._validate_credentials()

            logger.info("Requesting new edX access token")
            token_data = self._request_token()

            access_token = token_data.get("access_token")
            if not access_token:
                raise EdxAuthException(
                    "No access_token in edX token response",
                    auth_step="token_extraction",
                )

            expires_in = int(token_data.get("expires_in") or self.DEFAULT_EXPIRES_IN)
            cache_timeout = max(expires_in - self.TOKEN_BUFFER_SECONDS, 60)
            cache.set(self.cache_key, access_token, timeout=cache_timeout)

            logger.info(
                f"Obtained edX access token "
                f"(expires in {expires_in}s, cached for {cache_timeout}s)"
            )
            return access_token

    def _request_token(self) -> Dict[str, Any]:
        token_url = f"{self.base_url}{self.TOKEN_PATH}"
        request_data = {
            "grant_type": "client_credentials",
            "token_type": "jwt",
        }

        try:
            logger.debug(f"Requesting token from edX: {token_url}")
            response = requests.post(
                token_url,
                data=request_data,
                auth=(self.client_id, self.client_secret),
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            raise EdxAuthException(
                f"edX token request timed out after {self.timeout}s",
                auth_step="request_timeout",
            )
        except requests.exceptions.ConnectionError as e:
            raise EdxAuthException(
                f"Failed to connect to edX: {str(e)}",
                auth_step="connection_error",
            )
        except requests.exceptions.RequestException as e:
            raise EdxAuthException(
                f"edX token request failed: {str(e)}",
                auth_step="request_error",
            )

        if response.status_code == 200:
            return self._parse_token_response(response)
        if response.status_code in (502, 503, 504):
            raise EdxServiceUnavailableException(
                "edX OAuth service temporarily unavailable",
                status_code=response.status_code,
            )
        self._handle_token_error_response(response)

    def _parse_token_response(self, response: requests.Response) -> Dict[str, Any]:
        try:
            token_data = response.json()
        except ValueError as e:
            raise EdxAuthException(
                f"Invalid JSON in edX token response: {str(e)}",
                auth_step="response_parsing",
            )

        if not isinstance(token_data, dict) or "access_token" not in token_data:
            raise EdxAuthException(
                "Invalid edX token response: missing access_token",
                auth_step="response_validation",
            )
        return token_data

    def _handle_token_error_response(self, response: requests.Response) -> None:
        try:
            error_data = response.json()
        except ValueError:
            logger.error(
                f"edX token request failed: {response.status_code} - {response.text[:200]}"
            )
            raise EdxAuthException(
                f"edX authentication failed with status {response.status_code}",
                auth_step="token_request_error",
                status_code=response.status_code,
            )

        error_code = error_data.get("error", "unknown_error")
        error_description = error_data.get("error_description", "No description provided")
        logger.error(
            f"edX token request failed: {response.status_code} - "
            f"{error_code}: {error_description}"
        )
        raise EdxAuthException(
            f"edX authentication failed ({error_code}): {error_description}",
            auth_step="token_request_error",
            status_code=response.status_code,
            error_code=error_code,
        )

    def invalidate_cache(self) -> bool:
        """
        Invalidate the cached access token.

        Returns:
            True if a cached token was removed, False otherwise
        """
        if cache.get(self.cache_key):
            cache.delete(self.cache_key)
            logger.info("edX access token cache invalidated")
            return True
        return False

    def get_token_info(self) -> Dict[str, Any]:
        return {
            "base_url": self.base_url,
            "client_id": self.client_id[:8] + "..." if self.client_id else None,
            "cached_token_exists": cache.get(self.cache_key) is not None,
            "token_buffer_seconds": self.TOKEN_BUFFER_SECONDS,
            "request_timeout": self.timeout,
        }


class _LazyEdxTokenManager:
    """
    Lazy wrapper for EdxTokenManager to prevent import-time initialization.

    Settings are only read when the token manager is first used, so modules
    importing it can load without edX credentials configured.
    """

    def __init__(self):
        self._instance: Optional[EdxTokenManager] = None
        self._lock = Lock()

    def __getattr__(self, name):
        if self._instance is None:
            with self._lock:
                if self._instance is None:
                    self._instance = EdxTokenManager()
        return getattr(self._instance, name)

    def __bool__(self):
        return True

    def __repr__(self):
        return f"<LazyEdxTokenManager: {'initialized' if self._instance else 'not initialized'}>"


edx_token_manager = _LazyEdxTokenManager()
