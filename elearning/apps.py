"""
E-Learning Application Configuration

This module contains the Django application configuration for the storefront.
The application provides user accounts, the course catalog, orders, WaafiPay
payments and the enrollment fan-out to Open edX.

Author: Academy Development Team
Version: 1.0.0
"""

from django.apps import AppConfig


class ElearningConfig(AppConfig):
    """
    Configuration class for the E-Learning Django application.

    Attributes:
        default_auto_field: Default primary key field type for models
        name: Application name for Django registration
        verbose_name: Human-readable application name for admin interface
    """

    default_auto_field: str = "django.db.models.BigAutoField"
    name: str = "elearning"
    verbose_name: str = "E-Learning Storefront"

    def ready(self) -> None:
        """
        Register signal receivers.

        Importing the signals module connects the credentials e-mail
        receiver. Safe to call multiple times.
        """
        super().ready()
        from .payments import signals  # noqa: F401
