"""
Core App Configuration - Academy Commerce Backend

The core app holds the integrations with remote services shared across the
project.

Features:
- Open edX learning platform client
- WaafiPay payment gateway client

Author: Academy Development Team
Version: 1.0.0
"""

from django.apps import AppConfig


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'core'
    verbose_name = 'Core Integrations'
