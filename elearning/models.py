"""
E-Learning Application Models Registry

This module serves as the central models registry for the E-Learning application.
It imports and exposes all models from the logical submodules (users, catalog,
payments) to ensure they are properly registered with Django's ORM system.

Architecture:
- users/: User profiles and the Open edX account link
- catalog/: Courses, tracks and tuition packs offered in the storefront
- payments/: Orders, payments, enrollments and tuition credits

Author: Academy Development Team
Version: 1.0.0
"""

# Import all user-related models for registration with Django ORM
from .users.models import *

# Import all catalog models for registration with Django ORM
from .catalog.models import *

# Import all order and payment models for registration with Django ORM
from .payments.models import *
