"""
E-Learning Application URL Configuration

This module defines the URL routing structure of the storefront API. Each
functional area has its own namespace.

URL Structure:
- /api/token/: Authentication endpoints (JWT cookie management)
- /api/users/: Registration, logout, own account data and edX single sign-on
- /api/orders/: Checkout orders
- /api/payments/: Payment sessions, gateway callback, verification, refunds
- /api/enrollments/: Own enrollments and learning progress
- /api/edx/: Staff administration of learning platform accounts

Author: Academy Development Team
Version: 1.0.0
"""

from typing import List
from django.urls import path, include, URLPattern

from .users import views as user_views
from .payments.urls import (
    enrollments_urlpatterns,
    orders_urlpatterns,
    payments_urlpatterns,
)

app_name = 'elearning'

# --- User Management URL Patterns ---

users_urlpatterns: List[URLPattern] = [
    path('register/', user_views.StudentRegistrationView.as_view(), name='register'),
    path('logout/', user_views.LogoutView.as_view(), name='logout'),
    path('me/', user_views.CurrentUserView.as_view(), name='me'),
    path('edx-login/', user_views.EdxLoginView.as_view(), name='edx-login'),
]

# --- Open edX Administration URL Patterns (staff only) ---

edx_urlpatterns: List[URLPattern] = [
    path('status/', user_views.EdxStatusView.as_view(), name='status'),
    path('enroll/', user_views.EdxEnrollView.as_view(), name='enroll'),
    path('unenroll/', user_views.EdxUnenrollView.as_view(), name='unenroll'),
    path('bulk-enroll/', user_views.EdxBulkEnrollView.as_view(), name='bulk-enroll'),
    path('enrollments/<str:username>/', user_views.EdxUserEnrollmentsView.as_view(), name='enrollments'),
    path('check-enrollment/<str:username>/', user_views.EdxCheckEnrollmentView.as_view(), name='check-enrollment'),
]

# --- Main URL Configuration for E-Learning Application ---

urlpatterns: List[URLPattern] = [
    # Authentication endpoints (JWT token management)
    path('token/', user_views.CustomTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('token/refresh/', user_views.CustomTokenRefreshView.as_view(), name='token_refresh'),

    # Functional area URL includes with proper namespacing
    path('users/', include((users_urlpatterns, 'users'))),
    path('orders/', include((orders_urlpatterns, 'orders'))),
    path('payments/', include((payments_urlpatterns, 'payments'))),
    path('enrollments/', include((enrollments_urlpatterns, 'enrollments'))),
    path('edx/', include((edx_urlpatterns, 'edx'))),
]
