"""
E-Learning Users Views Package - Academy Storefront

Dieses Paket enthält alle Views für die Benutzerkonten des Storefronts.
Ermöglicht Anmeldung mit JWT-Cookies, Registrierung und Abfrage des eigenen
Kontos.

Features:
- JWT-basierte Authentifizierung über HTTP-only Cookies
- Token-Erneuerung und Logout mit Token-Invalidierung
- Selbstregistrierung für Käufer
- Eigene Kontodaten inklusive Open-edX-Verknüpfung
- Single Sign-on auf Open edX und Open-edX-Verwaltung für Mitarbeiter

Author: Academy Development Team
Version: 1.0.0
"""

from .auth_views import (
    CustomTokenObtainPairView,
    CustomTokenRefreshView,
    LogoutView,
    StudentRegistrationView,
    CurrentUserView,
)
from .edx_views import (
    EdxStatusView,
    EdxEnrollView,
    EdxUnenrollView,
    EdxUserEnrollmentsView,
    EdxCheckEnrollmentView,
    EdxBulkEnrollView,
    EdxLoginView,
)
