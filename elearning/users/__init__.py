"""
E-Learning Users Package - Academy Storefront

Dieses Paket enthält die Benutzerkonten der Käufer und ihre Verknüpfung
mit der Open-edX-Lernplattform.

Features:
- Profil mit Telefonnummer und edX-Konto (Passwort nur verschlüsselt)
- JWT-basierte Authentifizierung mit HTTP-only Cookies
- Automatische Profilerstellung durch Django-Signale
- Selbstregistrierung mit Passwortbestätigung

Struktur:
- models.py: Benutzerprofile und Signal-Handler
- serializers.py: API-Serialisierung für Benutzerdaten
- views/: Authentifizierungs- und Konto-Views

Author: Academy Development Team
Version: 1.0.0
"""
