"""
Open edX Integration Package - Academy Commerce Backend

Dieses Paket enthält den Client für die Open-edX-Lernplattform, über den nach
einem Kauf Studentenkonten und Kurseinschreibungen angelegt werden.

Struktur:
- token_manager: OAuth2-Tokenverwaltung (Client Credentials)
- client: Registrierung, Einschreibung, Einschreibungsprüfung, Fortschritt
- credentials: Passwortgenerierung, Verschlüsselung, Benutzernamen
- results: Ergebnisobjekte des Clients
- exceptions: Fehler- und Exception-Handling

Author: Academy Development Team
Version: 1.0.0
"""
