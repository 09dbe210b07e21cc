"""
E-Learning Package - Academy Storefront

Dieses Paket enthält den Shop der Akademie: Benutzerkonten, Kurskatalog,
Bestellungen mit WaafiPay-Zahlung und die Einschreibung auf der
Open-edX-Lernplattform.

Features:
- Cookie-basierte JWT-Authentifizierung und Selbstregistrierung
- Kurse, Lernpfade (Tracks) und Nachhilfe-Pakete
- Zahlungsabgleich mit idempotenter Einschreibung
- Fortschrittsabfrage von der Lernplattform

Struktur:
- users/: Benutzerprofile und Authentifizierung
- catalog/: Käufliche Katalogeinträge
- payments/: Bestellungen, Zahlungen und Einschreibungen
- management/: Django Management Commands für Reparatur und Kontrolle

Author: Academy Development Team
Version: 1.0.0
"""
