"""
E-Learning Payments Package - Academy Storefront

Dieses Paket enthält den Bestell- und Zahlungsablauf des Storefronts.
Es verbindet das WaafiPay-Gateway mit den lokalen Einschreibungen und der
Open-edX-Plattform.

Features:
- Bestellungen mit Kursen, Lernpfaden und Nachhilfe-Paketen
- Zahlungsabgleich aus Gateway-Callback, Verify-Abfrage und Sweep
- Idempotente Einschreibung inklusive Open-edX-Registrierung
- Rückerstattungen und Stornierung offener Bestellungen

Struktur:
- models.py: Order, OrderItem, Payment, Enrollment, TuitionPackPurchase
- store.py: Persistenzschicht ohne Geschäftslogik
- reconciliation.py: Zustandsmaschine für Bestellungen und Zahlungen
- fanout.py: Einschreibungen nach erfolgreicher Zahlung
- signals.py: Versand der Zugangsdaten nach dem Commit
- serializers.py, views.py, urls.py: REST-API

Author: Academy Development Team
Version: 1.0.0
"""
