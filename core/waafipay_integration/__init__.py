"""
WaafiPay Integration Package - Academy Commerce Backend

Dieses Paket enthält den Client für das WaafiPay-Zahlungsgateway:
Hosted-Payment-Page-Käufe, Transaktionsabfragen, Rückerstattungen,
Callback-Verarbeitung und Verbindungstest.

Struktur:
- client: Request-Envelope, Service-Aufrufe und Callback-Parsing
- results: Ergebnisobjekte des Clients
- exceptions: Transportfehler innerhalb des Clients

Author: Academy Development Team
Version: 1.0.0
"""
