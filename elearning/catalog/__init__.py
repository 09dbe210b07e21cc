"""
E-Learning Catalog Package - Academy Commerce Backend

Dieses Paket enthält die käuflichen Katalogeinträge des Shops.

Features:
- Einzelkurse mit Verknüpfung zum Open-edX-Kurs
- Tracks als Bündel mehrerer Kurse
- Nachhilfe-Pakete (Tuition Packs) mit Guthaben und Gültigkeit

Struktur:
- models.py: Datenmodelle für Kurse, Tracks und Tuition Packs

Author: Academy Development Team
Version: 1.0.0
"""
