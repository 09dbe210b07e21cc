"""
Check Order Command - Academy Storefront

Dieses Management Command zeigt den vollständigen Zustand einer Bestellung:
Positionen, Zahlungen, Einschreibungen und Nachhilfe-Guthaben.

Usage:
    python manage.py check_order ORD-LX2K9A1B-3F9A1C2D

Author: Academy Development Team
Version: 1.0.0
"""

from django.core.management.base import BaseCommand, CommandError

from elearning.payments.exceptions import OrderNotFound
from elearning.payments.store import OrderStore


class Command(BaseCommand):
    help = "Zeigt Positionen, Zahlungen und Einschreibungen einer Bestellung."

    def add_arguments(self, parser):
        parser.add_argument("reference_id", help="Referenz-ID der Bestellung (ORD-...)")

    def handle(self, *args, **options):
        store = OrderStore()
        try:
            order = store.get_order_by_reference(options["reference_id"])
        except OrderNotFound:
            raise CommandError(f"Order not found: {options['reference_id']}")

        user = order.user
        profile = store.get_profile(user)

        self.stdout.write("=== ORDER ===")
        self.stdout.write(f"Reference: {order.reference_id}")
        self.stdout.write(f"Status: {order.status} / {order.payment_status}")
        self.stdout.write(f"Total: {order.total} {order.currency} ({order.payment_method})")
        self.stdout.write(f"User: {user.username} <{user.email}> (ID {user.pk})")
        self.stdout.write(
            f"edX: {'registered as ' + profile.edx_username if profile.has_edx_account else 'not registered'}"
        )

        self.stdout.write("\n=== ITEMS ===")
        for item in store.get_order_items(order):
            self.stdout.write(f"  - [{item.item_type}] {item.name}: {item.price}")

        self.stdout.write("\n=== PAYMENTS ===")
        payments = order.payments.order_by("-created_at", "-id")
        if not payments:
            self.stdout.write("  none")
        for payment in payments:
            self.stdout.write(
                f"  - #{payment.pk} {payment.status} {payment.amount} {payment.currency} "
                f"tx={payment.transaction_id or '-'} paid_at={payment.paid_at or '-'}"
            )
            if payment.error_message:
                self.stdout.write(f"    {payment.error_code or ''} {payment.error_message}")

        self.stdout.write("\n=== ENROLLMENTS ===")
        enrollments = order.enrollments.select_related("course", "track")
        if not enrollments:
            self.stdout.write("  none")
        for enrollment in enrollments:
            target = enrollment.course or enrollment.track
            self.stdout.write(
                f"  - {target} | {enrollment.status} | edX: "
                f"{enrollment.edx_course_id if enrollment.edx_enrolled else 'no'}"
            )

        purchases = order.tuition_purchases.select_related("tuition_pack")
        if purchases:
            self.stdout.write("\n=== TUITION PACKS ===")
            for purchase in purchases:
                self.stdout.write(
                    f"  - {purchase.tuition_pack.name}: {purchase.credits_remaining}/"
                    f"{purchase.credits_total} credits, expires {purchase.expires_at:%Y-%m-%d}"
                )
