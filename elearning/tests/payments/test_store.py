from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from elearning.payments.exceptions import InvalidOrderItems, OrderNotFound
from elearning.payments.models import (
    Enrollment,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    generate_order_reference,
)
from elearning.payments.store import OrderStore

from ..factories import make_course, make_order, make_pack, make_track, make_user


class OrderReferenceTests(TestCase):
    def test_format_and_uniqueness(self):
        references = {generate_order_reference() for _ in range(50)}

        self.assertEqual(len(references), 50)
        for reference in references:
            self.assertRegex(reference, r"^ORD-[0-9A-Z]+-[0-9A-F]{8}$")


class OrderStoreTests(TestCase):
    def setUp(self):
        self.store = OrderStore()
        self.user = make_user()
        self.course = make_course(price="29.90")
        self.track = make_track([self.course], price="99.00")
        self.pack = make_pack(price="50.00")

    def test_create_order_prices_items_from_catalog(self):
        order = self.store.create_order(
            self.user,
            [
                {"type": "course", "id": self.course.pk},
                {"type": "track", "id": self.track.pk},
                {"type": "pack", "id": self.pack.pk},
            ],
            payment_method="card",
            billing={"phone": "615550000", "country": "Somalia"},
            promo_code="WELCOME",
        )

        self.assertEqual(order.status, OrderStatus.PENDING_PAYMENT)
        self.assertEqual(order.payment_status, PaymentStatus.PENDING)
        self.assertEqual(order.payment_method, PaymentMethod.CARD)
        self.assertEqual(order.subtotal, Decimal("178.90"))
        self.assertEqual(order.discount, Decimal("0.00"))
        self.assertEqual(order.total, Decimal("178.90"))
        self.assertEqual(order.currency, "USD")
        self.assertEqual(order.billing_first_name, "Ahmed")
        self.assertEqual(order.billing_email, "ahmed@example.com")
        self.assertEqual(order.billing_phone, "615550000")
        self.assertEqual(order.promo_code, "WELCOME")

        items = list(self.store.get_order_items(order))
        self.assertEqual(
            [(item.item_type, item.name) for item in items],
            [
                (OrderItem.ItemType.COURSE, self.course.title),
                (OrderItem.ItemType.TRACK, self.track.title),
                (OrderItem.ItemType.TUITION_PACK, self.pack.name),
            ],
        )

    def test_unknown_payment_method_falls_back_to_mobile_money(self):
        order = make_order(self.user, self.course, payment_method="bitcoin")
        self.assertEqual(order.payment_method, PaymentMethod.MOBILE_MONEY)

    def test_invalid_items(self):
        for items in ([], [{"type": "voucher", "id": 1}], [{"type": "course", "id": 9999}], [{"type": "course", "id": "x"}]):
            with self.assertRaises(InvalidOrderItems):
                self.store.create_order(self.user, items)

    def test_lookup_cleans_reference_and_scopes_owner(self):
        order = make_order(self.user, self.course)
        stranger = make_user(username="stranger", email="stranger@example.com")

        self.assertEqual(self.store.get_order_by_reference(f" {order.reference_id}?x=1 "), order)
        self.assertEqual(self.store.get_order_by_reference(order.reference_id, user=self.user), order)
        with self.assertRaises(OrderNotFound):
            self.store.get_order_by_reference(order.reference_id, user=stranger)
        with self.assertRaises(OrderNotFound):
            self.store.get_order_by_reference("")

    def test_upsert_prefers_matching_transaction_then_pending_row(self):
        order = make_order(self.user, self.course)
        pending = self.store.create_pending_payment(order, transaction_id="TX-1")

        updated = self.store.upsert_payment(order, PaymentStatus.DECLINED, transaction_id="TX-1")
        self.assertEqual(updated.pk, pending.pk)

        again = self.store.create_pending_payment(order)
        adopted = self.store.upsert_payment(order, PaymentStatus.APPROVED, transaction_id="TX-2")
        self.assertEqual(adopted.pk, again.pk)
        self.assertEqual(adopted.transaction_id, "TX-2")
        self.assertIsNotNone(adopted.paid_at)

        fresh = self.store.upsert_payment(order, PaymentStatus.APPROVED, transaction_id="TX-3")
        self.assertNotIn(fresh.pk, (pending.pk, again.pk))
        self.assertEqual(fresh.amount, order.total)

        forced = self.store.upsert_payment(order, PaymentStatus.APPROVED, transaction_id="TX-3", force_new=True)
        self.assertNotEqual(forced.pk, fresh.pk)
        self.assertEqual(self.store.get_latest_payment(order).pk, forced.pk)

    def test_enrollment_get_or_create(self):
        order = make_order(self.user, self.course)

        first, created = self.store.get_or_create_enrollment(self.user, order=order, course=self.course)
        second, created_again = self.store.get_or_create_enrollment(self.user, order=order, course=self.course)

        self.assertTrue(created)
        self.assertFalse(created_again)
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(first.edx_course_id, self.course.edx_course_id)
        self.assertEqual(self.store.get_enrollment(self.user, course=self.course), first)
        self.assertIsNone(self.store.get_enrollment(self.user, track=self.track))

    def test_progress_is_clamped_and_completes(self):
        enrollment, _created = self.store.get_or_create_enrollment(self.user, course=self.course)

        self.store.update_enrollment_progress(enrollment, 140)

        enrollment.refresh_from_db()
        self.assertEqual(enrollment.progress, 100)
        self.assertEqual(enrollment.status, Enrollment.Status.COMPLETED)

    def test_stale_orders(self):
        order = make_order(self.user, self.course)
        self.assertEqual(list(self.store.find_stale_orders(timezone.now() + timedelta(seconds=1))), [order])
        self.assertEqual(list(self.store.find_stale_orders(timezone.now() - timedelta(minutes=5))), [])
