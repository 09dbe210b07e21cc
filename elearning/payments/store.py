"""
Order Store

Persistence facade over the commerce models. It exposes the query patterns
the reconciliation engine and the enrollment fan-out need and performs no
business decisions of its own.

Author: Academy Development Team
Version: 1.0.0
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Iterable, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.waafipay_integration.client import clean_reference_id

from ..catalog.models import Course, Track, TuitionPack
from ..users.models import Profile
from .exceptions import InvalidOrderItems, OrderNotFound
from .models import (
    Enrollment,
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    TuitionPackPurchase,
)

logger = logging.getLogger(__name__)

PAYMENT_METHOD_MAP = {
    "mobile_money": PaymentMethod.MOBILE_MONEY,
    "card": PaymentMethod.CARD,
    "bank_transfer": PaymentMethod.BANK_TRANSFER,
    "pay_at_center": PaymentMethod.PAY_AT_CENTER,
}

CATALOG_MODELS = {
    OrderItem.ItemType.COURSE: (Course, "course"),
    OrderItem.ItemType.TRACK: (Track, "track"),
    OrderItem.ItemType.TUITION_PACK: (TuitionPack, "tuition_pack"),
}

ITEM_TYPE_ALIASES = {
    "course": OrderItem.ItemType.COURSE,
    "track": OrderItem.ItemType.TRACK,
    "tuition_pack": OrderItem.ItemType.TUITION_PACK,
    "pack": OrderItem.ItemType.TUITION_PACK,
}


class OrderStore:
    """
    Thin persistence layer for orders, payments, enrollments and credits.

    Example:
        >>> store = OrderStore()
        >>> order = store.get_order_by_reference("ORD-ABC123?foo=bar")
        >>> store.get_latest_payment(order)
    """

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def get_order_by_reference(self, reference_id: str, user=None, lock: bool = False) -> Order:
        """
        Find an order by reference id, optionally scoped to its owner.

        ``lock=True`` takes a row lock and must run inside
        ``transaction.atomic()``.

        Raises:
            OrderNotFound: If no matching order exists
        """
        reference_id = clean_reference_id(reference_id)
        if not reference_id:
            raise OrderNotFound("Reference ID is required")

        queryset = Order.objects.all()
        if lock:
            queryset = queryset.select_for_update()
        filters = {"reference_id": reference_id}
        if user is not None:
            filters["user"] = user

        try:
            return queryset.get(**filters)
        except Order.DoesNotExist:
            raise OrderNotFound()

    def list_orders(self, user, status: Optional[str] = None):
        queryset = Order.objects.filter(user=user).prefetch_related("items")
        if status:
            queryset = queryset.filter(status=status.upper())
        return queryset

    @transaction.atomic
    def create_order(
        self,
        user,
        items: Iterable[dict],
        payment_method: str = "mobile_money",
        mobile_provider: str = "",
        billing: Optional[dict] = None,
        promo_code: str = "",
        currency: Optional[str] = None,
    ) -> Order:
        """
        Create an order with its items, pricing each item from the catalog.

        Each item is ``{"type": "course"|"track"|"tuition_pack", "id": <pk>}``.

        Raises:
            InvalidOrderItems: If an item type is unknown or the entry does not exist
        """
        resolved = [self._resolve_item(item) for item in items]
        if not resolved:
            raise InvalidOrderItems("At least one item is required")

        subtotal = sum((entry.price for _type, entry in resolved), Decimal("0.00"))
        billing = billing or {}
        order = Order.objects.create(
            user=user,
            status=OrderStatus.PENDING_PAYMENT,
            payment_status=PaymentStatus.PENDING,
            payment_method=PAYMENT_METHOD_MAP.get(
                (payment_method or "").lower(), PaymentMethod.MOBILE_MONEY
            ),
            mobile_provider=mobile_provider or "",
            subtotal=subtotal,
            discount=Decimal("0.00"),
            total=subtotal,
            currency=currency or settings.ORDER_DEFAULT_CURRENCY,
            billing_first_name=billing.get("firstName") or user.first_name,
            billing_last_name=billing.get("lastName") or user.last_name,
            billing_email=billing.get("email") or user.email,
            billing_phone=billing.get("phone") or "",
            billing_country=billing.get("country") or "",
            promo_code=promo_code or "",
        )

        for item_type, entry in resolved:
            _model, field = CATALOG_MODELS[item_type]
            OrderItem.objects.create(
                order=order,
                item_type=item_type,
                name=getattr(entry, "title", None) or entry.name,
                price=entry.price,
                quantity=1,
                **{field: entry},
            )

        logger.info(f"Created order {order.reference_id} for user {user.pk} ({order.total} {order.currency})")
        return order

    def _resolve_item(self, item: dict):
        item_type = ITEM_TYPE_ALIASES.get(str(item.get("type", "")).lower())
        if item_type is None:
            raise InvalidOrderItems(f"Unknown item type: {item.get('type')}")

        model, _field = CATALOG_MODELS[item_type]
        try:
            return item_type, model.objects.get(pk=item.get("id"))
        except (model.DoesNotExist, ValueError, TypeError):
            raise InvalidOrderItems(f"{model._meta.verbose_name} {item.get('id')} does not exist")

    def set_order_status(self, order: Order, status: str, payment_status: str) -> Order:
        order.status = status
        order.payment_status = payment_status
        order.save(update_fields=["status", "payment_status", "updated_at"])
        return order

    def get_order_items(self, order: Order):
        return order.items.select_related("course", "track", "tuition_pack").prefetch_related(
            "track__courses"
        )

    def find_stale_orders(self, older_than):
        """PENDING_PAYMENT orders created before ``older_than``."""
        return Order.objects.filter(
            status=OrderStatus.PENDING_PAYMENT, created_at__lt=older_than
        ).order_by("created_at")

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def get_latest_payment(self, order: Order) -> Optional[Payment]:
        return order.payments.order_by("-created_at", "-id").first()

    def find_payment_for_transaction(self, order: Order, transaction_id: Optional[str]) -> Optional[Payment]:
        if not transaction_id:
            return None
        return order.payments.filter(transaction_id=transaction_id).order_by("-created_at", "-id").first()

    def get_latest_pending_payment(self, order: Order) -> Optional[Payment]:
        return (
            order.payments.filter(status=PaymentStatus.PENDING)
            .order_by("-created_at", "-id")
            .first()
        )

    def get_latest_approved_payment(self, order: Order) -> Optional[Payment]:
        return (
            order.payments.filter(status=PaymentStatus.APPROVED)
            .order_by("-created_at", "-id")
            .first()
        )

    def get_payment_for_user(self, payment_id, user, lock: bool = False) -> Optional[Payment]:
        queryset = Payment.objects.select_related("order")
        if lock:
            queryset = queryset.select_for_update()
        return queryset.filter(pk=payment_id, user=user).first()

    def list_payments(self, user, status: Optional[str] = None):
        queryset = Payment.objects.filter(user=user).select_related("order")
        if status:
            queryset = queryset.filter(status=status.upper())
        return queryset

    def create_pending_payment(
        self,
        order: Order,
        gateway_order_id: Optional[str] = None,
        transaction_id: Optional[str] = None,
    ) -> Payment:
        return Payment.objects.create(
            order=order,
            user=order.user,
            amount=order.total,
            currency=order.currency,
            status=PaymentStatus.PENDING,
            payment_method=order.payment_method,
            waafipay_order_id=gateway_order_id,
            transaction_id=transaction_id,
        )

    def upsert_payment(
        self,
        order: Order,
        status: str,
        transaction_id: Optional[str] = None,
        amount: Optional[Decimal] = None,
        currency: Optional[str] = None,
        issuer_transaction_id: Optional[str] = None,
        payer_id: Optional[str] = None,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        payment: Optional[Payment] = None,
        force_new: bool = False,
    ) -> Payment:
        """
        Update the payment row for this transaction, or create one.

        The row is chosen in this order: the explicitly given ``payment``, the
        row already carrying ``transaction_id``, the latest PENDING row, and
        finally a new row. ``force_new`` always creates a new row.
        """
        if not force_new:
            payment = (
                payment
                or self.find_payment_for_transaction(order, transaction_id)
                or self.get_latest_pending_payment(order)
            )
        else:
            payment = None
        if payment is None:
            payment = Payment(
                order=order,
                user=order.user,
                amount=order.total,
                currency=order.currency,
                payment_method=order.payment_method,
            )

        payment.status = status
        if transaction_id:
            payment.transaction_id = transaction_id
        if amount is not None:
            payment.amount = amount
        if currency:
            payment.currency = currency
        if issuer_transaction_id:
            payment.issuer_transaction_id = issuer_transaction_id
        if payer_id:
            payment.payer_id = payer_id
        if error_code is not None:
            payment.error_code = error_code
        if error_message is not None:
            payment.error_message = (error_message or "")[:500] or None
        if status == PaymentStatus.APPROVED and payment.paid_at is None:
            payment.paid_at = timezone.now()

        payment.save()
        return payment

    def record_payment_outcome(
        self,
        order: Order,
        order_status: str,
        payment_status: str,
        **payment_fields,
    ) -> Payment:
        """Write the payment row and then the order status as one unit."""
        with transaction.atomic():
            payment = self.upsert_payment(order, payment_status, **payment_fields)
            self.set_order_status(order, order_status, payment_status)
        return payment

    # ------------------------------------------------------------------
    # Enrollments and credits
    # ------------------------------------------------------------------

    def get_enrollment(self, user, course: Optional[Course] = None, track: Optional[Track] = None) -> Optional[Enrollment]:
        if course is not None:
            return Enrollment.objects.filter(user=user, course=course).first()
        if track is not None:
            return Enrollment.objects.filter(user=user, track=track).first()
        return None

    def get_or_create_enrollment(
        self,
        user,
        order: Optional[Order] = None,
        course: Optional[Course] = None,
        track: Optional[Track] = None,
    ):
        """
        Return ``(enrollment, created)`` for the (user, course) or (user, track) pair.
        """
        lookup = {"user": user}
        if course is not None:
            lookup["course"] = course
        else:
            lookup["track"] = track

        with transaction.atomic():
            enrollment, created = Enrollment.objects.get_or_create(
                **lookup,
                defaults={
                    "order": order,
                    "status": Enrollment.Status.ACTIVE,
                    "edx_course_id": course.edx_course_id if course is not None else "",
                },
            )
        return enrollment, created

    def mark_enrollment_remote(self, enrollment: Enrollment, mode: str, course_id: str) -> Enrollment:
        enrollment.edx_enrolled = True
        enrollment.edx_enrolled_at = timezone.now()
        enrollment.edx_enrollment_mode = mode
        enrollment.edx_course_id = course_id
        enrollment.save(
            update_fields=[
                "edx_enrolled",
                "edx_enrolled_at",
                "edx_enrollment_mode",
                "edx_course_id",
                "updated_at",
            ]
        )
        return enrollment

    def list_enrollments(self, user):
        return Enrollment.objects.filter(user=user).select_related("course", "track")

    def update_enrollment_progress(self, enrollment: Enrollment, progress: int) -> Enrollment:
        enrollment.progress = max(0, min(100, progress))
        if enrollment.progress == 100:
            enrollment.status = Enrollment.Status.COMPLETED
        enrollment.save(update_fields=["progress", "status", "updated_at"])
        return enrollment

    def get_tuition_purchase(self, order: Order, pack: TuitionPack) -> Optional[TuitionPackPurchase]:
        return TuitionPackPurchase.objects.filter(order=order, tuition_pack=pack).first()

    def create_tuition_purchase(self, order: Order, pack: TuitionPack) -> TuitionPackPurchase:
        credits = pack.credits_included
        return TuitionPackPurchase.objects.create(
            user=order.user,
            tuition_pack=pack,
            order=order,
            credits_total=credits,
            credits_used=0,
            credits_remaining=credits,
            expires_at=timezone.now() + timedelta(days=pack.validity_days or 30),
        )

    # ------------------------------------------------------------------
    # Remote account linkage
    # ------------------------------------------------------------------

    def get_profile(self, user, lock: bool = False) -> Profile:
        if lock:
            Profile.objects.get_or_create(user=user)
            return Profile.objects.select_for_update().get(user=user)
        profile, _created = Profile.objects.get_or_create(user=user)
        return profile

    def mark_user_registered(self, profile: Profile, username: str, encrypted_password: Optional[str]) -> Profile:
        profile.mark_edx_registered(username, encrypted_password)
        return profile
