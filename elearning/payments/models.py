"""
E-Learning Commerce Models

This module defines the order, payment and enrollment records written by
the checkout flow and the payment reconciliation pipeline.

Models:
- Order: One checkout attempt with a unique reference id
- OrderItem: A purchased course, track or tuition pack
- Payment: One gateway transaction attempt for an order
- Enrollment: Access of a user to a course or track
- TuitionPackPurchase: Tutoring credits granted by a paid order

Features:
- Order and payment state enums shared with the reconciliation engine
- Decimal money fields throughout
- Database-level uniqueness for enrollments and tuition pack grants

Author: Academy Development Team
Version: 1.0.0
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from ..catalog.models import Course, Track, TuitionPack

BASE36_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _base36(number: int) -> str:
    digits = ""
    while number:
        number, remainder = divmod(number, 36)
        digits = BASE36_DIGITS[remainder] + digits
    return digits or "0"


def generate_order_reference() -> str:
    """
    Generate a shareable order reference such as ``ORD-M5X2K9QA-1F3B9C0D``.

    The middle part is the current time in milliseconds, base36 encoded.
    """
    timestamp = int(timezone.now().timestamp() * 1000)
    return f"ORD-{_base36(timestamp)}-{uuid.uuid4().hex[:8].upper()}"


class OrderStatus(models.TextChoices):
    PENDING = "PENDING", _("Pending")
    PENDING_PAYMENT = "PENDING_PAYMENT", _("Pending Payment")
    COMPLETED = "COMPLETED", _("Completed")
    FAILED = "FAILED", _("Failed")
    CANCELLED = "CANCELLED", _("Cancelled")
    REFUNDED = "REFUNDED", _("Refunded")


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING", _("Pending")
    APPROVED = "APPROVED", _("Approved")
    DECLINED = "DECLINED", _("Declined")
    FAILED = "FAILED", _("Failed")
    CANCELLED = "CANCELLED", _("Cancelled")
    EXPIRED = "EXPIRED", _("Expired")
    TIMEOUT = "TIMEOUT", _("Timeout")


class PaymentMethod(models.TextChoices):
    MOBILE_MONEY = "MOBILE_MONEY", _("Mobile Money")
    CARD = "CARD", _("Card")
    BANK_TRANSFER = "BANK_TRANSFER", _("Bank Transfer")
    PAY_AT_CENTER = "PAY_AT_CENTER", _("Pay at Center")


class Order(models.Model):
    """
    One checkout attempt.

    ``status`` and ``payment_status`` are only changed by the reconciliation
    engine; after reconciliation COMPLETED goes together with APPROVED.

    Attributes:
        reference_id: Unique, shareable reference sent to the gateway
        user: Buyer
        status: Order lifecycle state
        payment_status: Last known gateway state
        payment_method: Method chosen at checkout
        subtotal, discount, total: Money amounts in ``currency``
        billing_*: Billing snapshot captured at checkout
        promo_code: Promo code entered at checkout
    """

    reference_id = models.CharField(
        max_length=64,
        unique=True,
        default=generate_order_reference,
        verbose_name=_("Reference ID"),
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
        verbose_name=_("User"),
    )

    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING_PAYMENT,
        verbose_name=_("Status"),
    )

    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        verbose_name=_("Payment Status"),
    )

    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.MOBILE_MONEY,
        verbose_name=_("Payment Method"),
    )

    mobile_provider = models.CharField(
        max_length=50,
        blank=True,
        default="",
        verbose_name=_("Mobile Provider"),
    )

    subtotal = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    discount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default="USD")

    billing_first_name = models.CharField(max_length=100, blank=True, default="")
    billing_last_name = models.CharField(max_length=100, blank=True, default="")
    billing_email = models.EmailField(blank=True, default="")
    billing_phone = models.CharField(max_length=32, blank=True, default="")
    billing_country = models.CharField(max_length=100, blank=True, default="")

    promo_code = models.CharField(max_length=50, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_("Created At"))
    updated_at = models.DateTimeField(auto_now=True, verbose_name=_("Updated At"))

    def __str__(self) -> str:
        return f"{self.reference_id} ({self.status})"

    class Meta:
        verbose_name = _("Order")
        verbose_name_plural = _("Orders")
        ordering = ["-created_at"]
        db_table = "elearning_order"
        indexes = [
            models.Index(fields=["user", "status"], name="order_user_status_idx"),
            models.Index(fields=["status", "created_at"], name="order_status_created_idx"),
        ]

    @property
    def is_paid(self) -> bool:
        return (
            self.status == OrderStatus.COMPLETED
            and self.payment_status == PaymentStatus.APPROVED
        )

    @property
    def is_payable(self) -> bool:
        return self.status in (OrderStatus.PENDING, OrderStatus.PENDING_PAYMENT)


class OrderItem(models.Model):
    """
    A line item referencing exactly one course, track or tuition pack.

    Name and price are captured at purchase time.
    """

    class ItemType(models.TextChoices):
        COURSE = "course", _("Course")
        TRACK = "track", _("Track")
        TUITION_PACK = "tuition_pack", _("Tuition Pack")

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name="items",
        verbose_name=_("Order"),
    )

    item_type = models.CharField(
        max_length=20,
        choices=ItemType.choices,
        verbose_name=_("Item Type"),
    )

    course = models.ForeignKey(
        Course, on_delete=models.PROTECT, null=True, blank=True, related_name="order_items"
    )
    track = models.ForeignKey(
        Track, on_delete=models.PROTECT, null=True, blank=True, related_name="order_items"
    )
    tuition_pack = models.ForeignKey(
        TuitionPack, on_delete=models.PROTECT, null=True, blank=True, related_name="order_items"
    )

    name = models.CharField(max_length=255, verbose_name=_("Item Name"))
    price = models.DecimalField(max_digits=10, decimal_places=2, verbose_name=_("Price"))
    quantity = models.PositiveSmallIntegerField(default=1, verbose_name=_("Quantity"))

    def __str__(self) -> str:
        return f"{self.order.reference_id}: {self.name}"

    class Meta:
        verbose_name = _("Order Item")
        verbose_name_plural = _("Order Items")
        ordering = ["order", "id"]
        db_table = "elearning_order_item"


class Payment(models.Model):
    """
    One gateway transaction attempt for an order.

    An order may have several payments over time; the latest one by
    ``created_at`` reflects current truth.
    """

    order = models.ForeignKey(
        Order,
        on_delete=models.PROTECT,
        related_name="payments",
        verbose_name=_("Order"),
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payments",
        verbose_name=_("User"),
    )

    amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default="USD")

    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        verbose_name=_("Status"),
    )

    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.MOBILE_MONEY,
    )

    waafipay_order_id = models.CharField(max_length=100, blank=True, null=True)
    transaction_id = models.CharField(max_length=100, blank=True, null=True, db_index=True)
    issuer_transaction_id = models.CharField(max_length=100, blank=True, null=True)
    payer_id = models.CharField(max_length=100, blank=True, null=True)

    error_code = models.CharField(max_length=50, blank=True, null=True)
    error_message = models.CharField(max_length=500, blank=True, null=True)

    paid_at = models.DateTimeField(blank=True, null=True, verbose_name=_("Paid At"))
    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_("Created At"))
    updated_at = models.DateTimeField(auto_now=True, verbose_name=_("Updated At"))

    def __str__(self) -> str:
        return f"Payment {self.pk} for {self.order.reference_id} ({self.status})"

    class Meta:
        verbose_name = _("Payment")
        verbose_name_plural = _("Payments")
        ordering = ["-created_at", "-id"]
        db_table = "elearning_payment"
        indexes = [
            models.Index(fields=["order", "created_at"], name="payment_order_created_idx"),
        ]


class Enrollment(models.Model):
    """
    Access of a user to a course or a track.

    A track enrollment goes together with one course enrollment for each
    course in the track. The ``edx_*`` fields record the enrollment on the
    Open edX platform.
    """

    class Status(models.TextChoices):
        ACTIVE = "active", _("Active")
        COMPLETED = "completed", _("Completed")

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="enrollments",
        verbose_name=_("User"),
    )

    course = models.ForeignKey(
        Course, on_delete=models.CASCADE, null=True, blank=True, related_name="enrollments"
    )
    track = models.ForeignKey(
        Track, on_delete=models.CASCADE, null=True, blank=True, related_name="enrollments"
    )

    order = models.ForeignKey(
        Order,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="enrollments",
        verbose_name=_("Source Order"),
    )

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
    )

    progress = models.PositiveSmallIntegerField(default=0, verbose_name=_("Progress (%)"))
    completed_lessons = models.PositiveIntegerField(default=0)

    edx_enrolled = models.BooleanField(default=False, verbose_name=_("edX Enrolled"))
    edx_enrolled_at = models.DateTimeField(blank=True, null=True)
    edx_enrollment_mode = models.CharField(max_length=50, blank=True, default="")
    edx_course_id = models.CharField(max_length=255, blank=True, default="")

    enrolled_at = models.DateTimeField(auto_now_add=True, verbose_name=_("Enrolled At"))
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        target = self.course or self.track
        return f"{self.user} -> {target}"

    class Meta:
        verbose_name = _("Enrollment")
        verbose_name_plural = _("Enrollments")
        ordering = ["-enrolled_at"]
        db_table = "elearning_enrollment"
        constraints = [
            models.UniqueConstraint(
                fields=["user", "course"], name="unique_enrollment_user_course"
            ),
            models.UniqueConstraint(
                fields=["user", "track"], name="unique_enrollment_user_track"
            ),
        ]


class TuitionPackPurchase(models.Model):
    """Tutoring credits granted to a user by a paid order."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="tuition_purchases",
    )
    tuition_pack = models.ForeignKey(
        TuitionPack, on_delete=models.PROTECT, related_name="purchases"
    )
    order = models.ForeignKey(
        Order, on_delete=models.PROTECT, related_name="tuition_purchases"
    )

    credits_total = models.PositiveIntegerField()
    credits_used = models.PositiveIntegerField(default=0)
    credits_remaining = models.PositiveIntegerField()
    expires_at = models.DateTimeField()

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.user} - {self.tuition_pack} ({self.credits_remaining} left)"

    class Meta:
        verbose_name = _("Tuition Pack Purchase")
        verbose_name_plural = _("Tuition Pack Purchases")
        ordering = ["-created_at"]
        db_table = "elearning_tuition_pack_purchase"
        constraints = [
            models.UniqueConstraint(
                fields=["order", "tuition_pack"], name="unique_tuition_purchase_order_pack"
            ),
        ]
