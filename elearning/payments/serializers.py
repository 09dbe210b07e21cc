"""
Payments Serializers

Serializers for orders, payments and enrollments plus the request bodies of
the checkout endpoints. Request bodies use the storefront's camelCase keys.
"""

from typing import Optional

from rest_framework import serializers

from .models import Enrollment, Order, OrderItem, Payment, TuitionPackPurchase


class OrderItemSerializer(serializers.ModelSerializer):
    item_id = serializers.SerializerMethodField()

    class Meta:
        model = OrderItem
        fields = ("id", "item_type", "item_id", "name", "price", "quantity")
        read_only_fields = fields

    def get_item_id(self, obj: OrderItem) -> Optional[int]:
        return obj.course_id or obj.track_id or obj.tuition_pack_id


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    is_paid = serializers.BooleanField(read_only=True)

    class Meta:
        model = Order
        fields = (
            "id", "reference_id", "status", "payment_status", "payment_method",
            "mobile_provider", "subtotal", "discount", "total", "currency",
            "billing_first_name", "billing_last_name", "billing_email",
            "billing_phone", "billing_country", "promo_code", "is_paid",
            "items", "created_at", "updated_at",
        )
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    order_reference_id = serializers.CharField(source="order.reference_id", read_only=True)

    class Meta:
        model = Payment
        fields = (
            "id", "order_reference_id", "amount", "currency", "status",
            "payment_method", "transaction_id", "issuer_transaction_id",
            "error_code", "error_message", "paid_at", "created_at", "updated_at",
        )
        read_only_fields = fields


class EnrollmentSerializer(serializers.ModelSerializer):
    course_title = serializers.CharField(source="course.title", read_only=True, default=None)
    track_title = serializers.CharField(source="track.title", read_only=True, default=None)

    class Meta:
        model = Enrollment
        fields = (
            "id", "course", "course_title", "track", "track_title", "status",
            "progress", "completed_lessons", "edx_enrolled", "edx_enrolled_at",
            "edx_enrollment_mode", "edx_course_id", "enrolled_at",
        )
        read_only_fields = fields


class TuitionPackPurchaseSerializer(serializers.ModelSerializer):
    tuition_pack_name = serializers.CharField(source="tuition_pack.name", read_only=True)

    class Meta:
        model = TuitionPackPurchase
        fields = (
            "id", "tuition_pack", "tuition_pack_name", "credits_total",
            "credits_used", "credits_remaining", "expires_at", "created_at",
        )
        read_only_fields = fields


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class OrderItemInputSerializer(serializers.Serializer):
    type = serializers.CharField()
    id = serializers.IntegerField()


class BillingInputSerializer(serializers.Serializer):
    firstName = serializers.CharField(required=False, allow_blank=True, max_length=100)
    lastName = serializers.CharField(required=False, allow_blank=True, max_length=100)
    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    country = serializers.CharField(required=False, allow_blank=True, max_length=100)


class OrderCreateSerializer(serializers.Serializer):
    """
    Checkout body.

    Example:
        {
            "items": [{"type": "course", "id": 3}, {"type": "tuition_pack", "id": 1}],
            "paymentMethod": "mobile_money",
            "mobileProvider": "EVC Plus",
            "billing": {"firstName": "Ahmed", "phone": "615550000"}
        }
    """

    items = OrderItemInputSerializer(many=True, allow_empty=False)
    paymentMethod = serializers.CharField(required=False, default="mobile_money")
    mobileProvider = serializers.CharField(required=False, allow_blank=True, default="")
    billing = BillingInputSerializer(required=False)
    promoCode = serializers.CharField(required=False, allow_blank=True, default="", max_length=50)


class PaymentInitiateSerializer(serializers.Serializer):
    orderReferenceId = serializers.CharField(max_length=120)
    payerPhone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    paymentMethod = serializers.CharField(required=False, allow_blank=True, max_length=50)


class RefundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, allow_null=True)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255)
