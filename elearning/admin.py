"""
E-Learning Application Django Admin Configuration

This module provides the Django admin interface (jazzmin theme) for the
storefront models.

The admin interface is organized into logical sections:
- User Management: User administration with the Open edX account link
- Catalog: Courses, tracks and tuition packs
- Orders & Payments: Orders with items and payments, enrollments, credits

Orders, payments and enrollments are read-mostly here: their state is owned
by the reconciliation engine, so status fields are read-only and repairs go
through the ``fix_order_enrollment`` management command.

Author: Academy Development Team
Version: 1.0.0
"""

from typing import Optional
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import User
from django.utils.translation import gettext_lazy as _
from django.db.models import QuerySet
from django.http import HttpRequest

# Import all models from the central models registry
from .models import (
    Profile,
    Course,
    Track,
    TuitionPack,
    Order,
    OrderItem,
    Payment,
    Enrollment,
    TuitionPackPurchase,
)

# --- User Management Administration ---


class ProfileInline(admin.StackedInline):
    """
    Inline admin configuration for user profiles.

    The encrypted edX password is never shown.
    """

    model = Profile
    can_delete = False
    verbose_name_plural = "Profile Information"
    fk_name = "user"
    fields = ("phone", "edx_registered", "edx_username", "edx_registered_at")
    readonly_fields = ("edx_registered", "edx_username", "edx_registered_at")

    def get_extra(
        self, request: HttpRequest, obj: Optional[User] = None, **kwargs
    ) -> int:
        return 0


class UserAdmin(BaseUserAdmin):
    inlines = (ProfileInline,)
    list_display = (
        "username",
        "email",
        "first_name",
        "last_name",
        "is_staff",
        "is_active",
        "get_edx_registered",
    )
    list_select_related = ("profile",)
    list_filter = (
        "is_staff",
        "is_superuser",
        "is_active",
        "profile__edx_registered",
        "date_joined",
    )
    search_fields = ("username", "first_name", "last_name", "email", "profile__edx_username")
    ordering = ("username",)

    @admin.display(boolean=True, description=_("edX Registered"))
    def get_edx_registered(self, instance: User) -> Optional[bool]:
        try:
            return instance.profile.edx_registered
        except Profile.DoesNotExist:
            return None

    def get_queryset(self, request: HttpRequest) -> QuerySet:
        return super().get_queryset(request).select_related("profile")


# Register enhanced user administration
admin.site.unregister(User)
admin.site.register(User, UserAdmin)

# --- Catalog Administration ---


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ("title", "slug", "price", "edx_course_id", "edx_enrollment_mode", "is_published")
    list_filter = ("is_published", "edx_enrollment_mode")
    search_fields = ("title", "slug", "edx_course_id")
    prepopulated_fields = {"slug": ("title",)}


@admin.register(Track)
class TrackAdmin(admin.ModelAdmin):
    list_display = ("title", "slug", "price", "is_published")
    list_filter = ("is_published",)
    search_fields = ("title", "slug")
    filter_horizontal = ("courses",)
    prepopulated_fields = {"slug": ("title",)}


@admin.register(TuitionPack)
class TuitionPackAdmin(admin.ModelAdmin):
    list_display = ("name", "price", "credits_included", "validity_days", "is_active")
    list_filter = ("is_active",)
    search_fields = ("name",)


# --- Orders & Payments Administration ---


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    fields = ("item_type", "name", "price", "quantity", "course", "track", "tuition_pack")
    readonly_fields = fields


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    can_delete = False
    fields = ("status", "amount", "currency", "transaction_id", "error_code", "paid_at", "created_at")
    readonly_fields = fields
    ordering = ("-created_at",)


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Order administration.

    Status columns are read-only; orders are never deleted.
    """

    list_display = ("reference_id", "user", "status", "payment_status", "total", "currency", "created_at")
    list_filter = ("status", "payment_status", "payment_method", "created_at")
    search_fields = ("reference_id", "user__username", "user__email", "billing_email", "billing_phone")
    readonly_fields = ("reference_id", "status", "payment_status", "subtotal", "discount", "total", "created_at", "updated_at")
    list_select_related = ("user",)
    inlines = (OrderItemInline, PaymentInline)
    date_hierarchy = "created_at"

    def has_delete_permission(self, request: HttpRequest, obj: Optional[Order] = None) -> bool:
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "user", "status", "amount", "currency", "transaction_id", "paid_at", "created_at")
    list_filter = ("status", "payment_method", "created_at")
    search_fields = ("order__reference_id", "transaction_id", "issuer_transaction_id", "user__email")
    readonly_fields = ("order", "user", "status", "amount", "currency", "transaction_id", "paid_at", "created_at", "updated_at")
    list_select_related = ("order", "user")

    def has_delete_permission(self, request: HttpRequest, obj: Optional[Payment] = None) -> bool:
        return False


@admin.register(Enrollment)
class EnrollmentAdmin(admin.ModelAdmin):
    list_display = ("user", "course", "track", "status", "progress", "edx_enrolled", "enrolled_at")
    list_filter = ("status", "edx_enrolled", "edx_enrollment_mode")
    search_fields = ("user__username", "user__email", "course__title", "track__title", "edx_course_id")
    list_select_related = ("user", "course", "track")
    readonly_fields = ("edx_enrolled_at", "enrolled_at", "updated_at")


@admin.register(TuitionPackPurchase)
class TuitionPackPurchaseAdmin(admin.ModelAdmin):
    list_display = ("user", "tuition_pack", "order", "credits_total", "credits_remaining", "expires_at")
    search_fields = ("user__username", "user__email", "order__reference_id")
    list_select_related = ("user", "tuition_pack", "order")
