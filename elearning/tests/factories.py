"""
Test-Helfer: Katalog, Benutzer, Bestellungen und Fakes für die entfernten Dienste.
"""

from decimal import Decimal
from unittest.mock import Mock

from django.contrib.auth.models import User

from core.edx_integration.results import EnrollmentResult, RegistrationResult
from core.waafipay_integration.results import PurchaseResult, RefundResult, TransactionInfo
from core.waafipay_integration.client import WaafiPayClient
from elearning.catalog.models import Course, Track, TuitionPack
from elearning.payments.store import OrderStore


def make_user(username="ahmed", email="ahmed@example.com", first_name="Ahmed", last_name="Ali", **extra):
    return User.objects.create_user(
        username=username,
        email=email,
        password="testPassword123!",
        first_name=first_name,
        last_name=last_name,
        **extra,
    )


def make_course(slug="math-101", title="Intro to Algebra", price="29.90", edx_course_id="course-v1:Academy+MATH101+2025", **extra):
    return Course.objects.create(
        title=title,
        slug=slug,
        price=Decimal(price),
        edx_course_id=edx_course_id,
        **extra,
    )


def make_track(courses, slug="igcse", title="IGCSE Track", price="99.00"):
    track = Track.objects.create(title=title, slug=slug, price=Decimal(price))
    track.courses.set(courses)
    return track


def make_pack(name="10 Tutoring Sessions", price="50.00", credits_included=10, validity_days=30):
    return TuitionPack.objects.create(
        name=name,
        price=Decimal(price),
        credits_included=credits_included,
        validity_days=validity_days,
    )


def make_order(user, *entries, **kwargs):
    """Create an order for catalog entries (Course, Track or TuitionPack)."""
    items = []
    for entry in entries:
        if isinstance(entry, Course):
            items.append({"type": "course", "id": entry.pk})
        elif isinstance(entry, Track):
            items.append({"type": "track", "id": entry.pk})
        else:
            items.append({"type": "tuition_pack", "id": entry.pk})
    return OrderStore().create_order(user, items, **kwargs)


def fake_edx(register=None, enroll=None):
    """A stand-in for the edX client with successful defaults."""
    edx = Mock()
    edx.register_user.side_effect = register or (
        lambda email, password, first_name="", last_name="", username=None: RegistrationResult(
            success=True, username=f"{first_name.lower()}_{last_name.lower()}_ab12", email=email
        )
    )
    edx.enroll_user_in_course.side_effect = enroll or (
        lambda username, email, course_id, mode=None: EnrollmentResult(
            success=True, course_id=course_id, identifier=username, enrollment={"is_active": True}
        )
    )
    return edx


def fake_gateway(state="APPROVED", transaction_id="TX-1", amount=None):
    """A stand-in for the WaafiPay client; callback parsing stays real."""
    gateway = Mock()
    gateway.parse_callback.side_effect = WaafiPayClient.parse_callback
    gateway.initiate_purchase.return_value = PurchaseResult(
        success=True,
        hpp_url="https://gateway.test/hpp/abc",
        gateway_order_id="GW-1",
        transaction_id=transaction_id,
    )
    gateway.get_transaction_info.return_value = TransactionInfo(
        success=True, transaction_id=transaction_id, state=state, amount=amount
    )
    gateway.refund.return_value = RefundResult(success=True, refund_transaction_id="RF-1", state="APPROVED")
    return gateway
