"""
Enrollment Fan-out

Expands a paid order into local enrollments, tuition credits and Open edX
course enrollments.

Features:
- First-time Open edX registration with an encrypted stored password
- Track purchases enroll the track and every course in it
- Existing enrollments and credit grants are skipped, so the fan-out can be
  re-run for the same order (callback, verify, repair command)
- Remote failures are isolated per course; local rows are always created
- Credentials notification published after commit

Author: Academy Development Team
Version: 1.0.0
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from django.conf import settings
from django.db import IntegrityError, transaction

from core.edx_integration.client import edx_client
from core.edx_integration.credentials import create_credentials

from ..catalog.models import Course
from .models import Order, OrderItem
from .signals import edx_credentials_issued
from .store import OrderStore

logger = logging.getLogger(__name__)


@dataclass
class FanoutReport:
    """What a fan-out run did for one order."""

    order_reference: str
    edx_username: Optional[str] = None
    registered_now: bool = False
    enrollments_created: int = 0
    remote_enrolled: List[str] = field(default_factory=list)
    remote_failures: List[dict] = field(default_factory=list)
    tuition_purchases_created: int = 0
    notified: bool = False


class EnrollmentFanout:
    """
    Provision everything a paid order grants.

    Example:
        >>> report = EnrollmentFanout().run(order)
        >>> report.remote_enrolled
        ['Intro to Algebra']
    """

    def __init__(self, store: Optional[OrderStore] = None, edx=None) -> None:
        self.store = store or OrderStore()
        self.edx = edx or edx_client

    def run(self, order: Order) -> FanoutReport:
        user = order.user
        report = FanoutReport(order_reference=order.reference_id)
        password = self._ensure_remote_account(order, report)

        for item in self.store.get_order_items(order):
            if item.item_type == OrderItem.ItemType.TRACK and item.track_id:
                _enrollment, created = self.store.get_or_create_enrollment(
                    user, order=order, track=item.track
                )
                report.enrollments_created += int(created)
                for course in item.track.courses.all():
                    self._enroll_course(order, course, report)

            elif item.item_type == OrderItem.ItemType.COURSE and item.course_id:
                self._enroll_course(order, item.course, report)

            elif item.item_type == OrderItem.ItemType.TUITION_PACK and item.tuition_pack_id:
                self._grant_tuition_pack(order, item, report)

        if report.registered_now and report.remote_enrolled and password:
            self._notify_credentials(order, report, password)

        logger.info(
            f"Fan-out for {order.reference_id}: {report.enrollments_created} enrollments created, "
            f"{len(report.remote_enrolled)} remote, {len(report.remote_failures)} remote failures, "
            f"{report.tuition_purchases_created} tuition packs"
        )
        return report

    def _ensure_remote_account(self, order: Order, report: FanoutReport) -> Optional[str]:
        """
        Register the buyer on the platform if needed.

        Returns the plain text password when an account was created now.
        """
        user = order.user
        profile = self.store.get_profile(user)
        if profile.has_edx_account:
            report.edx_username = profile.edx_username
            return None

        first_name = user.first_name or order.billing_first_name
        last_name = user.last_name or order.billing_last_name
        email = user.email or order.billing_email
        credentials = create_credentials(first_name, last_name)

        try:
            result = self.edx.register_user(
                email=email,
                password=credentials.password,
                first_name=first_name,
                last_name=last_name,
            )
        except Exception:
            logger.exception(f"edX registration raised for user {user.pk}")
            return None

        if not result.success:
            logger.error(
                f"edX registration failed for user {user.pk}: {result.error_message} {result.errors}"
            )
            return None

        if result.already_exists:
            self.store.mark_user_registered(profile, result.username, None)
            report.edx_username = result.username
            return None

        self.store.mark_user_registered(profile, result.username, credentials.encrypted_password)
        report.edx_username = result.username
        report.registered_now = True
        return credentials.password

    def _enroll_course(self, order: Order, course: Course, report: FanoutReport) -> None:
        user = order.user
        enrollment, created = self.store.get_or_create_enrollment(user, order=order, course=course)
        report.enrollments_created += int(created)

        if not course.edx_course_id or not report.edx_username or enrollment.edx_enrolled:
            return

        mode = course.edx_enrollment_mode or settings.EDX_DEFAULT_ENROLLMENT_MODE
        try:
            result = self.edx.enroll_user_in_course(
                username=report.edx_username,
                email=user.email or order.billing_email,
                course_id=course.edx_course_id,
                mode=mode,
            )
        except Exception as e:
            logger.exception(f"edX enrollment raised for {course.edx_course_id}")
            report.remote_failures.append({"course_id": course.edx_course_id, "error": str(e)})
            return

        if result.success:
            self.store.mark_enrollment_remote(enrollment, mode, course.edx_course_id)
            report.remote_enrolled.append(course.title)
        else:
            logger.error(f"edX enrollment failed for {course.edx_course_id}: {result.error_message}")
            report.remote_failures.append(
                {"course_id": course.edx_course_id, "error": result.error_message}
            )

    def _grant_tuition_pack(self, order: Order, item: OrderItem, report: FanoutReport) -> None:
        pack = item.tuition_pack
        if self.store.get_tuition_purchase(order, pack) is not None:
            return
        try:
            with transaction.atomic():
                self.store.create_tuition_purchase(order, pack)
        except IntegrityError:
            logger.info(f"Tuition pack {pack.pk} already granted for {order.reference_id}")
            return
        report.tuition_purchases_created += 1

    def _notify_credentials(self, order: Order, report: FanoutReport, password: str) -> None:
        username = report.edx_username
        course_titles = list(report.remote_enrolled)
        transaction.on_commit(
            lambda: edx_credentials_issued.send(
                sender=EnrollmentFanout,
                user=order.user,
                order=order,
                username=username,
                password=password,
                course_titles=course_titles,
            )
        )
        report.notified = True
