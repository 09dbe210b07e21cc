"""
Post-Payment Notification Signals
=================================

Overview
--------
The enrollment fan-out creates an Open edX account the first time a student
buys remote content. The generated password only exists in plain text at
that moment, so the fan-out publishes it through ``edx_credentials_issued``
using ``transaction.on_commit``; the receiver below e-mails it to the buyer.

Signal arguments
----------------
- ``user``: the buyer
- ``order``: the paid order
- ``username``: platform username
- ``password``: plain text platform password
- ``course_titles``: titles of the courses enrolled on the platform

Safety
------
- The receiver never re-raises; a failed e-mail is logged and does not
  affect the already recorded payment or enrollments.
- The password is never logged.

Author: Academy Development Team
Version: 1.0.0
"""

import logging

from django.conf import settings
from django.core.mail import send_mail
from django.dispatch import Signal, receiver

logger = logging.getLogger(__name__)

edx_credentials_issued = Signal()


def build_credentials_message(username: str, password: str, course_titles) -> str:
    courses = "\n".join(f"  - {title}" for title in course_titles)
    return (
        f"Welcome to {settings.STORE_NAME}!\n\n"
        f"Your learning platform account is ready and you are enrolled in:\n"
        f"{courses}\n\n"
        f"Login: {settings.EDX_BASE_URL}/login\n"
        f"Username: {username}\n"
        f"Password: {password}\n\n"
        f"Please keep these credentials safe.\n"
    )


@receiver(edx_credentials_issued)
def send_edx_credentials_email(sender, user, order, username, password, course_titles, **kwargs):
    """E-mail first-time platform credentials to the buyer."""
    recipient = user.email or order.billing_email
    if not recipient:
        logger.warning(f"No e-mail address for user {user.pk}; credentials for {username} not sent")
        return

    try:
        send_mail(
            subject=f"Your {settings.STORE_NAME} learning account",
            message=build_credentials_message(username, password, course_titles),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient],
        )
        logger.info(f"Sent platform credentials for {username} (order {order.reference_id})")
    except Exception:
        logger.exception(f"Failed to send platform credentials for order {order.reference_id}")
