"""
E-Learning User Profile Models

This module extends Django's built-in User model with the student's link to
the Open edX learning platform, and keeps one profile per user through
Django signals.

Models:
- Profile: Open edX account linkage for a user

Features:
- Automatic profile creation for new users
- Platform password stored only in encrypted form
- Registration recorded at most once per user

Author: Academy Development Team
Version: 1.0.0
"""

from django.db import models
from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class Profile(models.Model):
    """
    Extended user profile holding the Open edX account linkage.

    Attributes:
        user: One-to-one relationship with Django User model
        phone: Default payer phone number for mobile money
        edx_registered: Whether an account exists on the platform
        edx_username: Username on the platform
        edx_password: Platform password, encrypted as ``<iv>:<ciphertext>``
        edx_registered_at: When the platform account was created

    The profile is automatically created when a new user is registered.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="profile",
        verbose_name=_("User"),
        help_text=_("Associated user account"),
    )

    phone = models.CharField(
        max_length=32,
        blank=True,
        default="",
        verbose_name=_("Phone"),
    )

    edx_registered = models.BooleanField(
        default=False,
        verbose_name=_("edX Registered"),
    )

    edx_username = models.CharField(
        max_length=64,
        blank=True,
        null=True,
        verbose_name=_("edX Username"),
    )

    edx_password = models.CharField(
        max_length=255,
        blank=True,
        null=True,
        verbose_name=_("edX Password (encrypted)"),
    )

    edx_registered_at = models.DateTimeField(
        blank=True,
        null=True,
        verbose_name=_("edX Registered At"),
    )

    class Meta:
        verbose_name = _("User Profile")
        verbose_name_plural = _("User Profiles")
        db_table = "elearning_profile"

    def __str__(self) -> str:
        return f"{self.user.username} Profile"

    def __repr__(self) -> str:
        return f"<Profile(user={self.user.username}, edx_registered={self.edx_registered})>"

    @property
    def has_edx_account(self) -> bool:
        """True when the user can be enrolled on the platform."""
        return self.edx_registered and bool(self.edx_username)

    def mark_edx_registered(self, username: str, encrypted_password: str = None) -> None:
        """
        Record a successful platform registration.

        The encrypted password is only overwritten when a new one is given,
        so a user found to already exist keeps any stored credential.
        """
        self.edx_registered = True
        self.edx_username = username
        update_fields = ["edx_registered", "edx_username", "edx_registered_at"]
        if encrypted_password:
            self.edx_password = encrypted_password
            update_fields.append("edx_password")
        self.edx_registered_at = self.edx_registered_at or timezone.now()
        self.save(update_fields=update_fields)


# --- Signal Handlers for Automatic Profile Management ---


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_user_profile(sender, instance, created: bool, **kwargs) -> None:
    """
    Automatically create a user profile when a new user is created.

    Args:
        sender: The User model class
        instance: The actual User instance that was saved
        created: Boolean indicating if this is a new instance
        **kwargs: Additional signal arguments
    """
    if created:
        Profile.objects.get_or_create(user=instance)


def get_profile(user) -> Profile:
    """Return the user's profile, creating it if the signal was bypassed."""
    profile, _created = Profile.objects.get_or_create(user=user)
    return profile
