"""
E-Learning Catalog Models

This module defines the purchasable catalog entries of the storefront.

Models:
- Course: A single course, optionally linked to an Open edX course run
- Track: A bundle of courses sold together
- TuitionPack: A bundle of tutoring credits with a validity period

Author: Academy Development Team
Version: 1.0.0
"""

from decimal import Decimal

from django.db import models
from django.utils.translation import gettext_lazy as _


class Course(models.Model):
    """
    A purchasable course.

    Attributes:
        title: Display title
        slug: Unique URL slug
        price: Price in the store currency
        edx_course_id: Open edX course key, e.g. ``course-v1:Org+CS101+2025``
        edx_enrollment_mode: Enrollment mode used on the platform
        is_published: Whether the course is visible in the store

    Example:
        >>> course = Course.objects.create(
        ...     title="Intro to Algebra",
        ...     slug="intro-algebra",
        ...     price=Decimal("29.99"),
        ...     edx_course_id="course-v1:X+Y+Z",
        ... )
        >>> course.is_remote
        True
    """

    title = models.CharField(
        max_length=200,
        verbose_name=_("Course Title"),
    )

    slug = models.SlugField(
        max_length=200,
        unique=True,
        verbose_name=_("Slug"),
    )

    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        verbose_name=_("Price"),
    )

    edx_course_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        verbose_name=_("edX Course ID"),
        help_text=_("Course key on the Open edX platform; empty for local-only courses"),
    )

    edx_enrollment_mode = models.CharField(
        max_length=50,
        blank=True,
        default="",
        verbose_name=_("edX Enrollment Mode"),
        help_text=_("Leave empty to use the platform default"),
    )

    is_published = models.BooleanField(
        default=True,
        verbose_name=_("Published"),
    )

    def __str__(self) -> str:
        return self.title

    class Meta:
        verbose_name = _("Course")
        verbose_name_plural = _("Courses")
        ordering = ["title"]
        db_table = "elearning_course"

    @property
    def is_remote(self) -> bool:
        """True when the course is delivered on the Open edX platform."""
        return bool(self.edx_course_id)


class Track(models.Model):
    """
    A learning track bundling several courses.

    Buying a track enrolls the student in the track and in every course
    belonging to it.
    """

    title = models.CharField(
        max_length=200,
        verbose_name=_("Track Title"),
    )

    slug = models.SlugField(
        max_length=200,
        unique=True,
        verbose_name=_("Slug"),
    )

    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        verbose_name=_("Price"),
    )

    courses = models.ManyToManyField(
        Course,
        related_name="tracks",
        blank=True,
        verbose_name=_("Courses"),
    )

    is_published = models.BooleanField(
        default=True,
        verbose_name=_("Published"),
    )

    def __str__(self) -> str:
        return self.title

    class Meta:
        verbose_name = _("Track")
        verbose_name_plural = _("Tracks")
        ordering = ["title"]
        db_table = "elearning_track"


class TuitionPack(models.Model):
    """A bundle of tutoring session credits."""

    name = models.CharField(
        max_length=200,
        verbose_name=_("Pack Name"),
    )

    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        verbose_name=_("Price"),
    )

    credits_included = models.PositiveIntegerField(
        default=1,
        verbose_name=_("Credits Included"),
    )

    validity_days = models.PositiveIntegerField(
        default=30,
        verbose_name=_("Validity (days)"),
        help_text=_("Number of days the credits stay usable after purchase"),
    )

    is_active = models.BooleanField(
        default=True,
        verbose_name=_("Active"),
    )

    def __str__(self) -> str:
        return self.name

    class Meta:
        verbose_name = _("Tuition Pack")
        verbose_name_plural = _("Tuition Packs")
        ordering = ["price", "name"]
        db_table = "elearning_tuition_pack"
