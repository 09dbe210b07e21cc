"""
E-Learning User Serializers

This module provides the serializers behind the storefront's account
endpoints.

Serializers:
- CustomTokenObtainPairSerializer: JWT token with user metadata
- UserSerializer: Own account data including the learning platform link
- StudentRegistrationSerializer: Self-service sign-up for buyers
- EdxEnrollmentSerializer, EdxBulkEnrollSerializer: Staff edX administration

Author: Academy Development Team
Version: 1.0.0
"""

from typing import Dict, Any
from django.contrib.auth.models import User
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils.translation import gettext_lazy as _
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.tokens import RefreshToken

from .models import get_profile


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    JWT token serializer adding user metadata to the token and response.

    Token Payload Includes:
    - username: User identification
    - is_staff: Staff privileges flag
    - edx_registered: Whether the learning platform account exists
    """

    @classmethod
    def get_token(cls, user: User) -> RefreshToken:
        token = super().get_token(user)
        token['username'] = user.username
        token['is_staff'] = user.is_staff
        token['edx_registered'] = get_profile(user).edx_registered
        return token

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        data = super().validate(attrs)
        data.update({
            'user_id': self.user.id,
            'username': self.user.username,
            'is_staff': self.user.is_staff,
        })
        return data


class UserSerializer(serializers.ModelSerializer):
    """
    Account data of the requesting user.

    The learning platform fields are read-only; the encrypted password is
    never exposed.
    """

    full_name = serializers.SerializerMethodField()
    phone = serializers.CharField(source='profile.phone', read_only=True)
    edx_registered = serializers.BooleanField(source='profile.edx_registered', read_only=True)
    edx_username = serializers.CharField(source='profile.edx_username', read_only=True)

    class Meta:
        model = User
        fields = (
            'id', 'username', 'email', 'first_name', 'last_name', 'full_name',
            'phone', 'edx_registered', 'edx_username', 'date_joined',
        )
        read_only_fields = fields

    def get_full_name(self, obj: User) -> str:
        full_name = f"{obj.first_name} {obj.last_name}".strip()
        return full_name or obj.username


class StudentRegistrationSerializer(serializers.ModelSerializer):
    """
    Self-service registration for storefront buyers.

    Validates unique username and e-mail, password strength and
    confirmation. The learning platform account is created later, when the
    first paid order is provisioned.

    Example usage:
        serializer = StudentRegistrationSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()
    """

    password = serializers.CharField(write_only=True, min_length=8, required=True)
    password_confirm = serializers.CharField(write_only=True, min_length=8, required=True)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)

    class Meta:
        model = User
        fields = ['username', 'email', 'first_name', 'last_name', 'phone', 'password', 'password_confirm']
        extra_kwargs = {'email': {'required': True}}

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError(_("A user with this email already exists."))
        return value

    def validate_password(self, value: str) -> str:
        try:
            validate_password(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(list(e.messages))
        return value

    def validate(self, data):
        if data['password'] != data['password_confirm']:
            raise serializers.ValidationError({"password_confirm": _("Passwords do not match")})
        return data

    def create(self, validated_data):
        password = validated_data.pop('password')
        validated_data.pop('password_confirm')
        phone = validated_data.pop('phone', '')

        user = User.objects.create_user(password=password, **validated_data)

        if phone:
            profile = get_profile(user)
            profile.phone = phone
            profile.save(update_fields=['phone'])
        return user


class EdxEnrollmentSerializer(serializers.Serializer):
    """Enroll or unenroll request of the edX administration endpoints."""

    username = serializers.CharField(max_length=150, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    course_id = serializers.CharField(max_length=255)
    mode = serializers.CharField(max_length=50, required=False, allow_blank=True)

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        if not attrs.get('username') and not attrs.get('email'):
            raise serializers.ValidationError(_("Username or email is required."))
        return attrs


class EdxBulkEnrollSerializer(serializers.Serializer):
    emails = serializers.ListField(child=serializers.EmailField(), allow_empty=False)
    course_ids = serializers.ListField(child=serializers.CharField(max_length=255), allow_empty=False)
    auto_enroll = serializers.BooleanField(default=True)
