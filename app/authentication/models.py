"""
Authentication models.

This module defines the user model for the marketplace:
- User: Custom user model with email-based authentication and a role

Roles form a small closed set. What each role may do is decided in one
place, authentication.capabilities, never by comparing role strings in
views or services.

Related files:
    - managers.py: Custom user manager for email-based creation
    - capabilities.py: Role-to-capability mapping and checks
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager


class Role(models.TextChoices):
    """
    Closed set of account roles.

    CUSTOMER: Books services and pays for them
    STAFF: Works for a business; marks bookings completed or no-show
    BUSINESS_OWNER: Owns a business, its subscription and payout settings
    ADMIN: Platform operator
    """

    CUSTOMER = "CUSTOMER", "Customer"
    STAFF = "STAFF", "Staff"
    BUSINESS_OWNER = "BUSINESS_OWNER", "Business owner"
    ADMIN = "ADMIN", "Admin"


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique, used for login
        name: Display name
        phone: Mobile-money capable phone number (used for checkout)
        role: Account role (see Role)
        is_active: Whether the user account is active
        is_staff: Whether the user can access Django admin
        date_joined: When the user account was created
        updated_at: When the user record was last modified

    Usage:
        customer = User.objects.create_user(
            email="customer@example.com",
            password="securepassword",
        )

        staff = User.objects.create_user(
            email="staff@example.com",
            password="securepassword",
            role=Role.STAFF,
        )
    """

    # Primary identifier (replaces username)
    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )

    name = models.CharField(
        max_length=150,
        blank=True,
        default="",
        help_text="Display name shown to businesses and on checkout pages",
    )

    phone = models.CharField(
        max_length=20,
        blank=True,
        default="",
        help_text="Phone number in international format (e.g. 2547XXXXXXXX)",
    )

    role = models.CharField(
        max_length=20,
        choices=Role.choices,
        default=Role.CUSTOMER,
        db_index=True,
        help_text="Account role; drives capability checks",
    )

    # Account status flags
    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    # Timestamps
    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        """Return the user's email as string representation."""
        return self.email

    def get_full_name(self):
        """Return the display name, falling back to the email."""
        return self.name or self.email

    def get_short_name(self):
        """Return the first word of the name, or the email local part."""
        if self.name:
            return self.name.split()[0]
        return self.email.split("@")[0]
