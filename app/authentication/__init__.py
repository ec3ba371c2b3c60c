"""
Authentication application.

This app provides the marketplace user model and the capability checks
that decide who may act on bookings, payments and subscriptions.

Key components:
    - User model: Custom email-based user with a closed Role set
    - capabilities: Centralized role/relationship authorization

Usage:
    from authentication.models import Role, User
    from authentication.capabilities import Capability, CapabilityService, has_capability
"""
