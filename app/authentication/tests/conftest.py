"""
Test configuration and fixtures for authentication tests.
"""

import pytest

from authentication.tests.factories import (
    AdminFactory,
    BusinessOwnerFactory,
    StaffFactory,
    UserFactory,
)


@pytest.fixture
def customer(db):
    """Create an active customer."""
    return UserFactory()


@pytest.fixture
def staff_user(db):
    """Create an active staff member (not yet attached to a business)."""
    return StaffFactory()


@pytest.fixture
def owner(db):
    """Create a business owner."""
    return BusinessOwnerFactory()


@pytest.fixture
def admin_user(db):
    """Create a platform admin."""
    return AdminFactory()
