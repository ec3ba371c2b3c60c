"""
Pytest fixtures for booking tests.

Usage:
    def test_cancel(confirmed_booking, customer):
        result = BookingService.cancel(confirmed_booking, actor=customer)
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from authentication.tests.factories import AdminFactory, StaffFactory, UserFactory
from bookings.tests.factories import BookingFactory, BusinessFactory, ServiceFactory


# =============================================================================
# Parties
# =============================================================================


@pytest.fixture
def customer(db):
    """Customer who owns the bookings below."""
    return UserFactory()


@pytest.fixture
def business(db):
    """Business with a 120 minute deadline and a 500.00 late fee."""
    return BusinessFactory()


@pytest.fixture
def owner(business):
    return business.owner


@pytest.fixture
def staff_member(business):
    """Staff member attached to the business."""
    staff = StaffFactory()
    business.staff_members.add(staff)
    return staff


@pytest.fixture
def outside_staff(db):
    """Staff member of some other business."""
    return StaffFactory()


@pytest.fixture
def admin_user(db):
    return AdminFactory()


@pytest.fixture
def service(business):
    return ServiceFactory(business=business)


# =============================================================================
# Bookings
# =============================================================================


@pytest.fixture
def booking(customer, service):
    """Pending booking two days out (well before the deadline)."""
    return BookingFactory(customer=customer, service=service)


@pytest.fixture
def confirmed_booking(booking):
    booking.confirm()
    booking.save()
    return booking


@pytest.fixture
def late_booking(customer, service):
    """Confirmed booking starting in 30 minutes (inside the 120 minute deadline)."""
    booking = BookingFactory(
        customer=customer,
        service=service,
        start_time=timezone.now() + timedelta(minutes=30),
    )
    booking.confirm()
    booking.save()
    return booking


# =============================================================================
# Provider Adapter
# =============================================================================

# Shared with the payment tests: mock adapter injected into PaymentService
from payments.tests.conftest import mock_adapter  # noqa: E402, F401
