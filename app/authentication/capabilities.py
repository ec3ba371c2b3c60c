"""
Centralized capability checks for booking and payment operations.

Every "may this user do X" question is answered here. Views and services
never compare role strings themselves; they ask for a Capability and,
for booking-scoped actions, whether the user is related to the booking
the way the capability requires.

Key Components:
    Capability: Closed set of actions the platform authorizes
    ROLE_CAPABILITIES: Role -> capabilities granted
    has_capability: Role-only check
    CapabilityService: Relationship-aware checks (own booking vs business booking)

Error Codes:
    PERMISSION_DENIED: User lacks the capability or the relationship

Usage:
    from authentication.capabilities import Capability, CapabilityService, has_capability

    if not has_capability(request.user, Capability.MARK_BOOKING_OUTCOME):
        return Response(status=403)

    result = CapabilityService.authorize_booking_action(user, booking, BookingAction.CANCEL)
    if not result.success:
        return Response(result.to_response(), status=403)
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from core.services import ServiceResult

from authentication.models import Role

if TYPE_CHECKING:
    from authentication.models import User
    from bookings.models import Booking, Business


class Capability(str, Enum):
    """Actions that require authorization."""

    CANCEL_OWN_BOOKING = "cancel_own_booking"
    RESCHEDULE_OWN_BOOKING = "reschedule_own_booking"
    PAY_FOR_BOOKING = "pay_for_booking"
    CANCEL_BUSINESS_BOOKING = "cancel_business_booking"
    RESCHEDULE_BUSINESS_BOOKING = "reschedule_business_booking"
    MARK_BOOKING_OUTCOME = "mark_booking_outcome"
    MANAGE_SUBSCRIPTION = "manage_subscription"


class BookingAction(str, Enum):
    """Booking-scoped actions checked by CapabilityService."""

    CANCEL = "cancel"
    RESCHEDULE = "reschedule"
    MARK_OUTCOME = "mark_outcome"
    PAY = "pay"


ROLE_CAPABILITIES: dict[str, frozenset[Capability]] = {
    Role.CUSTOMER: frozenset(
        {
            Capability.CANCEL_OWN_BOOKING,
            Capability.RESCHEDULE_OWN_BOOKING,
            Capability.PAY_FOR_BOOKING,
        }
    ),
    Role.STAFF: frozenset(
        {
            Capability.CANCEL_BUSINESS_BOOKING,
            Capability.RESCHEDULE_BUSINESS_BOOKING,
            Capability.MARK_BOOKING_OUTCOME,
        }
    ),
    Role.BUSINESS_OWNER: frozenset(
        {
            Capability.CANCEL_BUSINESS_BOOKING,
            Capability.RESCHEDULE_BUSINESS_BOOKING,
            Capability.MARK_BOOKING_OUTCOME,
            Capability.MANAGE_SUBSCRIPTION,
        }
    ),
    Role.ADMIN: frozenset(Capability),
}

# Booking action -> (capability for the booking's customer, capability for the business side)
BOOKING_ACTION_CAPABILITIES: dict[BookingAction, tuple[Capability | None, Capability | None]] = {
    BookingAction.CANCEL: (
        Capability.CANCEL_OWN_BOOKING,
        Capability.CANCEL_BUSINESS_BOOKING,
    ),
    BookingAction.RESCHEDULE: (
        Capability.RESCHEDULE_OWN_BOOKING,
        Capability.RESCHEDULE_BUSINESS_BOOKING,
    ),
    BookingAction.MARK_OUTCOME: (None, Capability.MARK_BOOKING_OUTCOME),
    BookingAction.PAY: (Capability.PAY_FOR_BOOKING, None),
}


def has_capability(user: User | None, capability: Capability) -> bool:
    """
    Check whether the user's role grants a capability.

    Inactive and anonymous users have no capabilities.
    """
    if user is None or not getattr(user, "is_authenticated", False):
        return False
    if not user.is_active:
        return False
    return capability in ROLE_CAPABILITIES.get(user.role, frozenset())


class CapabilityService:
    """
    Stateless relationship-aware authorization checks.

    Role capabilities say what kind of action a user may take; these
    methods add which records the action may touch.
    """

    @classmethod
    def is_business_member(cls, user: User, business: Business) -> bool:
        """Owner or staff member of the business."""
        if business.owner_id == user.pk:
            return True
        return business.staff_members.filter(pk=user.pk).exists()

    @classmethod
    def can_act_on_booking(
        cls,
        user: User | None,
        booking: Booking,
        action: BookingAction,
    ) -> bool:
        """
        Check a booking-scoped action.

        The booking's customer is checked against the "own" capability,
        business owner and staff against the "business" capability, and
        admins pass on role alone.
        """
        own_capability, business_capability = BOOKING_ACTION_CAPABILITIES[action]

        if user is not None and getattr(user, "role", None) == Role.ADMIN:
            return has_capability(user, business_capability or own_capability)

        if (
            own_capability is not None
            and booking.customer_id == getattr(user, "pk", None)
            and has_capability(user, own_capability)
        ):
            return True

        if business_capability is not None and has_capability(user, business_capability):
            return cls.is_business_member(user, booking.business)

        return False

    @classmethod
    def can_manage_business(cls, user: User | None, business: Business) -> bool:
        """Subscription and payout management for a business."""
        if not has_capability(user, Capability.MANAGE_SUBSCRIPTION):
            return False
        if user.role == Role.ADMIN:
            return True
        return business.owner_id == user.pk

    @classmethod
    def authorize_booking_action(
        cls,
        user: User | None,
        booking: Booking,
        action: BookingAction,
    ) -> ServiceResult[None]:
        """ServiceResult form of can_act_on_booking for service-layer callers."""
        if cls.can_act_on_booking(user, booking, action):
            return ServiceResult.success(None)
        return ServiceResult.failure(
            f"Not allowed to {action.value.replace('_', ' ')} this booking",
            error_code="PERMISSION_DENIED",
        )
