"""
State machine enums for payment models.

Usage:
    from payments.state_machines import PaymentStatus, PaymentType
"""

from payments.state_machines.states import (
    PLAN_PRICES,
    AlertKind,
    PaymentMethod,
    PaymentProvider,
    PaymentStatus,
    PaymentType,
    PayoutMethod,
    SubscriptionPaymentStatus,
    SubscriptionPlan,
    is_annual_plan,
)

__all__ = [
    "AlertKind",
    "PLAN_PRICES",
    "PaymentMethod",
    "PaymentProvider",
    "PaymentStatus",
    "PaymentType",
    "PayoutMethod",
    "SubscriptionPaymentStatus",
    "SubscriptionPlan",
    "is_annual_plan",
]
