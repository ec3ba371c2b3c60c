"""
Subscription extension engine and subscription checkout.

Extension Rule:
    base    = max(now, current end_date)
    new end = base + 1 calendar year   (plans ending in _YEARLY)
            = base + 1 calendar month  (all other plans; the day is
                                        clamped to the target month's
                                        last day, so Jan 31 -> Feb 28/29)

Paying early never loses paid time, and paying late starts the new
period from now rather than backfilling the lapsed one.

Usage:
    from payments.services import SubscriptionService

    new_end = SubscriptionService.extend(subscription, plan="PRO_YEARLY")

    result = SubscriptionService.initiate_payment(subscription)
    if result.success:
        redirect(result.data.checkout_url)
"""

from __future__ import annotations

import calendar
import uuid
from datetime import datetime, timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.services import BaseService, ServiceResult

from payments.models import Subscription, SubscriptionPayment
from payments.services.payment_service import PaymentService, default_provider
from payments.state_machines import PLAN_PRICES, is_annual_plan


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def add_years(value: datetime, years: int) -> datetime:
    """Add calendar years (Feb 29 becomes Feb 28 in non-leap years)."""
    year = value.year + years
    day = min(value.day, calendar.monthrange(year, value.month)[1])
    return value.replace(year=year, day=day)


class SubscriptionService(BaseService):
    """
    Subscription period management.

    Usage:
        new_end = SubscriptionService.extend(subscription)
        suspended = SubscriptionService.suspend_overdue()
    """

    # =========================================================================
    # Extension
    # =========================================================================

    @classmethod
    def next_end_date(cls, current_end: datetime | None, plan: str, now: datetime | None = None) -> datetime:
        """Pure extension arithmetic (see module docstring)."""
        now = now or timezone.now()
        base = max(now, current_end) if current_end else now
        if is_annual_plan(plan):
            return add_years(base, 1)
        return add_months(base, 1)

    @classmethod
    def extend(
        cls,
        subscription: Subscription,
        plan: str | None = None,
        now: datetime | None = None,
    ) -> datetime:
        """
        Extend a subscription by one period of ``plan`` and activate it.

        Args:
            subscription: Subscription to extend
            plan: Plan paid for (defaults to the subscription's plan)
            now: Reference time (defaults to timezone.now())

        Returns:
            The new end_date
        """
        now = now or timezone.now()
        with transaction.atomic():
            subscription = Subscription.objects.select_for_update().get(pk=subscription.pk)
            plan = plan or subscription.plan
            new_end = cls.next_end_date(subscription.end_date, plan, now)

            subscription.plan = plan
            subscription.end_date = new_end
            subscription.is_active = True
            subscription.deactivated_at = None
            if subscription.start_date is None:
                subscription.start_date = now
            subscription.save()

            business = subscription.business
            if business.suspended:
                business.suspended = False
                business.suspended_at = None
                business.save(update_fields=["suspended", "suspended_at", "updated_at"])

        cls.get_logger().info(
            "Subscription extended",
            extra={
                "subscription_id": str(subscription.id),
                "business_id": str(subscription.business_id),
                "plan": plan,
                "new_end_date": new_end.isoformat(),
            },
        )
        return new_end

    # =========================================================================
    # Checkout
    # =========================================================================

    @classmethod
    def initiate_payment(
        cls,
        subscription: Subscription,
        plan: str | None = None,
        return_url: str | None = None,
        cancel_url: str | None = None,
    ) -> ServiceResult[SubscriptionPayment]:
        """
        Start a checkout for one period of a plan.

        The reference is ``subscription-<businessId>-<subscriptionPaymentId>``
        so the webhook resolves straight back to this row.
        """
        plan = plan or subscription.plan
        if plan == subscription.plan:
            amount = subscription.amount
        else:
            amount = PLAN_PRICES.get(plan)
        if amount is None:
            return ServiceResult.failure(f"Unknown plan: {plan}", error_code="VALIDATION_ERROR")

        payment_id = uuid.uuid4()
        sub_payment = SubscriptionPayment.objects.create(
            id=payment_id,
            subscription=subscription,
            business=subscription.business,
            plan=plan,
            amount=amount,
            provider=default_provider(),
            tx_ref=f"subscription-{subscription.business_id}-{payment_id}",
        )

        business = subscription.business
        return PaymentService.start_checkout(
            sub_payment,
            customer={"email": business.email, "name": business.name},
            redirect_url=return_url,
            cancel_url=cancel_url,
        )

    # =========================================================================
    # Overdue Monitoring
    # =========================================================================

    @classmethod
    def suspend_overdue(cls, now: datetime | None = None) -> int:
        """
        Deactivate subscriptions past end_date + SUBSCRIPTION_GRACE_DAYS
        and suspend their businesses.

        Returns:
            Number of subscriptions deactivated
        """
        now = now or timezone.now()
        grace = timedelta(days=getattr(settings, "SUBSCRIPTION_GRACE_DAYS", 2))
        overdue = Subscription.objects.filter(is_active=True, end_date__lt=now - grace)

        count = 0
        for subscription in overdue.select_related("business"):
            with transaction.atomic():
                locked = Subscription.objects.select_for_update().get(pk=subscription.pk)
                if not locked.is_active or locked.end_date >= now - grace:
                    continue
                locked.is_active = False
                locked.deactivated_at = now
                locked.save(update_fields=["is_active", "deactivated_at", "updated_at"])

                business = locked.business
                business.suspended = True
                business.suspended_at = now
                business.save(update_fields=["suspended", "suspended_at", "updated_at"])
            count += 1
            cls.get_logger().warning(
                "Business suspended for unpaid subscription",
                extra={"business_id": str(business.id), "end_date": locked.end_date.isoformat()},
            )
        return count
