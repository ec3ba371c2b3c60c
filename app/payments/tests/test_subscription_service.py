"""
Tests for SubscriptionService: extension arithmetic, checkout and the
overdue sweep.
"""

from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from decimal import Decimal

import pytest
from django.utils import timezone
from freezegun import freeze_time

from bookings.models import Business
from payments.models import Subscription, SubscriptionPayment
from payments.services import SubscriptionService
from payments.services.subscription_service import add_months, add_years
from payments.state_machines import SubscriptionPlan
from payments.tests.factories import SubscriptionFactory


def utc(*args):
    return datetime(*args, tzinfo=dt_timezone.utc)


# =============================================================================
# Calendar Arithmetic
# =============================================================================


class TestCalendarArithmetic:
    @pytest.mark.parametrize(
        "start,months,expected",
        [
            (utc(2025, 1, 15, 9), 1, utc(2025, 2, 15, 9)),
            (utc(2025, 1, 31), 1, utc(2025, 2, 28)),
            (utc(2024, 1, 31), 1, utc(2024, 2, 29)),
            (utc(2025, 3, 31), 1, utc(2025, 4, 30)),
            (utc(2025, 12, 10), 1, utc(2026, 1, 10)),
        ],
    )
    def test_add_months_clamps_day(self, start, months, expected):
        assert add_months(start, months) == expected

    def test_add_years_leap_day(self):
        assert add_years(utc(2024, 2, 29), 1) == utc(2025, 2, 28)


class TestNextEndDate:
    """
    Given the current end date and the payment time
    When the next end date is computed
    Then the period runs from the later of the two
    """

    def test_early_payment_keeps_remaining_time(self):
        now = utc(2025, 5, 1)
        end = utc(2025, 5, 20)

        assert SubscriptionService.next_end_date(end, SubscriptionPlan.PRO_MONTHLY, now) == utc(2025, 6, 20)

    def test_late_payment_starts_from_now(self):
        now = utc(2025, 5, 10)
        end = utc(2025, 4, 1)

        assert SubscriptionService.next_end_date(end, SubscriptionPlan.PRO_MONTHLY, now) == utc(2025, 6, 10)

    def test_yearly_plan(self):
        now = utc(2025, 5, 1)

        assert SubscriptionService.next_end_date(utc(2025, 5, 3), SubscriptionPlan.PRO_YEARLY, now) == utc(2026, 5, 3)

    def test_no_current_end(self):
        now = utc(2025, 1, 31)

        assert SubscriptionService.next_end_date(None, SubscriptionPlan.BASIC_MONTHLY, now) == utc(2025, 2, 28)


# =============================================================================
# Extension
# =============================================================================


@pytest.mark.django_db
class TestExtend:
    def test_reactivates_and_unsuspends(self):
        subscription = SubscriptionFactory(is_active=False, end_date=timezone.now() - timedelta(days=5))
        Business.objects.filter(pk=subscription.business_id).update(suspended=True, suspended_at=timezone.now())
        now = timezone.now()

        new_end = SubscriptionService.extend(subscription, now=now)

        subscription = Subscription.objects.get(pk=subscription.pk)
        assert subscription.is_active is True
        assert subscription.end_date == new_end == add_months(now, 1)
        business = Business.objects.get(pk=subscription.business_id)
        assert business.suspended is False
        assert business.suspended_at is None

    def test_switches_plan(self, subscription):
        end = subscription.end_date

        new_end = SubscriptionService.extend(subscription, plan=SubscriptionPlan.PRO_YEARLY)

        assert new_end == add_years(end, 1)
        assert Subscription.objects.get(pk=subscription.pk).plan == SubscriptionPlan.PRO_YEARLY


# =============================================================================
# Checkout
# =============================================================================


@pytest.mark.django_db
class TestInitiatePayment:
    def test_creates_subscription_payment(self, subscription, mock_adapter):
        result = SubscriptionService.initiate_payment(subscription)

        assert result.success
        sub_payment = result.data
        assert sub_payment.tx_ref == f"subscription-{subscription.business_id}-{sub_payment.id}"
        assert sub_payment.amount == subscription.amount
        assert sub_payment.checkout_url == "https://pay.example.com/checkout/abc"
        assert mock_adapter.create_checkout.call_args.kwargs["reference"] == sub_payment.tx_ref

    def test_other_plan_uses_list_price(self, subscription, mock_adapter):
        result = SubscriptionService.initiate_payment(subscription, plan=SubscriptionPlan.PRO_YEARLY)

        assert result.data.amount == Decimal("25000")

    def test_unknown_plan(self, subscription, mock_adapter):
        result = SubscriptionService.initiate_payment(subscription, plan="GOLD_FOREVER")

        assert result.error_code == "VALIDATION_ERROR"
        assert not SubscriptionPayment.objects.exists()


# =============================================================================
# Overdue Sweep
# =============================================================================


@pytest.mark.django_db
class TestSuspendOverdue:
    @freeze_time("2025-06-10 12:00:00")
    def test_suspends_past_grace_only(self, settings):
        settings.SUBSCRIPTION_GRACE_DAYS = 2
        overdue = SubscriptionFactory(end_date=utc(2025, 6, 7, 12))
        in_grace = SubscriptionFactory(end_date=utc(2025, 6, 9, 12))

        count = SubscriptionService.suspend_overdue()

        assert count == 1
        assert Subscription.objects.get(pk=overdue.pk).is_active is False
        assert Business.objects.get(pk=overdue.business_id).suspended is True
        assert Subscription.objects.get(pk=in_grace.pk).is_active is True
        assert Business.objects.get(pk=in_grace.business_id).suspended is False

    def test_already_inactive_skipped(self):
        SubscriptionFactory(is_active=False, end_date=timezone.now() - timedelta(days=30))

        assert SubscriptionService.suspend_overdue() == 0

    def test_explicit_now(self):
        subscription = SubscriptionFactory(end_date=timezone.now())

        assert SubscriptionService.suspend_overdue(now=timezone.now() + timedelta(days=3)) == 1
        assert Subscription.objects.get(pk=subscription.pk).deactivated_at is not None
