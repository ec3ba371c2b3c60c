"""
Subscription monitor worker.

Tasks:
- suspend_overdue_businesses: Daily task deactivating subscriptions whose
  paid period ended more than SUBSCRIPTION_GRACE_DAYS ago and suspending
  the business

Usage:
    from payments.workers import suspend_overdue_businesses

    suspend_overdue_businesses.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(bind=True)
def suspend_overdue_businesses(self) -> dict:
    """
    Suspend businesses with lapsed subscriptions.

    Returns:
        Dict with suspended_count
    """
    from payments.services import SubscriptionService

    suspended_count = SubscriptionService.suspend_overdue()
    logger.info(
        f"Subscription monitor complete: suspended {suspended_count} businesses",
        extra={"suspended_count": suspended_count},
    )
    return {"suspended_count": suspended_count}
