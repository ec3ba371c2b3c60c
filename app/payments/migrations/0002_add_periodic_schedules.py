"""
Add celery-beat schedules for the payment sweeps.

- Suspend Overdue Businesses: daily at 00:30, deactivates subscriptions
  past their grace period and suspends the business
- Retry Unpaid Payouts: hourly, re-queues booking payouts that never
  went through
"""

from django.db import migrations

SUSPEND_TASK_NAME = "Suspend Overdue Businesses"
PAYOUT_TASK_NAME = "Retry Unpaid Payouts"


def create_periodic_tasks(apps, schema_editor):
    """Create the periodic tasks for the payment sweeps."""
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    # Daily at 00:30
    daily, _ = CrontabSchedule.objects.get_or_create(
        minute="30",
        hour="0",
        day_of_week="*",
        day_of_month="*",
        month_of_year="*",
    )
    PeriodicTask.objects.get_or_create(
        name=SUSPEND_TASK_NAME,
        defaults={
            "task": "payments.workers.subscription_monitor.suspend_overdue_businesses",
            "crontab": daily,
            "enabled": True,
            "description": (
                "Deactivates subscriptions whose period ended more than "
                "SUBSCRIPTION_GRACE_DAYS ago and suspends the business."
            ),
        },
    )

    hourly, _ = IntervalSchedule.objects.get_or_create(
        every=1,
        period="hours",
    )
    PeriodicTask.objects.get_or_create(
        name=PAYOUT_TASK_NAME,
        defaults={
            "task": "payments.workers.payout_executor.retry_unpaid_payouts",
            "interval": hourly,
            "enabled": True,
            "description": "Re-queues payouts for successful booking payments not yet paid out.",
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name__in=[SUSPEND_TASK_NAME, PAYOUT_TASK_NAME]).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
