"""
Celery configuration for the Django application.

Celery runs the work that must not block a request or a webhook:
- Booking payouts, queued once a booking payment is verified
- Periodic sweeps (suspend overdue businesses, retry unpaid payouts),
  scheduled through django-celery-beat's database scheduler

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps.

Usage:
    # Tasks live in each app's tasks.py:
    from payments.tasks import execute_booking_payout

    # Queue after the surrounding transaction commits:
    transaction.on_commit(lambda: execute_booking_payout.delay(str(payment.id)))

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Create Celery application instance
# The name should match the Django project name
app = Celery("config")

# Load configuration from Django settings
# All Celery settings should be prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Auto-discover tasks from all registered Django apps
# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()
