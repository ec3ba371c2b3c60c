"""
Tests for payments app.

This package contains test modules for:
- test_state_machines.py: Payment and SubscriptionPayment transitions
- test_adapters.py: Flutterwave / IntaSend adapters over httpx.MockTransport
- test_idempotency.py: Webhook idempotency ledger
- test_payment_service.py: Reconciliation, refunds and checkouts
- test_payout_executor.py: Bounded-retry payouts
- test_subscription_service.py: Extension arithmetic and the overdue sweep
- test_webhooks.py: Webhook endpoint
- test_tasks.py: Celery tasks
- test_alerts.py: Operator alerts
- test_views.py: Checkout API endpoints
- test_integration.py: End-to-end payment journeys

Usage:
    pytest payments/tests/
    pytest payments/tests/test_webhooks.py
"""
