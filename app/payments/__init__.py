"""
Payments app for provider reconciliation.

This app handles:
- Checkouts with Flutterwave and IntaSend
- Webhook ingestion (signature check, idempotency ledger, dispatch)
- Payment state machine with provider re-verification
- Refunds for on-time cancellations and late-fee checkouts
- Payouts to businesses with bounded retries
- Subscription extension and the overdue-business sweep
- Operator alerts for anything that needs a human

Related apps:
    - bookings: Booking lifecycle driven by fee payments and refunds
    - authentication: Capabilities for checkout endpoints

Usage:
    from payments.services import PaymentService

    # Start a booking checkout
    result = PaymentService.initiate_booking_payment(booking)

    # Reconcile a verified webhook event
    PaymentService.reconcile_charge(payment, event)
"""
