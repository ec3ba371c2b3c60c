"""
Webhook endpoint view for payment providers.

One endpoint serves both gateways:

    POST /api/v1/payments/webhooks/flutterwave/
    POST /api/v1/payments/webhooks/intasend/

Events are processed inline: the work per event is a provider status
check plus a few row updates, and payouts are already pushed to Celery by
PaymentService.

Anything the provider should not retry gets a 200, including duplicates,
unknown references and internal errors (those raise an operator alert
instead). Only a bad signature or an unreadable body gets a 400.
"""

from __future__ import annotations

import json
import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.adapters import ADAPTERS
from payments.alerts import raise_operator_alert
from payments.exceptions import WebhookSignatureError
from payments.idempotency import IdempotencyLedger
from payments.state_machines import AlertKind
from payments.webhooks.handlers import dispatch_webhook, ledger_type

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def provider_webhook(request: HttpRequest, provider: str) -> HttpResponse:
    """
    Receive a provider webhook and reconcile it.

    This view:
    1. Verifies the webhook signature/challenge for the provider
    2. Parses and normalizes the payload
    3. Derives the idempotency key (reference, or refund-<provider id>)
    4. Acknowledges in-flight (pending) events without recording them
    5. Records the key in the idempotency ledger (duplicates stop here)
    6. Dispatches to the handler for the reference prefix

    Returns:
        HttpResponse with status:
        - 200: Event handled, duplicate, in flight or not ours
        - 400: Invalid signature or payload
        - 404: Unknown provider
    """
    adapter = ADAPTERS.get(provider.upper())
    if adapter is None:
        return HttpResponse("Unknown provider", status=404)

    # Step 1: Verify signature
    try:
        adapter.verify_webhook_signature(request.headers, request.body)
    except WebhookSignatureError as e:
        logger.warning(
            f"Webhook signature verification failed: {e.message}",
            extra={"provider": adapter.provider},
        )
        return HttpResponse("Invalid signature", status=400)

    # Step 2: Parse payload
    try:
        payload = json.loads(request.body or b"")
    except ValueError:
        logger.warning("Webhook body is not valid JSON", extra={"provider": adapter.provider})
        return HttpResponse("Invalid payload", status=400)
    if not isinstance(payload, dict):
        return HttpResponse("Invalid payload", status=400)

    event = adapter.parse_webhook(payload)
    log_context = {
        "provider": adapter.provider,
        "event_type": event.event_type,
        "reference": event.reference,
        "provider_payment_id": event.provider_payment_id,
        "raw_status": event.raw_status,
    }
    logger.info("Received provider webhook", extra=log_context)

    # Step 3: Idempotency key
    key = event.idempotency_key
    if not key:
        logger.info("Webhook without reference acknowledged", extra=log_context)
        return HttpResponse("No reference", status=200)

    # Step 4: Nothing to commit for in-flight charges
    if event.is_pending:
        logger.info("Webhook for in-flight charge acknowledged", extra=log_context)
        return HttpResponse("Pending", status=200)

    # Step 5: Ledger
    recorded = IdempotencyLedger.record_once(
        key,
        ledger_type(key),
        provider=adapter.provider,
        event_type=event.event_type,
    )
    if not recorded.accepted:
        return HttpResponse("Already processed", status=200)

    # Step 6: Dispatch
    try:
        result = dispatch_webhook(event, key)
    except Exception as e:
        logger.error(
            f"Webhook processing failed: {type(e).__name__}",
            extra={**log_context, "reference": key},
            exc_info=True,
        )
        raise_operator_alert(
            AlertKind.PROCESSING_ERROR,
            f"Webhook {key} from {adapter.provider} failed after it was recorded: {e}",
            context={"reference": key, "provider": adapter.provider, "event_type": event.event_type},
        )
        return HttpResponse("Accepted", status=200)

    if not result.success:
        logger.warning(
            f"Webhook handler reported failure: {result.error}",
            extra={**log_context, "reference": key, "error_code": result.error_code},
        )
    return HttpResponse("OK", status=200)
