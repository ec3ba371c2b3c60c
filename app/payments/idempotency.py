"""
Idempotency ledger for provider webhooks.

Providers deliver webhooks at-least-once, and both gateways may report
the same reference. record_once is the single gate every webhook passes
before any side effect: exactly one delivery per key is accepted, however
many arrive and however concurrently.

The guarantee comes from the unique constraint on WebhookLog.tx_ref, not
from a read-then-write check. The insert runs in its own savepoint so a
duplicate does not poison an enclosing transaction.

Usage:
    from payments.idempotency import IdempotencyLedger

    result = IdempotencyLedger.record_once(event.idempotency_key, "BOOKING", "INTASEND")
    if not result.accepted:
        return HttpResponse("Already processed", status=200)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.db import IntegrityError, transaction

from payments.models import WebhookLog

logger = logging.getLogger(__name__)

DUPLICATE = "DUPLICATE"


@dataclass(frozen=True)
class RecordOnceResult:
    """
    Outcome of IdempotencyLedger.record_once.

    Attributes:
        accepted: True for the first delivery of a key
        reason: DUPLICATE when the key was already recorded
    """

    accepted: bool
    reason: str | None = None


class IdempotencyLedger:
    """
    Database-backed first-writer-wins ledger.

    All methods are classmethods - no instance state is maintained.
    """

    @classmethod
    def record_once(
        cls,
        tx_ref: str,
        type: str,
        provider: str = "",
        event_type: str = "",
    ) -> RecordOnceResult:
        """
        Record a key if it has never been seen.

        Args:
            tx_ref: Idempotency key
            type: Classified event type
            provider: Gateway that delivered the event
            event_type: Provider event name

        Returns:
            RecordOnceResult(accepted=True) for the first call with tx_ref,
            RecordOnceResult(accepted=False, reason="DUPLICATE") afterwards
        """
        if not tx_ref:
            raise ValueError("tx_ref is required")

        try:
            with transaction.atomic():
                WebhookLog.objects.create(
                    tx_ref=tx_ref,
                    type=type,
                    provider=provider or "",
                    event_type=(event_type or "")[:100],
                )
        except IntegrityError:
            logger.info(
                "Duplicate webhook delivery ignored",
                extra={"tx_ref": tx_ref, "type": type, "provider": provider},
            )
            return RecordOnceResult(accepted=False, reason=DUPLICATE)

        logger.info(
            "Webhook recorded",
            extra={"tx_ref": tx_ref, "type": type, "provider": provider},
        )
        return RecordOnceResult(accepted=True)

    @classmethod
    def count(cls, tx_ref: str) -> int:
        """Number of ledger rows for a key (0 or 1)."""
        return WebhookLog.objects.filter(tx_ref=tx_ref).count()
