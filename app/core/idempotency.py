"""
Replay protection for client-initiated actions.

Clients retrying a request (flaky mobile networks, double taps) send the
same ``Idempotency-Key`` header. ReplayGuard makes the second delivery
return the first response instead of running the action again.

State lives in the Django cache (Redis via django-redis in deployment),
never in process memory, so every web worker sees the same claims. Keys
expire after IDEMPOTENCY_KEY_TTL_SECONDS.

This guard is for user-facing replays only. Provider webhook dedup is a
correctness concern and goes through the database-backed ledger in
payments.idempotency.

Usage:
    from core.idempotency import ReplayGuard

    guard = ReplayGuard(scope=f"booking-cancel:{request.user.pk}")
    replay = guard.recall(key)
    if replay is not None:
        return Response(replay["body"], status=replay["status"])
    if not guard.claim(key):
        return Response({"error_code": "REQUEST_IN_PROGRESS"}, status=409)

    ...  # run the action
    guard.remember(key, body, status_code)
"""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.cache import cache

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)

# Marker stored while the first request is still running
IN_FLIGHT = "__in_flight__"


class ReplayGuard:
    """
    Cache-backed first-writer-wins guard for a single action scope.

    Args:
        scope: Namespace for keys (action plus acting user)
        ttl: Seconds a claim or remembered response is kept
    """

    def __init__(self, scope: str, ttl: int | None = None) -> None:
        self.scope = scope
        self.ttl = ttl or getattr(settings, "IDEMPOTENCY_KEY_TTL_SECONDS", 600)

    def _cache_key(self, key: str) -> str:
        digest = hashlib.sha256(f"{self.scope}:{key}".encode()).hexdigest()
        return f"replay:{digest}"

    def claim(self, key: str) -> bool:
        """
        Atomically claim a key.

        Returns:
            True if this caller is the first to use the key
        """
        claimed = cache.add(self._cache_key(key), IN_FLIGHT, timeout=self.ttl)
        if not claimed:
            logger.info(
                "Replay guard rejected duplicate claim",
                extra={"scope": self.scope},
            )
        return claimed

    def remember(self, key: str, body: Any, status_code: int) -> None:
        """Store the response of a completed action for later replays."""
        cache.set(
            self._cache_key(key),
            {"body": body, "status": status_code},
            timeout=self.ttl,
        )

    def recall(self, key: str) -> dict[str, Any] | None:
        """
        Return the stored response for a completed action.

        Returns None when the key is unknown or still in flight.
        """
        value = cache.get(self._cache_key(key))
        if value is None or value == IN_FLIGHT:
            return None
        return value

    def release(self, key: str) -> None:
        """Drop a claim so the client can retry after an unexpected error."""
        cache.delete(self._cache_key(key))
