"""
Tests for ReplayGuard (client Idempotency-Key replays).
"""

from core.idempotency import ReplayGuard


class TestReplayGuard:
    def test_first_claim_wins(self):
        guard = ReplayGuard(scope="booking-cancel:1:abc")

        assert guard.claim("key-1") is True
        assert guard.claim("key-1") is False

    def test_in_flight_has_nothing_to_replay(self):
        guard = ReplayGuard(scope="booking-cancel:1:abc")
        guard.claim("key-1")

        assert guard.recall("key-1") is None

    def test_remember_and_recall(self):
        guard = ReplayGuard(scope="booking-cancel:1:abc")
        guard.claim("key-1")

        guard.remember("key-1", {"requires_action": False}, 200)

        assert guard.recall("key-1") == {"body": {"requires_action": False}, "status": 200}

    def test_scopes_are_isolated(self):
        ReplayGuard(scope="booking-cancel:1:abc").claim("key-1")

        assert ReplayGuard(scope="booking-cancel:2:abc").claim("key-1") is True

    def test_release_allows_retry(self):
        guard = ReplayGuard(scope="booking-payout")
        guard.claim("payment-1")

        guard.release("payment-1")

        assert guard.claim("payment-1") is True

    def test_ttl_defaults_from_settings(self, settings):
        settings.IDEMPOTENCY_KEY_TTL_SECONDS = 42

        assert ReplayGuard(scope="x").ttl == 42
        assert ReplayGuard(scope="x", ttl=5).ttl == 5
