"""
Tests for core views: health check and error-code mapping.
"""

import pytest
from django.urls import reverse

from core.services import ServiceResult
from core.views import failure_response, status_for_error


@pytest.mark.django_db
class TestHealthCheck:
    def test_healthy(self, client):
        response = client.get(reverse("health_check"))

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "connected", "cache": "connected"}


class TestStatusForError:
    @pytest.mark.parametrize(
        "code,status",
        [
            ("VALIDATION_ERROR", 400),
            ("DEADLINE_PASSED", 400),
            ("PERMISSION_DENIED", 403),
            ("BOOKING_NOT_FOUND", 404),
            ("INVALID_STATE_TRANSITION", 409),
            ("SLOT_UNAVAILABLE", 409),
            ("REFUND_FAILED", 502),
            ("CHECKOUT_FAILED", 502),
            ("SOMETHING_NEW", 400),
            (None, 400),
        ],
    )
    def test_mapping(self, code, status):
        assert status_for_error(code) == status

    def test_failure_response(self):
        response = failure_response(ServiceResult.failure("Slot is taken", error_code="SLOT_UNAVAILABLE"))

        assert response.status_code == 409
        assert response.data["error_code"] == "SLOT_UNAVAILABLE"
