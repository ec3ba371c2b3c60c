"""
Payment-specific exceptions for payment operations.

This module provides a hierarchy of exceptions for payment operations,
covering payment domain errors, provider (gateway) errors and payout
errors.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── PaymentValidationError - Payment validation failures
    ├── PaymentProcessingError - Payment processing failures
    │   └── ProviderError - Base for all gateway errors
    │       ├── ProviderRejectedError - 4xx rejection (permanent)
    │       ├── ProviderRateLimitError - 429 rate limited (transient, retry)
    │       ├── ProviderUnavailableError - 5xx / network failure (transient, retry)
    │       ├── ProviderTimeoutError - Request timeout (transient, retry)
    │       └── ProviderResponseError - Unparseable response (permanent)
    ├── PayoutError - Payout could not be completed
    │   ├── PayoutRejectedError - Provider refused the destination (not retried)
    │   └── PayoutExhaustedError - Retries used up on transient errors
    └── WebhookSignatureError - Webhook signature/challenge mismatch

    InvalidStateTransitionError - FSM transition not allowed (inherits ConflictError)

Usage:
    from payments.exceptions import ProviderError, is_retryable_provider_error

    try:
        adapter.create_payout(destination, amount, reference)
    except ProviderError as e:
        if e.is_retryable:
            ...  # back off and try again
        else:
            ...  # escalate
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment operations.

    All payment-specific exceptions inherit from this class,
    which itself inherits from BaseApplicationError for
    consistent API error responses.
    """

    default_error_code: str = "PAYMENT_ERROR"


class PaymentValidationError(PaymentError):
    """
    Raised when payment validation fails.

    Use for:
    - Negative or missing amounts
    - Unsupported provider
    - Missing provider id where one is required
    """

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"


class PaymentProcessingError(PaymentError):
    """
    Raised when payment processing fails.

    Use for:
    - Gateway API errors
    - Processing timeouts
    """

    default_error_code: str = "PAYMENT_PROCESSING_ERROR"


# =============================================================================
# Provider (Gateway) Exceptions
# =============================================================================


class ProviderError(PaymentProcessingError):
    """
    Base exception for all payment gateway errors.

    Provides common attributes for gateway error handling:
    - provider: Gateway name (FLUTTERWAVE, INTASEND)
    - status_code: HTTP status returned, if any
    - is_retryable: Whether the operation can be retried

    Use is_retryable to determine retry behavior:
    - True: Transient error, safe to retry with backoff
    - False: Permanent error, do not retry
    """

    default_error_code: str = "PROVIDER_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if provider:
            details["provider"] = provider
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, error_code=error_code, details=details)
        self.provider = provider
        self.status_code = status_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class ProviderRejectedError(ProviderError):
    """
    The gateway rejected the request (HTTP 4xx other than 429).

    Invalid destination, bad credentials, unknown invoice. Retrying the
    same request cannot succeed.
    """

    default_error_code: str = "PROVIDER_REJECTED"
    is_retryable: bool = False


class ProviderResponseError(ProviderError):
    """The gateway answered 2xx with a body we could not interpret."""

    default_error_code: str = "PROVIDER_BAD_RESPONSE"
    is_retryable: bool = False


# -----------------------------------------------------------------------------
# Transient Errors (retry with backoff)
# -----------------------------------------------------------------------------


class ProviderRateLimitError(ProviderError):
    """HTTP 429 from the gateway. Retry with backoff."""

    default_error_code: str = "PROVIDER_RATE_LIMITED"
    is_retryable: bool = True


class ProviderUnavailableError(ProviderError):
    """HTTP 5xx or connection failure. Retry with backoff."""

    default_error_code: str = "PROVIDER_UNAVAILABLE"
    is_retryable: bool = True


class ProviderTimeoutError(ProviderError):
    """The request did not complete within PAYMENT_PROVIDER_TIMEOUT_SECONDS."""

    default_error_code: str = "PROVIDER_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# Payout Exceptions
# =============================================================================


class PayoutError(PaymentError):
    """
    Base exception for payouts to businesses.

    Attributes:
        attempts: Attempts made before giving up
    """

    default_error_code: str = "PAYOUT_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        attempts: int = 0,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        details["attempts"] = attempts
        super().__init__(message, error_code=error_code, details=details)
        self.attempts = attempts


class PayoutRejectedError(PayoutError):
    """The gateway refused the payout; not retried."""

    default_error_code: str = "PAYOUT_REJECTED"


class PayoutExhaustedError(PayoutError):
    """Every attempt failed with a transient error."""

    default_error_code: str = "PAYOUT_EXHAUSTED"


# =============================================================================
# Webhook Exceptions
# =============================================================================


class WebhookSignatureError(PaymentError):
    """
    Webhook signature or challenge did not match the configured secret.

    The request is rejected with 400 and nothing is recorded.
    """

    default_error_code: str = "INVALID_WEBHOOK_SIGNATURE"


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a state transition is not allowed.

    Wraps django-fsm's TransitionNotAllowed so callers handle one
    application error type.

    Example:
        try:
            booking.complete(actor=staff)
        except TransitionNotAllowed:
            raise InvalidStateTransitionError(
                f"Cannot complete booking from '{booking.status}'",
                details={"current_state": booking.status, "target_state": "COMPLETED"},
            )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


def is_retryable_provider_error(error: Exception) -> bool:
    """
    Check if a gateway error is transient.

    Returns:
        True for rate limits, timeouts, 5xx and connection failures
    """
    if isinstance(error, ProviderError):
        return getattr(error, "is_retryable", False)
    return False
