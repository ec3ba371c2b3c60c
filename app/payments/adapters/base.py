"""
Shared plumbing for payment provider adapters.

Every provider call goes through ProviderAdapter._request, which gives all
adapters the same behaviour:

- Bounded timeout on every call (PAYMENT_PROVIDER_TIMEOUT_SECONDS)
- Automatic error translation to payments.exceptions.ProviderError subclasses
- Structured logging with timing metrics
- Retry with exponential backoff for transient errors on idempotent reads

Configuration (via settings):
- PAYMENT_PROVIDER_TIMEOUT_SECONDS: Per-request timeout (default: 15)
- PAYMENT_PROVIDER_MAX_RETRIES: Attempts for retryable calls (default: 3)

Usage:
    from payments.adapters import get_adapter

    adapter = get_adapter("INTASEND")
    checkout = adapter.create_checkout(
        amount=Decimal("1500.00"),
        currency="KES",
        reference="booking-42-1718000000000",
        redirect_url="https://app.example.com/payments/return",
    )
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import httpx
from django.conf import settings

from payments.exceptions import (
    ProviderError,
    ProviderRateLimitError,
    ProviderRejectedError,
    ProviderResponseError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    WebhookSignatureError,
)
from payments.state_machines import PaymentMethod

if TYPE_CHECKING:
    from collections.abc import Mapping


# =============================================================================
# Status Normalization
# =============================================================================

STATUS_SUCCESS = "success"
STATUS_PENDING = "pending"
STATUS_FAILED = "failed"
STATUS_REFUNDED = "refunded"

SUCCESS_STATUSES = frozenset({"success", "successful", "succeeded", "paid", "completed", "complete"})
PENDING_STATUSES = frozenset({"pending", "processing", "in_progress", "initiated", "new", "queued"})
REFUNDED_STATUSES = frozenset({"refunded", "reversed", "chargeback"})


def normalize_status(raw_status: str | None) -> str:
    """
    Map a provider status string onto success / pending / failed / refunded.

    Anything unrecognised counts as failed; a payment is only ever moved to
    SUCCESS on an explicit success word.
    """
    value = str(raw_status or "").strip().lower()
    if value in SUCCESS_STATUSES:
        return STATUS_SUCCESS
    if value in PENDING_STATUSES:
        return STATUS_PENDING
    if value in REFUNDED_STATUSES:
        return STATUS_REFUNDED
    return STATUS_FAILED


def normalize_method(raw_method: str | None) -> str:
    """Map a provider channel/payment type onto PaymentMethod."""
    value = str(raw_method or "").strip().lower().replace("-", "").replace("_", "")
    if "mpesa" in value or value in {"mobilemoney", "mobilemoneykenya"}:
        return PaymentMethod.MPESA
    if "card" in value:
        return PaymentMethod.CARD
    if "bank" in value or value == "account":
        return PaymentMethod.BANK
    return PaymentMethod.OTHER


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CheckoutResult:
    """
    Result of creating a hosted checkout.

    Attributes:
        checkout_url: Link the payer opens to pay
        provider_invoice_id: Provider id usable for status checks, if known yet
        raw_response: Full provider response (for debugging)
    """

    checkout_url: str
    provider_invoice_id: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class StatusResult:
    """
    Provider-side status of a charge.

    Attributes:
        status: Normalized status (success, pending, failed, refunded)
        provider_payment_id: Provider id of the charge
        method: Normalized PaymentMethod
        raw_status: Status string as the provider sent it
        raw: Full provider response
    """

    status: str
    provider_payment_id: str | None = None
    method: str = PaymentMethod.OTHER
    raw_status: str = ""
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.status == STATUS_SUCCESS


@dataclass
class RefundResult:
    """
    Result of a refund request.

    Attributes:
        id: Provider refund / chargeback id
        status: Provider status string
        amount: Amount requested back
        raw_response: Full provider response
    """

    id: str | None
    status: str
    amount: Decimal
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class PayoutDestination:
    """
    Where a business payout is sent.

    Built from payments.models.PayoutSettings.as_destination(), which has
    already checked that the fields needed by ``method`` are present.
    """

    method: str
    account_name: str = ""
    phone: str | None = None
    till_number: str | None = None
    paybill_number: str | None = None
    account_reference: str | None = None
    bank_code: str | None = None
    bank_account: str | None = None


@dataclass
class WebhookEventData:
    """
    Provider webhook normalized to the fields reconciliation needs.

    Attributes:
        event_type: Provider event name (charge.completed, ...)
        reference: Our tx_ref, if the provider echoed it
        provider_payment_id: Provider id of the charge (invoice / transaction)
        raw_status: Lower-cased provider status
        is_refund: Event reports a refund or chargeback
        amount: Amount reported by the provider
        method: Payment channel reported by the provider
        payload: Original parsed body
    """

    event_type: str = ""
    reference: str | None = None
    provider_payment_id: str | None = None
    raw_status: str = ""
    is_refund: bool = False
    amount: Decimal | None = None
    method: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> str:
        return normalize_status(self.raw_status)

    @property
    def is_pending(self) -> bool:
        return not self.is_refund and self.status == STATUS_PENDING

    @property
    def looks_successful(self) -> bool:
        return self.status == STATUS_SUCCESS

    @property
    def idempotency_key(self) -> str | None:
        """Reference, or ``refund-<provider id>`` for refunds that carry none."""
        if self.reference:
            return self.reference
        if self.is_refund and self.provider_payment_id:
            return f"refund-{self.provider_payment_id}"
        return None


# =============================================================================
# Retry Logic Helpers
# =============================================================================


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base: Base delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 60.0)

    Returns:
        Delay in seconds with jitter (0-25% of calculated delay)

    Example:
        # Attempt 0: 1.0 - 1.25 seconds
        # Attempt 1: 2.0 - 2.5 seconds
        # Attempt 2: 4.0 - 5.0 seconds
        delay = backoff_delay(attempt=2)
    """
    delay = min(base * (2**attempt), max_delay)
    jitter = delay * random.uniform(0, 0.25)
    return delay + jitter


def to_decimal(value: Any) -> Decimal | None:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except ArithmeticError:
        return None


def wire_amount(amount: Decimal | int | str) -> float:
    """Amount as a JSON number with two decimal places."""
    return float(Decimal(str(amount)).quantize(Decimal("0.01")))


def first_present(*values: Any) -> Any:
    """Return the first value that is not None or empty."""
    for value in values:
        if value not in (None, ""):
            return value
    return None


def header_value(headers: Mapping[str, str], name: str) -> str | None:
    """Case-insensitive header lookup for plain dicts and request.headers alike."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


# =============================================================================
# Base Adapter
# =============================================================================


class ProviderAdapter:
    """
    Base class for payment provider adapters.

    All methods are classmethods - no instance state is maintained.
    Thread-safe for use from Celery workers.

    Subclasses set ``provider`` and implement _base_url, _headers and the
    public operations (create_checkout, check_status, refund,
    create_payout, verify_webhook, parse_webhook).

    ``transport`` may be set to an httpx transport (httpx.MockTransport in
    tests) and is passed to every client the adapter opens.
    """

    provider: str = ""
    transport: httpx.BaseTransport | None = None
    retry_backoff_base: float = 0.5

    # =========================================================================
    # Configuration
    # =========================================================================

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    def _base_url(cls) -> str:
        raise NotImplementedError

    @classmethod
    def _headers(cls) -> dict[str, str]:
        raise NotImplementedError

    @classmethod
    def _timeout(cls) -> float:
        return float(getattr(settings, "PAYMENT_PROVIDER_TIMEOUT_SECONDS", 15))

    @classmethod
    def _max_attempts(cls) -> int:
        return max(1, int(getattr(settings, "PAYMENT_PROVIDER_MAX_RETRIES", 3)))

    @classmethod
    def _client(cls) -> httpx.Client:
        return httpx.Client(
            base_url=cls._base_url(),
            headers=cls._headers(),
            timeout=cls._timeout(),
            transport=cls.transport,
        )

    # =========================================================================
    # Request Execution
    # =========================================================================

    @classmethod
    def _request(
        cls,
        method: str,
        path: str,
        operation: str,
        payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        retry: bool = True,
        log_extra: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Perform one provider call and return the decoded JSON body.

        Args:
            method: HTTP method
            path: Path relative to the provider base URL
            operation: Operation name for logs
            payload: JSON body
            params: Query parameters
            retry: Retry transient errors (only for calls that are safe to repeat)
            log_extra: Extra structured logging context

        Raises:
            ProviderError subclass describing the failure
        """
        logger = cls.get_logger()
        log_context = {
            "provider": cls.provider,
            "operation": operation,
            **(log_extra or {}),
        }
        max_attempts = cls._max_attempts() if retry else 1
        attempt = 0

        while True:
            start_time = time.time()
            logger.info(
                "Starting provider operation",
                extra={**log_context, "attempt": attempt + 1},
            )
            try:
                with cls._client() as client:
                    response = client.request(method, path, json=payload, params=params)
                    response.raise_for_status()
                    body = response.json() if response.content else {}

                duration_ms = (time.time() - start_time) * 1000
                logger.info(
                    "Provider operation completed",
                    extra={
                        **log_context,
                        "status_code": response.status_code,
                        "duration_ms": duration_ms,
                    },
                )
                if not isinstance(body, dict):
                    body = {"data": body}
                return body

            except Exception as e:
                duration_ms = (time.time() - start_time) * 1000
                try:
                    cls._handle_http_error(e, log_context, duration_ms)
                except ProviderError as provider_error:
                    attempt += 1
                    if provider_error.is_retryable and attempt < max_attempts:
                        time.sleep(backoff_delay(attempt - 1, base=cls.retry_backoff_base))
                        continue
                    raise

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_http_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate httpx exceptions to domain exceptions.

        Raises:
            ProviderTimeoutError: Request timed out
            ProviderRateLimitError: HTTP 429
            ProviderUnavailableError: HTTP 5xx or connection failure
            ProviderRejectedError: Any other HTTP 4xx
            ProviderResponseError: 2xx body was not JSON
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, ProviderError):
            raise error

        if isinstance(error, httpx.TimeoutException):
            logger.warning("Provider request timed out", extra=log_context)
            raise ProviderTimeoutError(
                f"{cls.provider} request timed out",
                provider=cls.provider,
            ) from error

        if isinstance(error, httpx.HTTPStatusError):
            status_code = error.response.status_code
            body = error.response.text[:500]
            log_context = {**log_context, "status_code": status_code, "response": body}

            if status_code == 429:
                logger.warning("Rate limited by provider", extra=log_context)
                raise ProviderRateLimitError(
                    f"{cls.provider} rate limit exceeded",
                    provider=cls.provider,
                    status_code=status_code,
                ) from error

            if status_code >= 500:
                logger.error("Provider server error", extra=log_context)
                raise ProviderUnavailableError(
                    f"{cls.provider} returned {status_code}",
                    provider=cls.provider,
                    status_code=status_code,
                ) from error

            if status_code in (401, 403):
                logger.critical(
                    "Provider authentication failed - check API key",
                    extra=log_context,
                )
            else:
                logger.error("Provider rejected request", extra=log_context)
            raise ProviderRejectedError(
                f"{cls.provider} rejected the request ({status_code}): {body}",
                provider=cls.provider,
                status_code=status_code,
            ) from error

        if isinstance(error, httpx.TransportError):
            logger.error("Connection error to provider", extra=log_context, exc_info=True)
            raise ProviderUnavailableError(
                f"Could not connect to {cls.provider}",
                provider=cls.provider,
            ) from error

        if isinstance(error, ValueError):
            logger.error("Provider returned a non-JSON body", extra=log_context)
            raise ProviderResponseError(
                f"{cls.provider} returned an unreadable response",
                provider=cls.provider,
            ) from error

        logger.error(
            f"Unexpected error from provider: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise ProviderUnavailableError(
            f"Unexpected {cls.provider} error: {error}",
            provider=cls.provider,
        ) from error

    # =========================================================================
    # Operations
    # =========================================================================

    @classmethod
    def create_checkout(
        cls,
        amount: Decimal,
        currency: str,
        reference: str,
        redirect_url: str,
        cancel_url: str | None = None,
        metadata: dict[str, Any] | None = None,
        customer: dict[str, Any] | None = None,
    ) -> CheckoutResult:
        raise NotImplementedError

    @classmethod
    def check_status(cls, provider_id: str, retry: bool = True) -> StatusResult:
        raise NotImplementedError

    @classmethod
    def refund(cls, provider_payment_id: str, amount: Decimal, reason: str = "") -> RefundResult:
        raise NotImplementedError

    @classmethod
    def create_payout(
        cls,
        destination: PayoutDestination,
        amount: Decimal,
        reference: str,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        raise NotImplementedError

    @classmethod
    def verify_webhook(cls, headers: Mapping[str, str], body: bytes) -> bool:
        raise NotImplementedError

    @classmethod
    def verify_webhook_signature(cls, headers: Mapping[str, str], body: bytes) -> None:
        """
        Check a webhook against the configured secret.

        Raises:
            WebhookSignatureError: Signature or challenge missing or wrong
        """
        if not cls.verify_webhook(headers, body):
            raise WebhookSignatureError(
                f"{cls.provider} webhook signature verification failed",
                details={"provider": cls.provider},
            )

    @classmethod
    def parse_webhook(cls, payload: dict[str, Any]) -> WebhookEventData:
        raise NotImplementedError
