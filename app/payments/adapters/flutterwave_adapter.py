"""
Flutterwave API adapter.

Configuration (via settings):
- FLUTTERWAVE_SECRET_KEY: Secret key sent as a Bearer token
- FLUTTERWAVE_WEBHOOK_HASH: Secret hash configured on the dashboard;
  Flutterwave echoes it in the ``verif-hash`` header of every webhook
- FLUTTERWAVE_BASE_URL: API root (default: https://api.flutterwave.com/v3)

Usage:
    from payments.adapters import FlutterwaveAdapter

    checkout = FlutterwaveAdapter.create_checkout(
        amount=Decimal("2500"),
        currency="KES",
        reference="subscription-<business>-<payment>",
        redirect_url="https://app.example.com/subscription/return",
        customer={"email": business.email, "name": business.name},
    )
    status = FlutterwaveAdapter.check_status("4975361")
"""

from __future__ import annotations

import hmac
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.conf import settings

from payments.adapters.base import (
    CheckoutResult,
    PayoutDestination,
    ProviderAdapter,
    RefundResult,
    StatusResult,
    WebhookEventData,
    first_present,
    header_value,
    normalize_method,
    normalize_status,
    to_decimal,
    wire_amount,
)
from payments.exceptions import ProviderRejectedError, ProviderResponseError
from payments.state_machines import PaymentProvider, PayoutMethod

if TYPE_CHECKING:
    from collections.abc import Mapping

DEFAULT_BASE_URL = "https://api.flutterwave.com/v3"

# Flutterwave's bank code for M-Pesa mobile money transfers
MPESA_BANK_CODE = "MPS"


class FlutterwaveAdapter(ProviderAdapter):
    """
    Adapter for Flutterwave Standard checkout, verification, refunds and transfers.

    Flutterwave has no transfer category for M-Pesa tills or paybills;
    payouts to those destinations are rejected without calling the API.
    """

    provider = PaymentProvider.FLUTTERWAVE

    @classmethod
    def _base_url(cls) -> str:
        return getattr(settings, "FLUTTERWAVE_BASE_URL", "") or DEFAULT_BASE_URL

    @classmethod
    def _headers(cls) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {settings.FLUTTERWAVE_SECRET_KEY}",
            "Content-Type": "application/json",
        }

    # =========================================================================
    # Charges
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
        """
        Create a hosted payment link.

        The Flutterwave transaction id only exists once the customer pays,
        so provider_invoice_id is always None here; it arrives with the
        webhook.
        """
        customer = customer or {}
        body = cls._request(
            "POST",
            "/payments",
            operation="create_checkout",
            payload={
                "tx_ref": reference,
                "amount": wire_amount(amount),
                "currency": currency,
                "redirect_url": redirect_url,
                "payment_options": "card,mpesa",
                "customer": {
                    "email": customer.get("email") or "",
                    "name": customer.get("name") or "",
                    "phonenumber": customer.get("phone") or "",
                },
                "meta": metadata or {},
            },
            log_extra={"reference": reference},
        )
        link = (body.get("data") or {}).get("link")
        if not link:
            raise ProviderResponseError(
                "Flutterwave checkout response had no payment link",
                provider=cls.provider,
            )
        return CheckoutResult(checkout_url=link, provider_invoice_id=None, raw_response=body)

    @classmethod
    def check_status(cls, provider_id: str, retry: bool = True) -> StatusResult:
        """Verify a transaction by its Flutterwave transaction id."""
        body = cls._request(
            "GET",
            f"/transactions/{provider_id}/verify",
            operation="check_status",
            retry=retry,
            log_extra={"provider_payment_id": provider_id},
        )
        data = body.get("data") or {}
        raw_status = str(data.get("status") or "").lower()
        return StatusResult(
            status=normalize_status(raw_status),
            provider_payment_id=str(first_present(data.get("id"), provider_id)),
            method=normalize_method(data.get("payment_type")),
            raw_status=raw_status,
            raw=body,
        )

    @classmethod
    def refund(cls, provider_payment_id: str, amount: Decimal, reason: str = "") -> RefundResult:
        body = cls._request(
            "POST",
            f"/transactions/{provider_payment_id}/refund",
            operation="refund",
            payload={"amount": wire_amount(amount), "comments": reason or "Booking cancelled"},
            retry=False,
            log_extra={"provider_payment_id": provider_payment_id},
        )
        data = body.get("data") or {}
        refund_id = first_present(data.get("id"), data.get("refund_id"))
        return RefundResult(
            id=str(refund_id) if refund_id is not None else None,
            status=str(first_present(data.get("status"), body.get("status"), "")),
            amount=Decimal(str(amount)),
            raw_response=body,
        )

    # =========================================================================
    # Payouts
    # =========================================================================

    @classmethod
    def create_payout(
        cls,
        destination: PayoutDestination,
        amount: Decimal,
        reference: str,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        if destination.method == PayoutMethod.MPESA_PHONE:
            account_bank, account_number = MPESA_BANK_CODE, destination.phone
        elif destination.method == PayoutMethod.BANK:
            account_bank, account_number = destination.bank_code, destination.bank_account
        else:
            raise ProviderRejectedError(
                f"Flutterwave cannot pay out to {destination.method}",
                provider=cls.provider,
            )

        body = cls._request(
            "POST",
            "/transfers",
            operation="create_payout",
            payload={
                "account_bank": account_bank,
                "account_number": account_number,
                "amount": wire_amount(amount),
                "currency": getattr(settings, "PAYMENTS_CURRENCY", "KES"),
                "beneficiary_name": destination.account_name,
                "reference": reference,
                "narration": "Booking payout",
                "meta": metadata or {},
            },
            retry=False,
            log_extra={"reference": reference},
        )
        transfer_id = (body.get("data") or {}).get("id")
        if transfer_id is None:
            raise ProviderResponseError(
                "Flutterwave transfer response had no id",
                provider=cls.provider,
            )
        return str(transfer_id)

    # =========================================================================
    # Webhooks
    # =========================================================================

    @classmethod
    def verify_webhook(cls, headers: Mapping[str, str], body: bytes) -> bool:
        """Compare the ``verif-hash`` header with FLUTTERWAVE_WEBHOOK_HASH."""
        expected = getattr(settings, "FLUTTERWAVE_WEBHOOK_HASH", "")
        received = header_value(headers, "verif-hash")
        if not expected or not received:
            return False
        return hmac.compare_digest(received.encode(), expected.encode())

    @classmethod
    def parse_webhook(cls, payload: dict[str, Any]) -> WebhookEventData:
        data = payload.get("data") or {}
        event_type = str(first_present(payload.get("event"), payload.get("event.type"), "") or "")
        raw_status = str(data.get("status") or "").lower()
        provider_id = first_present(data.get("id"), data.get("transaction_id"))
        is_refund = "refund" in event_type.lower() or normalize_status(raw_status) == "refunded"
        return WebhookEventData(
            event_type=event_type,
            reference=first_present(data.get("tx_ref"), data.get("txRef")),
            provider_payment_id=str(provider_id) if provider_id is not None else None,
            raw_status=raw_status,
            is_refund=is_refund,
            amount=to_decimal(data.get("amount")),
            method=data.get("payment_type"),
            payload=payload,
        )
