"""
IntaSend API adapter.

Configuration (via settings):
- INTASEND_SECRET_KEY: Secret key sent as a Bearer token
- INTASEND_WEBHOOK_CHALLENGE: Challenge string configured on the dashboard;
  IntaSend sends it back with every webhook
- INTASEND_MODE: "live" or "sandbox" (default: sandbox)

IntaSend payloads differ between event types and API versions, so
parsing reads each field from several known locations.

Usage:
    from payments.adapters import IntaSendAdapter

    checkout = IntaSendAdapter.create_checkout(
        amount=Decimal("5000"),
        currency="KES",
        reference="cancellation-<booking>-1718000000000",
        redirect_url="https://app.example.com/bookings/return",
    )
    status = IntaSendAdapter.check_status(checkout.provider_invoice_id)
"""

from __future__ import annotations

import hmac
import json
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

LIVE_BASE_URL = "https://payment.intasend.com/api/v1/"
SANDBOX_BASE_URL = "https://sandbox.intasend.com/api/v1/"

# Send Money categories per payout method
PAYOUT_CATEGORIES = {
    PayoutMethod.MPESA_PHONE: "MPESA-B2C",
    PayoutMethod.MPESA_TILL: "MPESA-TILL",
    PayoutMethod.MPESA_PAYBILL: "MPESA-PAYBILL",
    PayoutMethod.BANK: "BANK",
}


class IntaSendAdapter(ProviderAdapter):
    """Adapter for IntaSend checkout, payment status, chargebacks and Send Money."""

    provider = PaymentProvider.INTASEND

    @classmethod
    def _base_url(cls) -> str:
        mode = str(getattr(settings, "INTASEND_MODE", "sandbox")).lower()
        return LIVE_BASE_URL if mode == "live" else SANDBOX_BASE_URL

    @classmethod
    def _headers(cls) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {settings.INTASEND_SECRET_KEY}",
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
        customer = customer or {}
        body = cls._request(
            "POST",
            "checkout/",
            operation="create_checkout",
            payload={
                "amount": wire_amount(amount),
                "currency": currency,
                "email": customer.get("email") or "",
                "first_name": customer.get("name") or "",
                "phone_number": customer.get("phone") or "",
                "api_ref": reference,
                "reference": reference,
                "redirect_url": redirect_url,
                "cancel_url": cancel_url or redirect_url,
                "metadata": metadata or {},
            },
            log_extra={"reference": reference},
        )
        checkout_url = first_present(body.get("url"), body.get("checkout_url"))
        if not checkout_url:
            raise ProviderResponseError(
                "IntaSend checkout response had no checkout url",
                provider=cls.provider,
            )
        invoice = body.get("invoice")
        invoice_id = first_present(
            body.get("invoice_id"),
            invoice.get("invoice_id") if isinstance(invoice, dict) else invoice,
        )
        return CheckoutResult(
            checkout_url=checkout_url,
            provider_invoice_id=str(invoice_id) if invoice_id else None,
            raw_response=body,
        )

    @classmethod
    def check_status(cls, provider_id: str, retry: bool = True) -> StatusResult:
        """Fetch invoice state from ``payment/status/`` by invoice id."""
        body = cls._request(
            "POST",
            "payment/status/",
            operation="check_status",
            payload={"invoice_id": provider_id},
            retry=retry,
            log_extra={"provider_payment_id": provider_id},
        )
        invoice = body.get("invoice") if isinstance(body.get("invoice"), dict) else {}
        data = body.get("data") if isinstance(body.get("data"), dict) else {}
        raw_status = str(
            first_present(
                invoice.get("state"),
                body.get("status"),
                body.get("payment_status"),
                data.get("status"),
                "",
            )
        ).lower()
        return StatusResult(
            status=normalize_status(raw_status),
            provider_payment_id=str(
                first_present(invoice.get("invoice_id"), body.get("invoice_id"), data.get("id"), provider_id)
            ),
            method=normalize_method(
                first_present(invoice.get("provider"), body.get("method"), body.get("channel"), data.get("method"))
            ),
            raw_status=raw_status,
            raw=body,
        )

    @classmethod
    def refund(cls, provider_payment_id: str, amount: Decimal, reason: str = "") -> RefundResult:
        body = cls._request(
            "POST",
            "chargebacks/",
            operation="refund",
            payload={
                "invoice": provider_payment_id,
                "amount": wire_amount(amount),
                "reason": "Cancelled booking",
                "reason_details": reason or "Customer cancelled before the deadline",
            },
            retry=False,
            log_extra={"provider_payment_id": provider_payment_id},
        )
        refund_id = first_present(body.get("chargeback_id"), body.get("id"))
        return RefundResult(
            id=str(refund_id) if refund_id is not None else None,
            status=str(first_present(body.get("status"), "")),
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
        category = PAYOUT_CATEGORIES.get(destination.method)
        if category is None:
            raise ProviderRejectedError(
                f"IntaSend cannot pay out to {destination.method}",
                provider=cls.provider,
            )

        transaction: dict[str, Any] = {
            "name": destination.account_name,
            "amount": wire_amount(amount),
            "narrative": "Booking payout",
        }
        if destination.method == PayoutMethod.MPESA_PHONE:
            transaction["account"] = destination.phone
        elif destination.method == PayoutMethod.MPESA_TILL:
            transaction["account"] = destination.till_number
        elif destination.method == PayoutMethod.MPESA_PAYBILL:
            transaction["account"] = destination.paybill_number
            transaction["account_reference"] = destination.account_reference
        else:
            transaction["account"] = destination.bank_account
            transaction["bank_code"] = destination.bank_code

        body = cls._request(
            "POST",
            "send-money/initiate/",
            operation="create_payout",
            payload={
                "currency": getattr(settings, "PAYMENTS_CURRENCY", "KES"),
                "provider": category,
                "category": category,
                "reference": reference,
                "transactions": [transaction],
                "metadata": metadata or {},
            },
            retry=False,
            log_extra={"reference": reference, "category": category},
        )
        payout_id = first_present(body.get("tracking_id"), body.get("id"), body.get("payout_id"))
        if payout_id is None:
            raise ProviderResponseError(
                "IntaSend send-money response had no tracking id",
                provider=cls.provider,
            )
        return str(payout_id)

    # =========================================================================
    # Webhooks
    # =========================================================================

    @classmethod
    def verify_webhook(cls, headers: Mapping[str, str], body: bytes) -> bool:
        """
        Compare the webhook challenge with INTASEND_WEBHOOK_CHALLENGE.

        The challenge is read from the X-IntaSend-Challenge header, falling
        back to the ``challenge`` field of the JSON body.
        """
        expected = getattr(settings, "INTASEND_WEBHOOK_CHALLENGE", "")
        if not expected:
            return False

        received = header_value(headers, "X-IntaSend-Challenge")
        if not received:
            try:
                parsed = json.loads(body or b"{}")
            except ValueError:
                return False
            received = parsed.get("challenge") if isinstance(parsed, dict) else None
        if not received:
            return False
        return hmac.compare_digest(str(received).encode(), expected.encode())

    @classmethod
    def parse_webhook(cls, payload: dict[str, Any]) -> WebhookEventData:
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        metadata = payload.get("metadata") if isinstance(payload.get("metadata"), dict) else {}

        event_type = str(
            first_present(payload.get("event"), payload.get("type"), data.get("event"), data.get("type"), "")
        )
        raw_status = str(
            first_present(payload.get("state"), payload.get("status"), data.get("state"), data.get("status"), "")
        ).lower()
        invoice = payload.get("invoice")
        invoice_id = first_present(
            payload.get("invoice_id"),
            invoice if not isinstance(invoice, dict) else invoice.get("invoice_id"),
            data.get("invoice_id"),
            data.get("invoice"),
        )
        lowered_type = event_type.lower()
        is_refund = (
            "refund" in lowered_type
            or "chargeback" in lowered_type
            or normalize_status(raw_status) == "refunded"
        )
        return WebhookEventData(
            event_type=event_type,
            reference=first_present(
                payload.get("api_ref"),
                payload.get("reference"),
                data.get("api_ref"),
                data.get("reference"),
                metadata.get("reference"),
            ),
            provider_payment_id=str(invoice_id) if invoice_id else None,
            raw_status=raw_status,
            is_refund=is_refund,
            amount=to_decimal(first_present(payload.get("value"), payload.get("amount"), data.get("amount"))),
            method=first_present(payload.get("provider"), payload.get("method"), data.get("method")),
            payload=payload,
        )
