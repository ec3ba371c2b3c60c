"""
PayoutSettings model: where a business receives its money.

Owned by business management; the payment core only reads it to build a
payout destination.

Usage:
    from payments.models import PayoutSettings

    destination = business.payout_settings.as_destination()
    PayoutExecutor.payout(destination, amount, reference)
"""

from __future__ import annotations

from django.db import models

from core.exceptions import ValidationError
from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import PayoutMethod


# Fields each payout method needs
REQUIRED_FIELDS = {
    PayoutMethod.MPESA_PHONE: ("mpesa_phone",),
    PayoutMethod.MPESA_TILL: ("till_number",),
    PayoutMethod.MPESA_PAYBILL: ("paybill_number", "account_reference"),
    PayoutMethod.BANK: ("bank_code", "bank_account"),
}


class PayoutSettings(UUIDPrimaryKeyMixin, BaseModel):
    """
    Payout destination for one business.

    Fields:
        business: Business being paid
        method: Destination variant (MPESA_PHONE, MPESA_TILL, MPESA_PAYBILL, BANK)
        mpesa_phone: Phone for MPESA_PHONE
        till_number: Till for MPESA_TILL
        paybill_number / account_reference: Paybill and account for MPESA_PAYBILL
        bank_code / bank_account: Bank and account number for BANK
        account_name: Registered name on the destination account
    """

    business = models.OneToOneField(
        "bookings.Business",
        on_delete=models.CASCADE,
        related_name="payout_settings",
        help_text="Business being paid",
    )

    method = models.CharField(
        max_length=20,
        choices=PayoutMethod.choices,
        default=PayoutMethod.MPESA_PHONE,
        help_text="Destination variant",
    )

    mpesa_phone = models.CharField(max_length=20, blank=True, default="", help_text="M-Pesa phone number")
    till_number = models.CharField(max_length=20, blank=True, default="", help_text="M-Pesa till number")
    paybill_number = models.CharField(max_length=20, blank=True, default="", help_text="M-Pesa paybill number")
    account_reference = models.CharField(
        max_length=50, blank=True, default="", help_text="Account reference for paybill payments"
    )
    bank_code = models.CharField(max_length=20, blank=True, default="", help_text="Bank code")
    bank_account = models.CharField(max_length=50, blank=True, default="", help_text="Bank account number")
    account_name = models.CharField(max_length=150, blank=True, default="", help_text="Registered account name")

    class Meta:
        verbose_name = "Payout Settings"
        verbose_name_plural = "Payout Settings"

    def __str__(self) -> str:
        return f"PayoutSettings({self.business_id}, {self.method})"

    def as_destination(self):
        """
        Build the adapter-level payout destination.

        Raises:
            ValidationError: A field required by the method is empty
        """
        from payments.adapters import PayoutDestination

        missing = [name for name in REQUIRED_FIELDS[self.method] if not getattr(self, name)]
        if missing:
            raise ValidationError(
                f"Payout settings incomplete for {self.method}",
                error_code="PAYOUT_SETTINGS_INCOMPLETE",
                details={"missing": missing},
            )

        return PayoutDestination(
            method=self.method,
            account_name=self.account_name or self.business.name,
            phone=self.mpesa_phone or None,
            till_number=self.till_number or None,
            paybill_number=self.paybill_number or None,
            account_reference=self.account_reference or None,
            bank_code=self.bank_code or None,
            bank_account=self.bank_account or None,
        )
