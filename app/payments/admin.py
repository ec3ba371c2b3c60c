"""
Payment admin configuration.

Registers payment domain models with the Django admin. Status fields are
managed by django-fsm and the service layer, so they are read-only here.
"""

from django.contrib import admin
from django.utils import timezone

from payments.models import (
    OperatorAlert,
    Payment,
    PayoutSettings,
    Subscription,
    SubscriptionPayment,
    WebhookLog,
)

__all__ = [
    "OperatorAlertAdmin",
    "PaymentAdmin",
    "PayoutSettingsAdmin",
    "SubscriptionAdmin",
    "SubscriptionPaymentAdmin",
    "WebhookLogAdmin",
]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payment.

    Provides visibility into charges, refunds and payouts.
    State changes should be made through the service layer, not admin.
    """

    list_display = [
        "tx_ref",
        "type",
        "status",
        "amount_display",
        "provider",
        "method",
        "payout_display",
        "created_at",
    ]
    list_filter = ["type", "status", "provider", "method", "created_at"]
    search_fields = ["id", "tx_ref", "provider_payment_id", "provider_payout_id", "booking__id"]
    readonly_fields = [
        "id",
        "status",
        "tx_ref",
        "provider_payment_id",
        "provider_payout_id",
        "payout_attempts",
        "payout_error",
        "payout_failed_at",
        "paid_out_at",
        "succeeded_at",
        "failed_at",
        "refunded_at",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["booking", "business"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "type", "status", "booking", "business"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount", "fee", "currency", "method"),
            },
        ),
        (
            "Provider",
            {
                "fields": ("provider", "tx_ref", "provider_payment_id", "checkout_url"),
            },
        ),
        (
            "Payout",
            {
                "fields": (
                    "provider_payout_id",
                    "payout_attempts",
                    "payout_error",
                    "payout_failed_at",
                    "paid_out_at",
                ),
            },
        ),
        (
            "Outcome",
            {
                "fields": ("succeeded_at", "failed_at", "refunded_at", "failure_reason"),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("metadata",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def amount_display(self, obj: Payment) -> str:
        """Display amount with currency."""
        return f"{obj.amount} {obj.currency}"

    amount_display.short_description = "Amount"

    def payout_display(self, obj: Payment) -> str:
        """Display the payout outcome for booking payments."""
        if obj.provider_payout_id:
            return obj.provider_payout_id
        if obj.payout_attempts:
            return f"failed ({obj.payout_attempts} attempts)"
        return "-"

    payout_display.short_description = "Payout"

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for payments (audit trail)."""
        return False


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """Admin configuration for Subscription."""

    list_display = ["business", "plan", "amount", "end_date", "is_active"]
    list_filter = ["plan", "is_active"]
    search_fields = ["business__name", "business__email"]
    readonly_fields = ["id", "deactivated_at", "created_at", "updated_at"]
    raw_id_fields = ["business"]


@admin.register(SubscriptionPayment)
class SubscriptionPaymentAdmin(admin.ModelAdmin):
    """
    Admin configuration for SubscriptionPayment.

    State changes should be made through the service layer, not admin.
    """

    list_display = ["tx_ref", "business", "plan", "status", "amount", "new_end_date", "created_at"]
    list_filter = ["status", "plan", "provider"]
    search_fields = ["tx_ref", "provider_payment_id", "business__name"]
    readonly_fields = [
        "id",
        "status",
        "tx_ref",
        "provider_payment_id",
        "succeeded_at",
        "failed_at",
        "new_end_date",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["subscription", "business"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for subscription payments (audit trail)."""
        return False


@admin.register(WebhookLog)
class WebhookLogAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookLog.

    The ledger is append-only: rows can be inspected but never added,
    changed or deleted through admin.
    """

    list_display = ["tx_ref", "type", "provider", "event_type", "received_at"]
    list_filter = ["type", "provider", "received_at"]
    search_fields = ["tx_ref"]
    readonly_fields = ["id", "tx_ref", "type", "provider", "event_type", "received_at"]
    date_hierarchy = "received_at"
    ordering = ["-received_at"]

    def has_delete_permission(self, request, obj=None) -> bool:
        return False

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False


@admin.register(PayoutSettings)
class PayoutSettingsAdmin(admin.ModelAdmin):
    """Admin configuration for PayoutSettings."""

    list_display = ["business", "method", "account_name", "updated_at"]
    list_filter = ["method"]
    search_fields = ["business__name", "account_name", "mpesa_phone", "bank_account"]
    raw_id_fields = ["business"]


@admin.register(OperatorAlert)
class OperatorAlertAdmin(admin.ModelAdmin):
    """
    Admin configuration for OperatorAlert.

    Provides a review queue for operators. Supports bulk resolving.
    """

    list_display = ["kind", "short_message", "payment", "resolved", "created_at"]
    list_filter = ["kind", "resolved", "created_at"]
    search_fields = ["message", "payment__tx_ref"]
    readonly_fields = ["id", "kind", "message", "context", "payment", "resolved_at", "created_at", "updated_at"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["mark_resolved"]

    def short_message(self, obj: OperatorAlert) -> str:
        """Truncated alert message for the list view."""
        return obj.message if len(obj.message) <= 80 else f"{obj.message[:77]}..."

    short_message.short_description = "Message"

    @admin.action(description="Mark selected alerts as resolved")
    def mark_resolved(self, request, queryset):
        """Bulk action to resolve alerts."""
        count = queryset.filter(resolved=False).update(
            resolved=True,
            resolved_at=timezone.now(),
        )
        self.message_user(request, f"Resolved {count} alerts.")

    def has_add_permission(self, request) -> bool:
        """Alerts are raised by the payment services only."""
        return False
