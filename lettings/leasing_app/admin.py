from django.contrib import admin

from leasing_app.models import (
    # Listings / people
    UserProfile,
    Property,

    # Workflow
    Booking,
    Application,
    Contract,
    Signature,

    # Payments
    Subscription,
    Payment,
    WebhookReceipt,
)


class ReadOnlyAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# ---------- Listings / people ----------

@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "role", "phone", "stripe_customer_id")
    list_filter = ("role",)
    search_fields = ("user__username", "user__email", "phone")


@admin.register(Property)
class PropertyAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "city", "landlord", "monthly_rent", "status", "created_at")
    list_filter = ("status", "furnished", "city")
    search_fields = ("title", "address", "city", "landlord__username")
    readonly_fields = ("created_at", "updated_at")


# ---------- Workflow ----------

@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ("id", "type", "property", "tenant", "landlord", "status", "created_at")
    list_filter = ("type", "status")
    search_fields = ("property__title", "tenant__username", "landlord__username")
    readonly_fields = ("created_at", "updated_at")


@admin.register(Application)
class ApplicationAdmin(admin.ModelAdmin):
    list_display = ("id", "property", "tenant", "status", "move_in_date", "lease_duration", "created_at")
    list_filter = ("status", "has_guarantor")
    search_fields = ("property__title", "tenant__username")
    # status changes go through the review workflow
    readonly_fields = ("status", "reviewed_at", "approved_at", "rejected_at", "created_at", "updated_at")


class SignatureInline(admin.TabularInline):
    model = Signature
    extra = 0
    can_delete = False
    fields = ("signer", "signer_type", "signer_name", "ip_address", "signed_at")
    readonly_fields = fields


@admin.register(Contract)
class ContractAdmin(admin.ModelAdmin):
    list_display = ("contract_number", "property", "tenant", "landlord", "status", "completed_at")
    list_filter = ("status",)
    search_fields = ("contract_number", "property__title", "tenant__username", "landlord__username")
    readonly_fields = (
        "contract_number",
        "status",
        "tenant_signed_at",
        "landlord_signed_at",
        "completed_at",
        "contract_data",
        "created_at",
        "updated_at",
    )
    inlines = [SignatureInline]


# ---------- Payments ----------

@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = ("stripe_subscription_id", "tenant", "property", "amount", "payment_day", "status")
    list_filter = ("status", "cancel_at_period_end")
    search_fields = ("stripe_subscription_id", "stripe_customer_id", "tenant__username", "property__title")
    # mirrored from the gateway
    readonly_fields = (
        "status",
        "current_period_start",
        "current_period_end",
        "canceled_at",
        "last_event_at",
        "last_reconciled_at",
    )


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "tenant", "property", "payment_type", "amount", "currency", "status", "created_at")
    list_filter = ("status", "payment_type", "currency")
    search_fields = (
        "tenant__username",
        "property__title",
        "stripe_payment_intent_id",
        "stripe_invoice_id",
    )
    readonly_fields = ("status", "paid_at", "failed_at", "last_reconciled_at", "created_at")


@admin.register(WebhookReceipt)
class WebhookReceiptAdmin(ReadOnlyAdmin):
    list_display = ("source", "event_id", "event_type", "received_at", "processed_at")
    list_filter = ("source", "event_type")
    search_fields = ("event_id", "source")
    readonly_fields = ("source", "event_id", "event_type", "received_at", "processed_at", "payload", "error")
