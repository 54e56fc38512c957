from decimal import Decimal

from django.contrib.auth import get_user_model
from rest_framework import serializers

from leasing_app.models import (
    Application,
    Booking,
    Contract,
    Payment,
    Property,
    Signature,
    Subscription,
)

User = get_user_model()


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.title() for part in rest)


def camelize(value):
    """snake_case keys -> camelCase, recursively (for stored JSON snapshots)."""
    if isinstance(value, dict):
        return {_camel(str(k)): camelize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [camelize(v) for v in value]
    return value


# --------------------
# Shared summaries
# --------------------
class UserSummarySerializer(serializers.ModelSerializer):
    name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ("id", "name", "email")
        read_only_fields = fields

    def get_name(self, obj):
        return obj.get_full_name() or obj.username


class PropertySummarySerializer(serializers.ModelSerializer):
    monthlyRent = serializers.DecimalField(source="monthly_rent", max_digits=10, decimal_places=2, read_only=True)

    class Meta:
        model = Property
        fields = ("id", "title", "address", "city", "monthlyRent")
        read_only_fields = fields


# --------------------
# Properties
# --------------------
class PropertySerializer(serializers.ModelSerializer):
    landlord = UserSummarySerializer(read_only=True)
    monthlyRent = serializers.DecimalField(
        source="monthly_rent", max_digits=10, decimal_places=2, min_value=Decimal("0.01")
    )
    securityDeposit = serializers.DecimalField(
        source="security_deposit", max_digits=10, decimal_places=2, min_value=0, required=False
    )
    utilitiesIncluded = serializers.BooleanField(source="utilities_included", required=False)
    petsAllowed = serializers.BooleanField(source="pets_allowed", required=False)
    smokingAllowed = serializers.BooleanField(source="smoking_allowed", required=False)
    minimumStayMonths = serializers.IntegerField(source="minimum_stay_months", min_value=1, required=False)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Property
        fields = (
            "id",
            "landlord",
            "title",
            "description",
            "address",
            "city",
            "area",
            "furnished",
            "status",
            "monthlyRent",
            "securityDeposit",
            "utilitiesIncluded",
            "petsAllowed",
            "smokingAllowed",
            "minimumStayMonths",
            "createdAt",
            "updatedAt",
        )
        read_only_fields = ("id", "landlord", "createdAt", "updatedAt")


# --------------------
# Bookings
# --------------------
class BookingCreateSerializer(serializers.Serializer):
    """Payload for POST /bookings/. Business rules are checked by the workflow."""
    propertyId = serializers.IntegerField(source="property_id")
    type = serializers.ChoiceField(choices=Booking.Type.choices)

    # viewing
    viewingDate = serializers.DateField(source="viewing_date", required=False, allow_null=True)
    viewingTime = serializers.TimeField(source="viewing_time", required=False, allow_null=True)
    message = serializers.CharField(allow_blank=True, default="")

    # lease application
    moveInDate = serializers.DateField(source="move_in_date", required=False, allow_null=True)
    leaseDuration = serializers.IntegerField(source="lease_duration", required=False, allow_null=True, min_value=1)
    monthlyIncome = serializers.DecimalField(
        source="monthly_income", max_digits=10, decimal_places=2, required=False, allow_null=True
    )
    hasGuarantor = serializers.BooleanField(source="has_guarantor", default=False)
    guarantorInfo = serializers.DictField(source="guarantor_info", required=False)
    previousRentalHistory = serializers.ListField(source="previous_rental_history", required=False)
    references = serializers.ListField(required=False)
    coverLetter = serializers.CharField(source="cover_letter", required=False, allow_blank=True)
    additionalInfo = serializers.DictField(source="additional_info", required=False)


class BookingSerializer(serializers.ModelSerializer):
    propertyId = serializers.IntegerField(source="property_id", read_only=True)
    property = PropertySummarySerializer(read_only=True)
    tenant = UserSummarySerializer(read_only=True)
    landlord = UserSummarySerializer(read_only=True)
    viewingDate = serializers.DateField(source="viewing_date", read_only=True)
    viewingTime = serializers.TimeField(source="viewing_time", read_only=True)
    moveInDate = serializers.DateField(source="move_in_date", read_only=True)
    leaseDuration = serializers.IntegerField(source="lease_duration", read_only=True)
    confirmedAt = serializers.DateTimeField(source="confirmed_at", read_only=True)
    completedAt = serializers.DateTimeField(source="completed_at", read_only=True)
    cancelledAt = serializers.DateTimeField(source="cancelled_at", read_only=True)
    cancellationReason = serializers.CharField(source="cancellation_reason", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Booking
        fields = (
            "id",
            "propertyId",
            "property",
            "tenant",
            "landlord",
            "type",
            "status",
            "viewingDate",
            "viewingTime",
            "moveInDate",
            "leaseDuration",
            "message",
            "confirmedAt",
            "completedAt",
            "cancelledAt",
            "cancellationReason",
            "createdAt",
            "updatedAt",
        )
        read_only_fields = fields


class BookingActionSerializer(serializers.Serializer):
    action = serializers.CharField()
    reason = serializers.CharField(allow_blank=True, default="")


# --------------------
# Applications
# --------------------
class ApplicationSerializer(serializers.ModelSerializer):
    propertyId = serializers.IntegerField(source="property_id", read_only=True)
    property = PropertySummarySerializer(read_only=True)
    tenant = UserSummarySerializer(read_only=True)
    landlord = UserSummarySerializer(read_only=True)
    bookingId = serializers.IntegerField(source="booking_id", read_only=True)
    moveInDate = serializers.DateField(source="move_in_date", read_only=True)
    leaseDuration = serializers.IntegerField(source="lease_duration", read_only=True)
    monthlyIncome = serializers.DecimalField(
        source="monthly_income", max_digits=10, decimal_places=2, read_only=True
    )
    hasGuarantor = serializers.BooleanField(source="has_guarantor", read_only=True)
    guarantorInfo = serializers.JSONField(source="guarantor_info", read_only=True)
    previousRentalHistory = serializers.JSONField(source="previous_rental_history", read_only=True)
    coverLetter = serializers.CharField(source="cover_letter", read_only=True)
    additionalInfo = serializers.JSONField(source="additional_info", read_only=True)
    rejectionReason = serializers.CharField(source="rejection_reason", read_only=True)
    reviewedAt = serializers.DateTimeField(source="reviewed_at", read_only=True)
    approvedAt = serializers.DateTimeField(source="approved_at", read_only=True)
    rejectedAt = serializers.DateTimeField(source="rejected_at", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Application
        fields = (
            "id",
            "propertyId",
            "property",
            "tenant",
            "landlord",
            "bookingId",
            "status",
            "moveInDate",
            "leaseDuration",
            "monthlyIncome",
            "hasGuarantor",
            "guarantorInfo",
            "previousRentalHistory",
            "references",
            "coverLetter",
            "additionalInfo",
            "rejectionReason",
            "reviewedAt",
            "approvedAt",
            "rejectedAt",
            "createdAt",
            "updatedAt",
        )
        read_only_fields = fields


class ApplicationReviewSerializer(serializers.Serializer):
    action = serializers.CharField()
    rejectionReason = serializers.CharField(source="rejection_reason", allow_blank=True, default="")
    nextSteps = serializers.CharField(source="next_steps", allow_blank=True, default="")


# --------------------
# Contracts
# --------------------
class SignatureSerializer(serializers.ModelSerializer):
    contractId = serializers.IntegerField(source="contract_id", read_only=True)
    signerId = serializers.IntegerField(source="signer_id", read_only=True)
    signerName = serializers.CharField(source="signer_name", read_only=True)
    signerType = serializers.CharField(source="signer_type", read_only=True)
    signatureData = serializers.CharField(source="signature_data", read_only=True)
    ipAddress = serializers.IPAddressField(source="ip_address", read_only=True)
    signedAt = serializers.DateTimeField(source="signed_at", read_only=True)

    class Meta:
        model = Signature
        fields = (
            "id",
            "contractId",
            "signerId",
            "signerName",
            "signerType",
            "signatureData",
            "ipAddress",
            "signedAt",
        )
        read_only_fields = fields


class ContractSerializer(serializers.ModelSerializer):
    contractNumber = serializers.CharField(source="contract_number", read_only=True)
    applicationId = serializers.IntegerField(source="application_id", read_only=True)
    propertyId = serializers.IntegerField(source="property_id", read_only=True)
    property = PropertySummarySerializer(read_only=True)
    tenant = UserSummarySerializer(read_only=True)
    landlord = UserSummarySerializer(read_only=True)
    monthlyRent = serializers.DecimalField(source="monthly_rent", max_digits=10, decimal_places=2, read_only=True)
    securityDeposit = serializers.DecimalField(
        source="security_deposit", max_digits=10, decimal_places=2, read_only=True
    )
    platformFee = serializers.DecimalField(source="platform_fee", max_digits=10, decimal_places=2, read_only=True)
    leaseStartDate = serializers.DateField(source="lease_start_date", read_only=True)
    leaseEndDate = serializers.DateField(source="lease_end_date", read_only=True)
    leaseDuration = serializers.IntegerField(source="lease_duration", read_only=True)
    tenantSignedAt = serializers.DateTimeField(source="tenant_signed_at", read_only=True)
    landlordSignedAt = serializers.DateTimeField(source="landlord_signed_at", read_only=True)
    completedAt = serializers.DateTimeField(source="completed_at", read_only=True)
    isFullySigned = serializers.SerializerMethodField()
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Contract
        fields = (
            "id",
            "contractNumber",
            "applicationId",
            "propertyId",
            "property",
            "tenant",
            "landlord",
            "status",
            "monthlyRent",
            "securityDeposit",
            "platformFee",
            "leaseStartDate",
            "leaseEndDate",
            "leaseDuration",
            "tenantSignedAt",
            "landlordSignedAt",
            "completedAt",
            "isFullySigned",
            "createdAt",
            "updatedAt",
        )
        read_only_fields = fields

    def get_isFullySigned(self, obj):
        return obj.is_fully_signed()


class ContractDetailSerializer(ContractSerializer):
    signatures = SignatureSerializer(many=True, read_only=True)
    contractData = serializers.SerializerMethodField()

    class Meta(ContractSerializer.Meta):
        fields = ContractSerializer.Meta.fields + ("signatures", "contractData")
        read_only_fields = fields

    def get_contractData(self, obj):
        return camelize(obj.contract_data or {})


class ContractCreateSerializer(serializers.Serializer):
    applicationId = serializers.IntegerField(source="application_id", required=False, allow_null=True)
    propertyId = serializers.IntegerField(source="property_id", required=False, allow_null=True)


class ContractSignSerializer(serializers.Serializer):
    action = serializers.CharField()
    signatureData = serializers.CharField(source="signature_data", allow_blank=True, default="")


# --------------------
# Payments
# --------------------
class PaymentSerializer(serializers.ModelSerializer):
    property = PropertySummarySerializer(read_only=True)
    payer = UserSummarySerializer(source="tenant", read_only=True)
    landlord = UserSummarySerializer(read_only=True)
    contractId = serializers.IntegerField(source="contract_id", read_only=True)
    subscriptionId = serializers.IntegerField(source="subscription_id", read_only=True)
    paymentType = serializers.CharField(source="payment_type", read_only=True)
    stripePaymentIntentId = serializers.CharField(source="stripe_payment_intent_id", read_only=True)
    stripeInvoiceId = serializers.CharField(source="stripe_invoice_id", read_only=True)
    failureReason = serializers.CharField(source="failure_reason", read_only=True)
    dueDate = serializers.DateField(source="due_date", read_only=True)
    paidAt = serializers.DateTimeField(source="paid_at", read_only=True)
    failedAt = serializers.DateTimeField(source="failed_at", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = Payment
        fields = (
            "id",
            "amount",
            "currency",
            "paymentType",
            "status",
            "description",
            "property",
            "payer",
            "landlord",
            "contractId",
            "subscriptionId",
            "stripePaymentIntentId",
            "stripeInvoiceId",
            "failureReason",
            "dueDate",
            "paidAt",
            "failedAt",
            "createdAt",
        )
        read_only_fields = fields


class PaymentCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, allow_null=True)
    paymentType = serializers.CharField(source="payment_type", required=False, allow_blank=True)
    propertyId = serializers.IntegerField(source="property_id", required=False, allow_null=True)
    contractId = serializers.IntegerField(source="contract_id", required=False, allow_null=True)
    applicationId = serializers.IntegerField(source="application_id", required=False, allow_null=True)
    description = serializers.CharField(required=False, allow_blank=True)
    currency = serializers.CharField(required=False, allow_blank=True, max_length=10)
    dueDate = serializers.DateField(source="due_date", required=False, allow_null=True)


# --------------------
# Subscriptions
# --------------------
class SubscriptionSerializer(serializers.ModelSerializer):
    property = PropertySummarySerializer(read_only=True)
    tenant = UserSummarySerializer(read_only=True)
    landlord = UserSummarySerializer(read_only=True)
    contractId = serializers.IntegerField(source="contract_id", read_only=True)
    stripeSubscriptionId = serializers.CharField(source="stripe_subscription_id", read_only=True)
    paymentDay = serializers.IntegerField(source="payment_day", read_only=True)
    currentPeriodStart = serializers.DateTimeField(source="current_period_start", read_only=True)
    currentPeriodEnd = serializers.DateTimeField(source="current_period_end", read_only=True)
    nextPaymentDate = serializers.DateTimeField(source="next_payment_date", read_only=True)
    cancelAtPeriodEnd = serializers.BooleanField(source="cancel_at_period_end", read_only=True)
    canceledAt = serializers.DateTimeField(source="canceled_at", read_only=True)
    lastReconciledAt = serializers.DateTimeField(source="last_reconciled_at", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = Subscription
        fields = (
            "id",
            "stripeSubscriptionId",
            "status",
            "amount",
            "currency",
            "paymentDay",
            "currentPeriodStart",
            "currentPeriodEnd",
            "nextPaymentDate",
            "cancelAtPeriodEnd",
            "canceledAt",
            "contractId",
            "property",
            "tenant",
            "landlord",
            "lastReconciledAt",
            "createdAt",
        )
        read_only_fields = fields


class SubscriptionCreateSerializer(serializers.Serializer):
    contractId = serializers.IntegerField(source="contract_id", required=False, allow_null=True)
    paymentDay = serializers.IntegerField(source="payment_day", required=False, allow_null=True)
    currency = serializers.CharField(required=False, allow_blank=True, max_length=10)


class SubscriptionUpdatesSerializer(serializers.Serializer):
    monthlyRent = serializers.DecimalField(
        source="monthly_rent", max_digits=10, decimal_places=2, required=False, allow_null=True
    )
    paymentDay = serializers.IntegerField(source="payment_day", required=False, allow_null=True)
    endDate = serializers.DateField(source="end_date", required=False, allow_null=True)
    resumesAt = serializers.DateTimeField(source="resumes_at", required=False, allow_null=True)
    immediately = serializers.BooleanField(default=False)


class SubscriptionManageSerializer(serializers.Serializer):
    action = serializers.CharField()
    updates = SubscriptionUpdatesSerializer(required=False)
