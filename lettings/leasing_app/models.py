from decimal import Decimal

from django.contrib.auth.models import User
from django.core.serializers.json import DjangoJSONEncoder
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q


# -----------
# UserProfile
# -----------
class UserProfile(models.Model):
    ROLE_LANDLORD = "landlord"
    ROLE_TENANT = "tenant"
    ROLE_CHOICES = ((ROLE_LANDLORD, "Landlord"), (ROLE_TENANT, "Tenant"))

    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name="profile",
    )
    role = models.CharField(
        max_length=20,
        choices=ROLE_CHOICES,
        default=ROLE_TENANT,
        db_index=True,
    )
    phone = models.CharField(max_length=30, blank=True, default="")
    address = models.CharField(max_length=255, blank=True, default="")
    id_number = models.CharField(max_length=50, blank=True, default="")
    stripe_customer_id = models.CharField(max_length=100, blank=True, default="")

    def __str__(self):
        return f"{self.user.username} ({self.role})"


# --------
# Property
# --------
class Property(models.Model):
    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        AVAILABLE = "available", "Available"
        RENTED = "rented", "Rented"
        MAINTENANCE = "maintenance", "Maintenance"

    class Furnished(models.TextChoices):
        FURNISHED = "furnished", "Furnished"
        SEMI_FURNISHED = "semi_furnished", "Semi furnished"
        UNFURNISHED = "unfurnished", "Unfurnished"

    landlord = models.ForeignKey(User, on_delete=models.CASCADE, related_name="properties")
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, default="")
    address = models.CharField(max_length=255, blank=True, default="")
    city = models.CharField(max_length=100, blank=True, default="", db_index=True)
    area = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    furnished = models.CharField(max_length=20, choices=Furnished.choices, default=Furnished.UNFURNISHED)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT, db_index=True)

    monthly_rent = models.DecimalField(
        max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0.01"))]
    )
    security_deposit = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    utilities_included = models.BooleanField(default=False)
    pets_allowed = models.BooleanField(default=False)
    smoking_allowed = models.BooleanField(default=False)
    minimum_stay_months = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "properties"
        ordering = ["-created_at"]

    def __str__(self):
        return self.title


# -------
# Booking
# -------
class Booking(models.Model):
    class Type(models.TextChoices):
        VIEWING = "viewing", "Viewing"
        APPLICATION = "application", "Application"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        CONFIRMED = "confirmed", "Confirmed"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    TERMINAL_STATUSES = (Status.COMPLETED, Status.CANCELLED)

    property = models.ForeignKey(Property, on_delete=models.CASCADE, related_name="bookings")
    tenant = models.ForeignKey(User, on_delete=models.CASCADE, related_name="bookings")
    landlord = models.ForeignKey(User, on_delete=models.CASCADE, related_name="received_bookings")
    type = models.CharField(max_length=20, choices=Type.choices)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)

    # viewing scheduling
    viewing_date = models.DateField(null=True, blank=True)
    viewing_time = models.TimeField(null=True, blank=True)

    # lease application tracking
    move_in_date = models.DateField(null=True, blank=True)
    lease_duration = models.PositiveIntegerField(null=True, blank=True)

    message = models.TextField(blank=True, default="")
    confirmed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["tenant", "created_at"], name="booking_tenant_created_idx"),
            models.Index(fields=["landlord", "created_at"], name="booking_landlord_created_idx"),
        ]

    def __str__(self):
        return f"{self.type} booking {self.pk} for {self.property_id} [{self.status}]"


# -----------
# Application
# -----------
class Application(models.Model):
    class Status(models.TextChoices):
        SUBMITTED = "submitted", "Submitted"
        UNDER_REVIEW = "under_review", "Under review"
        APPROVED = "approved", "Approved"
        REJECTED = "rejected", "Rejected"

    REVIEWABLE_STATUSES = (Status.SUBMITTED, Status.UNDER_REVIEW)

    property = models.ForeignKey(Property, on_delete=models.CASCADE, related_name="applications")
    tenant = models.ForeignKey(User, on_delete=models.CASCADE, related_name="applications")
    landlord = models.ForeignKey(User, on_delete=models.CASCADE, related_name="received_applications")
    booking = models.OneToOneField(
        Booking,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="application",
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.SUBMITTED, db_index=True)

    move_in_date = models.DateField()
    lease_duration = models.PositiveIntegerField(validators=[MinValueValidator(1)])

    # financial / reference fields
    monthly_income = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    has_guarantor = models.BooleanField(default=False)
    guarantor_info = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    previous_rental_history = models.JSONField(default=list, blank=True, encoder=DjangoJSONEncoder)
    references = models.JSONField(default=list, blank=True, encoder=DjangoJSONEncoder)
    cover_letter = models.TextField(blank=True, default="")
    additional_info = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)

    rejection_reason = models.TextField(blank=True, default="")
    reviewed_at = models.DateTimeField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Application {self.pk} for {self.property_id} [{self.status}]"


# --------
# Contract
# --------
class Contract(models.Model):
    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        SIGNED = "signed", "Signed"

    contract_number = models.CharField(max_length=20, unique=True)
    application = models.OneToOneField(Application, on_delete=models.PROTECT, related_name="contract")
    property = models.ForeignKey(Property, on_delete=models.PROTECT, related_name="contracts")
    tenant = models.ForeignKey(User, on_delete=models.PROTECT, related_name="tenant_contracts")
    landlord = models.ForeignKey(User, on_delete=models.PROTECT, related_name="landlord_contracts")
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.DRAFT, db_index=True)

    monthly_rent = models.DecimalField(max_digits=10, decimal_places=2)
    security_deposit = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    platform_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    lease_start_date = models.DateField()
    lease_end_date = models.DateField()
    lease_duration = models.PositiveIntegerField()
    contract_data = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)

    tenant_signed_at = models.DateTimeField(null=True, blank=True)
    landlord_signed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=~Q(status="signed") | (Q(tenant_signed_at__isnull=False) & Q(landlord_signed_at__isnull=False)),
                name="contract_signed_requires_both_parties",
            ),
        ]

    def is_fully_signed(self):
        return self.tenant_signed_at is not None and self.landlord_signed_at is not None

    def party_role(self, user):
        """'tenant' / 'landlord' for a party of this contract, else None."""
        if user.pk == self.tenant_id:
            return Signature.SignerType.TENANT
        if user.pk == self.landlord_id:
            return Signature.SignerType.LANDLORD
        return None

    def __str__(self):
        return f"{self.contract_number} [{self.status}]"


class Signature(models.Model):
    class SignerType(models.TextChoices):
        TENANT = "tenant", "Tenant"
        LANDLORD = "landlord", "Landlord"

    contract = models.ForeignKey(Contract, on_delete=models.CASCADE, related_name="signatures")
    signer = models.ForeignKey(User, on_delete=models.PROTECT, related_name="signatures")
    signer_name = models.CharField(max_length=200)
    signer_type = models.CharField(max_length=10, choices=SignerType.choices)
    signature_data = models.TextField(blank=True, default="")
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    signed_at = models.DateTimeField()

    class Meta:
        ordering = ["signed_at"]
        constraints = [
            models.UniqueConstraint(fields=["contract", "signer"], name="uq_signature_contract_signer"),
            models.UniqueConstraint(fields=["contract", "signer_type"], name="uq_signature_contract_signer_type"),
        ]

    def __str__(self):
        return f"{self.signer_type} signature on {self.contract_id}"


# ------------
# Subscription
# ------------
class Subscription(models.Model):
    """Local mirror of a recurring rent subscription held by Stripe."""

    class Status(models.TextChoices):
        INCOMPLETE = "incomplete", "Incomplete"
        TRIALING = "trialing", "Trialing"
        ACTIVE = "active", "Active"
        PAST_DUE = "past_due", "Payment overdue"
        PAUSED = "paused", "Paused"
        CANCELED = "canceled", "Canceled"
        UNPAID = "unpaid", "Payment failed"

    tenant = models.ForeignKey(User, on_delete=models.CASCADE, related_name="rent_subscriptions")
    landlord = models.ForeignKey(User, on_delete=models.CASCADE, related_name="landlord_subscriptions")
    property = models.ForeignKey(Property, on_delete=models.CASCADE, related_name="subscriptions")
    contract = models.ForeignKey(
        Contract, on_delete=models.SET_NULL, null=True, blank=True, related_name="subscriptions"
    )

    stripe_subscription_id = models.CharField(max_length=200, unique=True)
    stripe_customer_id = models.CharField(max_length=200, blank=True, default="")
    stripe_price_id = models.CharField(max_length=200, blank=True, default="")

    amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=10, default="eur")
    payment_day = models.PositiveSmallIntegerField(
        default=1, validators=[MinValueValidator(1), MaxValueValidator(28)]
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.INCOMPLETE, db_index=True)
    current_period_start = models.DateTimeField(null=True, blank=True)
    current_period_end = models.DateTimeField(null=True, blank=True)
    next_payment_date = models.DateTimeField(null=True, blank=True)
    cancel_at_period_end = models.BooleanField(default=False)
    canceled_at = models.DateTimeField(null=True, blank=True)

    # reconciliation bookkeeping
    last_event_at = models.DateTimeField(null=True, blank=True)
    last_reconciled_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Subscription {self.stripe_subscription_id} [{self.status}]"


# -------
# Payment
# -------
class Payment(models.Model):
    class Type(models.TextChoices):
        SECURITY_DEPOSIT = "security_deposit", "Security deposit"
        MONTHLY_RENT = "monthly_rent", "Monthly rent"
        PLATFORM_FEE = "platform_fee", "Platform fee"
        LATE_FEE = "late_fee", "Late fee"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"
        CANCELED = "canceled", "Canceled"

    # the payer
    tenant = models.ForeignKey(User, on_delete=models.CASCADE, related_name="payments")
    landlord = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="received_payments"
    )
    property = models.ForeignKey(
        Property, on_delete=models.SET_NULL, null=True, blank=True, related_name="payments"
    )
    contract = models.ForeignKey(
        Contract, on_delete=models.SET_NULL, null=True, blank=True, related_name="payments"
    )
    subscription = models.ForeignKey(
        Subscription, on_delete=models.SET_NULL, null=True, blank=True, related_name="payments"
    )

    amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=10, default="eur")
    payment_type = models.CharField(max_length=20, choices=Type.choices)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    description = models.CharField(max_length=255, blank=True, default="")

    stripe_payment_intent_id = models.CharField(max_length=200, blank=True, default="")
    stripe_charge_id = models.CharField(max_length=200, blank=True, default="")
    stripe_invoice_id = models.CharField(max_length=200, null=True, blank=True, unique=True)

    failure_reason = models.TextField(blank=True, default="")
    due_date = models.DateField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    reminder_sent_at = models.DateTimeField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    last_reconciled_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["tenant", "created_at"], name="payment_tenant_created_idx"),
            models.Index(fields=["landlord", "created_at"], name="payment_landlord_created_idx"),
            models.Index(fields=["stripe_payment_intent_id"], name="payment_intent_idx"),
        ]

    def __str__(self):
        who = getattr(self.tenant, "username", self.tenant_id)
        return f"Payment {self.id} {self.amount} {self.currency} by {who} [{self.status}]"


# ---------------
# WebhookReceipt
# ---------------
class WebhookReceipt(models.Model):
    source = models.CharField(max_length=50, db_index=True)   # e.g. "stripe"
    event_id = models.CharField(max_length=255, unique=True)  # used for replay protection
    event_type = models.CharField(max_length=100, blank=True, default="")
    received_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    payload = models.JSONField(null=True, blank=True)
    error = models.TextField(blank=True, default="")

    def __str__(self):
        return f"{self.source}:{self.event_id}"
