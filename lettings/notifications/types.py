from django.db import models


class NotificationType(models.TextChoices):
    """Template keys for every email the leasing workflows can queue."""

    # Bookings
    BOOKING_REQUEST = "booking_request", "Booking request"
    BOOKING_CONFIRMED = "booking_confirmed", "Booking confirmed"
    BOOKING_CANCELLED = "booking_cancelled", "Booking cancelled"

    # Applications
    APPLICATION_RECEIVED = "application_received", "Application received"
    APPLICATION_ACCEPTED = "application_accepted", "Application accepted"
    APPLICATION_REJECTED = "application_rejected", "Application rejected"

    # Payments
    PAYMENT_RECEIVED = "payment_received", "Payment received"
    PAYMENT_FAILED = "payment_failed", "Payment failed"
    PAYMENT_REMINDER = "payment_reminder", "Payment reminder"
    PAYMENT_OVERDUE = "payment_overdue", "Payment overdue"

    # Contracts
    CONTRACT_READY = "contract_ready", "Contract ready"
    CONTRACT_SIGNED = "contract_signed", "Contract signed"

    # Subscriptions
    SUBSCRIPTION_CREATED = "subscription_created", "Subscription created"
    SUBSCRIPTION_UPDATED = "subscription_updated", "Subscription updated"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled", "Subscription cancelled"


HIGH_PRIORITY = frozenset({
    NotificationType.APPLICATION_ACCEPTED,
    NotificationType.CONTRACT_READY,
    NotificationType.CONTRACT_SIGNED,
    NotificationType.PAYMENT_FAILED,
    NotificationType.PAYMENT_OVERDUE,
    NotificationType.SUBSCRIPTION_CREATED,
})
