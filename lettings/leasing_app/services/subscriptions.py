"""
Recurring monthly rent for signed contracts.

The gateway is the system of record: the local ``Subscription`` row is a
mirror whose status only changes from webhook events. Management actions
here call the gateway and leave status alone.
"""
import logging

import stripe
from django.core.exceptions import ValidationError
from django.utils import timezone

from leasing_app.api.exceptions import (
    AccessDenied,
    ExternalServiceFailure,
    InvalidStateTransition,
    NotFound,
)
from leasing_app.models import Contract, Subscription
from leasing_app.services import gateway
from leasing_app.services.bookings import display_name
from leasing_app.services.tenancy_dates import from_timestamp, next_billing_anchor
from notifications.services import dispatch
from notifications.types import NotificationType

logger = logging.getLogger(__name__)

MANAGE_ACTIONS = ("update", "pause", "resume", "cancel")


def validate_payment_day(value) -> int:
    try:
        day = int(value)
    except (TypeError, ValueError):
        day = 0
    if not 1 <= day <= 28:
        raise ValidationError("Payment day must be between 1 and 28")
    return day


# --------------------
# Creation
# --------------------
def create_subscription(*, user, contract_id, payment_day, currency=None):
    """
    Set up monthly rent collection for a signed contract, by its tenant.

    Returns ``(subscription, next_payment_date)``.
    """
    if not contract_id:
        raise ValidationError("Contract ID is required")
    payment_day = validate_payment_day(payment_day)

    contract = (
        Contract.objects.select_related("property", "tenant", "landlord")
        .filter(pk=contract_id)
        .first()
    )
    if contract is None:
        raise NotFound("Contract not found")
    role = contract.party_role(user)
    if role is None:
        raise AccessDenied("Access denied")
    if role != "tenant":
        raise AccessDenied("Only the tenant can set up rent payments for this contract")
    if contract.status != Contract.Status.SIGNED:
        raise InvalidStateTransition("Contract must be signed before setting up rent payments")
    if Subscription.objects.filter(contract=contract).exclude(status=Subscription.Status.CANCELED).exists():
        raise InvalidStateTransition("A rent subscription already exists for this contract")

    try:
        result = gateway.create_rent_subscription(contract=contract, payment_day=payment_day, currency=currency)
    except stripe.StripeError:
        logger.exception("Rent subscription creation failed for contract %s", contract.pk)
        raise ExternalServiceFailure("Failed to create subscription")

    remote = result["subscription"]
    start, end = gateway.subscription_period(remote)
    status = gateway.field(remote, "status")
    now = timezone.now()

    subscription = Subscription.objects.create(
        tenant=contract.tenant,
        landlord=contract.landlord,
        property=contract.property,
        contract=contract,
        stripe_subscription_id=gateway.field(remote, "id"),
        stripe_customer_id=result["customer_id"],
        stripe_price_id=result["price_id"],
        amount=contract.monthly_rent,
        currency=gateway.field(remote, "currency") or currency or "eur",
        payment_day=payment_day,
        status=status if status in Subscription.Status.values else Subscription.Status.INCOMPLETE,
        current_period_start=from_timestamp(start),
        current_period_end=from_timestamp(end),
        next_payment_date=result["next_payment_date"],
        last_reconciled_at=now,
    )
    logger.info("Subscription %s stored for contract %s", subscription.stripe_subscription_id, contract.pk)

    context = {
        "property_title": contract.property.title,
        "monthly_rent": contract.monthly_rent,
        "currency": subscription.currency.upper(),
        "payment_day": payment_day,
        "next_payment_date": result["next_payment_date"].date(),
        "subscription_id": subscription.stripe_subscription_id,
    }
    dispatch(NotificationType.SUBSCRIPTION_CREATED, contract.tenant, context)
    dispatch(NotificationType.SUBSCRIPTION_CREATED, contract.landlord, context)
    return subscription, result["next_payment_date"]


# --------------------
# Access
# --------------------
def subscriptions_for(user, *, user_type=None, status=None):
    qs = Subscription.objects.select_related("property", "tenant", "landlord", "contract")
    if user_type == "landlord":
        qs = qs.filter(landlord=user)
    else:
        qs = qs.filter(tenant=user)
    if status:
        qs = qs.filter(status=status)
    return qs.order_by("-created_at")


def get_subscription_for_party(user, subscription_id) -> Subscription:
    subscription = (
        Subscription.objects.select_related("property", "tenant", "landlord", "contract")
        .filter(pk=subscription_id)
        .first()
    )
    if subscription is None:
        raise NotFound("Subscription not found")
    if user.pk not in (subscription.tenant_id, subscription.landlord_id):
        raise AccessDenied("Access denied")
    return subscription


def subscription_details(subscription) -> dict:
    """Live view of the subscription at the gateway plus its recent invoices."""
    try:
        remote = gateway.retrieve_subscription(subscription.stripe_subscription_id)
        invoices = gateway.list_subscription_invoices(subscription.stripe_subscription_id)
    except stripe.StripeError:
        logger.exception("Could not load gateway details for %s", subscription.stripe_subscription_id)
        raise ExternalServiceFailure("Failed to retrieve subscription details")

    start, end = gateway.subscription_period(remote)
    items = gateway.field(gateway.field(remote, "items"), "data") or []
    unit_amount = gateway.field(gateway.field(items[0], "price"), "unit_amount") if items else None
    paid = [inv for inv in invoices if gateway.field(inv, "status") == "paid"]

    return {
        "status": gateway.field(remote, "status"),
        "current_period_start": from_timestamp(start),
        "current_period_end": from_timestamp(end),
        "cancel_at": from_timestamp(gateway.field(remote, "cancel_at")),
        "amount": gateway.from_minor_units(unit_amount) if unit_amount is not None else subscription.amount,
        "currency": gateway.field(remote, "currency") or subscription.currency,
        "total_paid": sum((gateway.from_minor_units(gateway.field(inv, "amount_paid")) for inv in paid),
                          start=gateway.from_minor_units(0)),
        "invoice_count": len(invoices),
        "recent_invoices": [
            {
                "id": gateway.field(inv, "id"),
                "amount": gateway.from_minor_units(gateway.field(inv, "amount_paid")),
                "status": gateway.field(inv, "status"),
                "created_at": from_timestamp(gateway.field(inv, "created")),
                "paid_at": from_timestamp(gateway.field(gateway.field(inv, "status_transitions"), "paid_at")),
            }
            for inv in invoices[:5]
        ],
    }


# --------------------
# Management
# --------------------
def manage_subscription(*, user, subscription_id, action: str, updates: dict = None):
    """
    pause / resume / cancel / update a rent subscription at the gateway.

    Returns ``(subscription, remote)``. The local status is left for the
    ``customer.subscription.*`` webhooks to mirror.
    """
    subscription = get_subscription_for_party(user, subscription_id)
    updates = updates or {}

    if action not in MANAGE_ACTIONS:
        raise ValidationError("Invalid action. Must be: update, pause, resume, or cancel")
    if subscription.status == Subscription.Status.CANCELED:
        raise InvalidStateTransition("Subscription is already canceled")

    local_changes = {}
    if action == "update":
        if not any(updates.get(k) is not None for k in ("monthly_rent", "payment_day", "end_date")):
            raise ValidationError("Updates are required for update action")
        if updates.get("monthly_rent") is not None:
            if user.pk != subscription.landlord_id:
                raise AccessDenied("Only the landlord can change the rent")
            if updates["monthly_rent"] <= 0:
                raise ValidationError("Valid monthly rent is required")
            local_changes["amount"] = updates["monthly_rent"]
        if updates.get("payment_day") is not None:
            local_changes["payment_day"] = validate_payment_day(updates["payment_day"])
            # the gateway defers the next invoice to this anchor
            local_changes["next_payment_date"] = next_billing_anchor(local_changes["payment_day"])

    sub_id = subscription.stripe_subscription_id
    try:
        if action == "pause":
            remote = gateway.pause_rent_subscription(sub_id, resumes_at=updates.get("resumes_at"))
        elif action == "resume":
            remote = gateway.resume_rent_subscription(sub_id)
        elif action == "cancel":
            remote = gateway.cancel_rent_subscription(sub_id, at_period_end=not updates.get("immediately"))
        else:
            remote = gateway.update_rent_subscription(
                sub_id,
                monthly_rent=updates.get("monthly_rent"),
                payment_day=local_changes.get("payment_day"),
                end_date=updates.get("end_date"),
                currency=subscription.currency,
            )
    except stripe.StripeError:
        logger.exception("Subscription %s %s failed at the gateway", sub_id, action)
        raise ExternalServiceFailure("Failed to manage subscription")

    if local_changes:
        Subscription.objects.filter(pk=subscription.pk).update(
            **local_changes, last_reconciled_at=timezone.now(), updated_at=timezone.now()
        )
        subscription.refresh_from_db()

    logger.info("Subscription %s: %s requested by user %s", sub_id, action, user.pk)

    if action == "update":
        _notify_update(subscription, user, updates.get("end_date"))
    return subscription, remote


def _notify_update(subscription, actor, end_date):
    other = subscription.landlord if actor.pk == subscription.tenant_id else subscription.tenant
    dispatch(
        NotificationType.SUBSCRIPTION_UPDATED,
        other,
        {
            "property_title": subscription.property.title,
            "updated_by": display_name(actor),
            "monthly_rent": subscription.amount,
            "currency": subscription.currency.upper(),
            "payment_day": subscription.payment_day,
            "next_payment_date": subscription.next_payment_date.date() if subscription.next_payment_date else None,
            "end_date": end_date,
            "subscription_id": subscription.stripe_subscription_id,
        },
    )
