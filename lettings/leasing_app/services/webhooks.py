"""
Reconcile local Payment / Subscription rows from payment-gateway events.

Each verified event id is stored in ``WebhookReceipt`` before anything else
happens; a redelivered event is acknowledged without being applied again.
Terminal transitions are conditional updates as well, so applying the same
change twice is a no-op even without a receipt.
"""
import json
import logging

import stripe
from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from leasing_app.models import Payment, Subscription, WebhookReceipt
from leasing_app.services.bookings import display_name
from leasing_app.services.gateway import (
    calculate_late_fee,
    field,
    from_minor_units,
    handle_failed_rent_payment,
    subscription_period,
)
from leasing_app.services.tenancy_dates import days_between, from_timestamp
from notifications.services import dispatch
from notifications.types import NotificationType

logger = logging.getLogger(__name__)

SOURCE = "stripe"


def _id(value):
    """Expanded objects carry their id; plain references are the id."""
    if value is None or isinstance(value, str):
        return value
    return field(value, "id")


def _jsonable(event):
    return json.loads(json.dumps(event, default=str))


def process_event(event) -> dict:
    """
    Record and apply one verified event. Returns the acknowledgement body.
    """
    event_id = field(event, "id")
    event_type = field(event, "type") or ""
    obj = field(field(event, "data"), "object")
    event_at = from_timestamp(field(event, "created")) or timezone.now()

    receipt, created = WebhookReceipt.objects.get_or_create(
        event_id=event_id,
        defaults={"source": SOURCE, "event_type": event_type, "payload": _jsonable(event)},
    )
    if not created:
        logger.info("Duplicate webhook %s (%s) ignored", event_id, event_type)
        return {"received": True, "duplicate": True}

    handler = HANDLERS.get(event_type)
    if handler is None:
        logger.info("Unhandled event type: %s", event_type)
    else:
        try:
            with transaction.atomic():
                handler(obj, event_at)
        except Exception as exc:
            # acknowledged anyway; the receipt keeps the failure for follow-up
            logger.exception("Webhook handler for %s failed (event %s)", event_type, event_id)
            receipt.error = f"{exc.__class__.__name__}: {exc}"

    receipt.processed_at = timezone.now()
    receipt.save(update_fields=["processed_at", "error"])
    return {"received": True}


# --------------------
# Payment intents
# --------------------
def _payment_for_intent(intent):
    intent_id = field(intent, "id")
    payment = (
        Payment.objects.select_related("tenant", "landlord", "property")
        .filter(stripe_payment_intent_id=intent_id)
        .first()
    )
    if payment is None:
        logger.warning("Payment not found for PaymentIntent %s", intent_id)
    return payment


def _payment_context(payment, reference) -> dict:
    return {
        "amount": payment.amount,
        "currency": payment.currency.upper(),
        "payment_type": payment.get_payment_type_display(),
        "property_title": payment.property.title if payment.property else "Property",
        "payment_reference": reference,
    }


def handle_payment_intent_succeeded(intent, event_at):
    payment = _payment_for_intent(intent)
    if payment is None:
        return

    now = timezone.now()
    updated = (
        Payment.objects.filter(pk=payment.pk)
        .exclude(status=Payment.Status.COMPLETED)
        .update(
            status=Payment.Status.COMPLETED,
            paid_at=now,
            stripe_charge_id=_id(field(intent, "latest_charge")) or "",
            last_reconciled_at=now,
            updated_at=now,
        )
    )
    if updated != 1:
        return

    context = _payment_context(payment, field(intent, "id"))
    dispatch(NotificationType.PAYMENT_RECEIVED, payment.tenant, context, priority="high")
    if payment.landlord and payment.payment_type != Payment.Type.PLATFORM_FEE:
        dispatch(
            NotificationType.PAYMENT_RECEIVED,
            payment.landlord,
            {**context, "tenant_name": display_name(payment.tenant)},
            priority="high",
        )


def handle_payment_intent_failed(intent, event_at):
    payment = _payment_for_intent(intent)
    if payment is None:
        return

    now = timezone.now()
    reason = field(field(intent, "last_payment_error"), "message") or "Payment failed"
    updated = (
        Payment.objects.filter(pk=payment.pk)
        .exclude(status__in=(Payment.Status.COMPLETED, Payment.Status.CANCELED))
        .update(
            status=Payment.Status.FAILED,
            failure_reason=reason,
            failed_at=now,
            last_reconciled_at=now,
            updated_at=now,
        )
    )
    if updated != 1:
        return

    dispatch(
        NotificationType.PAYMENT_FAILED,
        payment.tenant,
        {**_payment_context(payment, field(intent, "id")), "failure_reason": reason},
    )


def handle_payment_intent_canceled(intent, event_at):
    payment = _payment_for_intent(intent)
    if payment is None:
        return

    now = timezone.now()
    Payment.objects.filter(pk=payment.pk).exclude(
        status__in=(Payment.Status.COMPLETED, Payment.Status.CANCELED)
    ).update(status=Payment.Status.CANCELED, last_reconciled_at=now, updated_at=now)


# --------------------
# Invoices (recurring rent)
# --------------------
def invoice_subscription_id(invoice):
    sub = field(invoice, "subscription")
    if sub is None:
        # newer API versions nest it under parent.subscription_details
        details = field(field(invoice, "parent"), "subscription_details")
        sub = field(details, "subscription")
    return _id(sub)


def _subscription_for_invoice(invoice):
    sub_id = invoice_subscription_id(invoice)
    if not sub_id:
        return None
    subscription = (
        Subscription.objects.select_related("tenant", "landlord", "property", "contract")
        .filter(stripe_subscription_id=sub_id)
        .first()
    )
    if subscription is None:
        logger.warning("Subscription %s not found for invoice %s", sub_id, field(invoice, "id"))
    return subscription


def _rent_payment_defaults(subscription, invoice, now) -> dict:
    return {
        "tenant": subscription.tenant,
        "landlord": subscription.landlord,
        "property": subscription.property,
        "contract": subscription.contract,
        "subscription": subscription,
        "currency": field(invoice, "currency") or subscription.currency,
        "payment_type": Payment.Type.MONTHLY_RENT,
        "description": f"Monthly rent for {subscription.property.title}",
        "stripe_payment_intent_id": _id(field(invoice, "payment_intent")) or "",
        "last_reconciled_at": now,
    }


def handle_invoice_payment_succeeded(invoice, event_at):
    subscription = _subscription_for_invoice(invoice)
    if subscription is None:
        return

    now = timezone.now()
    invoice_id = field(invoice, "id")
    amount = from_minor_units(field(invoice, "amount_paid"))

    payment, created = Payment.objects.get_or_create(
        stripe_invoice_id=invoice_id,
        defaults={
            **_rent_payment_defaults(subscription, invoice, now),
            "amount": amount,
            "status": Payment.Status.COMPLETED,
            "stripe_charge_id": _id(field(invoice, "charge")) or "",
            "paid_at": now,
        },
    )
    if not created:
        # a failed attempt for this invoice was recorded earlier
        created = (
            Payment.objects.filter(pk=payment.pk)
            .exclude(status=Payment.Status.COMPLETED)
            .update(status=Payment.Status.COMPLETED, amount=amount, paid_at=now, last_reconciled_at=now,
                    updated_at=now)
            == 1
        )
    Subscription.objects.filter(pk=subscription.pk).update(last_reconciled_at=now)
    if not created:
        return

    context = {
        "amount": amount,
        "currency": payment.currency.upper(),
        "payment_type": Payment.Type.MONTHLY_RENT.label,
        "property_title": subscription.property.title,
        "payment_reference": invoice_id,
    }
    dispatch(NotificationType.PAYMENT_RECEIVED, subscription.tenant, context, priority="high")
    dispatch(
        NotificationType.PAYMENT_RECEIVED,
        subscription.landlord,
        {**context, "tenant_name": display_name(subscription.tenant)},
        priority="high",
    )


def handle_invoice_payment_failed(invoice, event_at):
    subscription = _subscription_for_invoice(invoice)
    if subscription is None:
        return

    now = timezone.now()
    invoice_id = field(invoice, "id")
    amount_due = int(field(invoice, "amount_due") or 0)
    due_at = from_timestamp(field(invoice, "due_date") or field(invoice, "created"))
    days_late = max(0, days_between(due_at, now)) if due_at else 0
    late_fee = calculate_late_fee(amount_due, days_late)
    reason = "Recurring rent payment failed"

    payment, created = Payment.objects.get_or_create(
        stripe_invoice_id=invoice_id,
        defaults={
            **_rent_payment_defaults(subscription, invoice, now),
            "amount": from_minor_units(amount_due),
            "status": Payment.Status.FAILED,
            "failure_reason": reason,
            "failed_at": now,
            "due_date": due_at.date() if due_at else None,
        },
    )
    if not created:
        Payment.objects.filter(pk=payment.pk).exclude(status=Payment.Status.COMPLETED).update(
            status=Payment.Status.FAILED, failed_at=now, last_reconciled_at=now, updated_at=now
        )

    result = None
    try:
        result = handle_failed_rent_payment(
            subscription.stripe_subscription_id,
            invoice_id,
            max_retries=settings.PAYMENT_MAX_RETRIES,
            apply_late_fee=late_fee > 0,
            late_fee_amount=late_fee,
        )
    except stripe.StripeError:
        logger.exception("Retry handling failed for invoice %s", invoice_id)

    attempt_count = result["attempt_count"] if result else field(invoice, "attempt_count")
    dispatch(
        NotificationType.PAYMENT_FAILED,
        subscription.tenant,
        {
            "amount": from_minor_units(amount_due),
            "currency": (field(invoice, "currency") or subscription.currency).upper(),
            "payment_type": Payment.Type.MONTHLY_RENT.label,
            "property_title": subscription.property.title,
            "failure_reason": reason,
            "due_date": due_at.date() if due_at else None,
            "days_late": days_late,
            "attempt_count": attempt_count,
            "late_fee": from_minor_units(late_fee) if late_fee else None,
            "next_action": result["action"] if result else None,
        },
        priority="high",
    )


# --------------------
# Subscriptions
# --------------------
def _mirrored_status(obj):
    status = field(obj, "status")
    if status == "active" and field(obj, "pause_collection"):
        return Subscription.Status.PAUSED
    if status == "incomplete_expired":
        return Subscription.Status.CANCELED
    if status in Subscription.Status.values:
        return status
    return None


def handle_subscription_changed(obj, event_at):
    sub_id = field(obj, "id")
    start, end = subscription_period(obj)
    now = timezone.now()

    changes = {
        "current_period_start": from_timestamp(start),
        "current_period_end": from_timestamp(end),
        "next_payment_date": from_timestamp(end),
        "cancel_at_period_end": bool(field(obj, "cancel_at_period_end")),
        "canceled_at": from_timestamp(field(obj, "canceled_at")),
        "last_event_at": event_at,
        "last_reconciled_at": now,
        "updated_at": now,
    }
    status = _mirrored_status(obj)
    if status:
        changes["status"] = status

    # ignore events older than the last one applied
    updated = (
        Subscription.objects.filter(stripe_subscription_id=sub_id)
        .filter(Q(last_event_at__isnull=True) | Q(last_event_at__lte=event_at))
        .update(**changes)
    )
    if updated:
        return
    if Subscription.objects.filter(stripe_subscription_id=sub_id).exists():
        logger.info("Stale subscription event for %s ignored", sub_id)
    else:
        logger.warning("Subscription %s not found", sub_id)


def handle_subscription_deleted(obj, event_at):
    sub_id = field(obj, "id")
    now = timezone.now()
    canceled_at = from_timestamp(field(obj, "canceled_at")) or now

    updated = (
        Subscription.objects.filter(stripe_subscription_id=sub_id)
        .exclude(status=Subscription.Status.CANCELED)
        .update(
            status=Subscription.Status.CANCELED,
            canceled_at=canceled_at,
            last_event_at=event_at,
            last_reconciled_at=now,
            updated_at=now,
        )
    )
    if updated != 1:
        if not Subscription.objects.filter(stripe_subscription_id=sub_id).exists():
            logger.warning("Subscription %s not found", sub_id)
        return

    subscription = Subscription.objects.select_related("tenant", "property").get(stripe_subscription_id=sub_id)
    dispatch(
        NotificationType.SUBSCRIPTION_CANCELLED,
        subscription.tenant,
        {"property_title": subscription.property.title, "canceled_at": canceled_at.date()},
    )


HANDLERS = {
    "payment_intent.succeeded": handle_payment_intent_succeeded,
    "payment_intent.payment_failed": handle_payment_intent_failed,
    "payment_intent.canceled": handle_payment_intent_canceled,
    "invoice.payment_succeeded": handle_invoice_payment_succeeded,
    "invoice.payment_failed": handle_invoice_payment_failed,
    "customer.subscription.created": handle_subscription_changed,
    "customer.subscription.updated": handle_subscription_changed,
    "customer.subscription.deleted": handle_subscription_deleted,
}
