"""
Thin adapter around the Stripe SDK.

Everything that talks to the payment processor lives here so the workflows
and the tests have one seam to patch. Stripe errors are allowed to propagate
(``stripe.StripeError``); callers decide whether a failure is fatal.
"""
import logging
from decimal import ROUND_HALF_UP, Decimal

import stripe
from django.conf import settings
from django.utils import timezone

from leasing_app.services.tenancy_dates import next_billing_anchor, to_timestamp

logger = logging.getLogger(__name__)


def _stripe():
    # read per call so settings overrides (tests, multiple envs) are honoured
    stripe.api_key = settings.STRIPE_SECRET_KEY
    return stripe


def field(obj, key, default=None):
    """Read ``key`` from a Stripe object, a plain dict, or a test fake."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_minor_units(amount) -> int:
    """12.34 -> 1234"""
    return _round_half_up(Decimal(str(amount)) * 100)


def from_minor_units(value) -> Decimal:
    """1234 -> Decimal('12.34')"""
    return (Decimal(int(value or 0)) / Decimal(100)).quantize(Decimal("0.01"))


# --------------------
# Payment intents
# --------------------
def create_payment_intent(*, amount, currency, description, metadata, customer_id=None):
    params = {
        "amount": to_minor_units(amount),
        "currency": currency,
        "description": description,
        "metadata": {k: str(v) for k, v in metadata.items() if v not in (None, "")},
        "automatic_payment_methods": {"enabled": True},
    }
    if customer_id:
        params["customer"] = customer_id
    return _stripe().PaymentIntent.create(**params)


def retrieve_payment_intent(intent_id: str):
    return _stripe().PaymentIntent.retrieve(intent_id)


# --------------------
# Customers
# --------------------
def get_or_create_customer(user) -> str:
    """Return the user's Stripe customer id, creating and storing one if needed."""
    from leasing_app.models import UserProfile

    profile, _ = UserProfile.objects.get_or_create(user=user)
    if profile.stripe_customer_id:
        return profile.stripe_customer_id

    customer = _stripe().Customer.create(
        email=user.email or None,
        name=user.get_full_name() or user.username,
        metadata={"userId": str(user.pk)},
    )
    customer_id = str(field(customer, "id") or "")
    if customer_id:
        profile.stripe_customer_id = customer_id
        profile.save(update_fields=["stripe_customer_id"])
    return customer_id


# --------------------
# Rent subscriptions
# --------------------
def _rent_product(prop) -> str:
    client = _stripe()
    product_id = f"property-{prop.pk}"
    try:
        product = client.Product.retrieve(product_id)
    except client.InvalidRequestError:
        product = client.Product.create(
            id=product_id,
            name=f"Monthly Rent - {prop.title}",
            description=f"Automated monthly rent payment for {prop.title}",
            metadata={"propertyId": str(prop.pk), "landlordId": str(prop.landlord_id)},
        )
    return str(field(product, "id") or product_id)


def _monthly_price(product_id: str, amount, currency: str, metadata: dict) -> str:
    price = _stripe().Price.create(
        product=product_id,
        unit_amount=to_minor_units(amount),
        currency=currency,
        recurring={"interval": "month", "interval_count": 1},
        metadata=metadata,
    )
    return str(field(price, "id"))


def create_rent_subscription(*, contract, payment_day: int, currency: str = None, now=None) -> dict:
    """
    Create the recurring monthly rent for a signed contract.

    Returns a dict with the gateway subscription plus the ids the local mirror
    needs (customer, price, product) and the first billing date.
    """
    currency = currency or settings.LEASING_DEFAULT_CURRENCY
    prop = contract.property
    customer_id = get_or_create_customer(contract.tenant)
    product_id = _rent_product(prop)
    price_id = _monthly_price(
        product_id,
        contract.monthly_rent,
        currency,
        {"contractId": str(contract.pk), "propertyId": str(prop.pk), "paymentDay": str(payment_day)},
    )

    anchor = next_billing_anchor(payment_day, now=now)
    subscription = _stripe().Subscription.create(
        customer=customer_id,
        items=[{"price": price_id}],
        billing_cycle_anchor=to_timestamp(anchor),
        cancel_at=to_timestamp(contract.lease_end_date),
        proration_behavior="none",
        metadata={
            "contractId": str(contract.pk),
            "propertyId": str(prop.pk),
            "landlordId": str(contract.landlord_id),
            "tenantId": str(contract.tenant_id),
            "propertyTitle": prop.title,
            "startDate": contract.lease_start_date.isoformat(),
            "endDate": contract.lease_end_date.isoformat(),
            "paymentDay": str(payment_day),
        },
        expand=["latest_invoice.payment_intent"],
    )
    logger.info(
        "Rent subscription %s created for contract %s (next payment %s)",
        field(subscription, "id"),
        contract.pk,
        anchor.isoformat(),
    )
    return {
        "subscription": subscription,
        "customer_id": customer_id,
        "price_id": price_id,
        "product_id": product_id,
        "next_payment_date": anchor,
    }


def retrieve_subscription(subscription_id: str):
    return _stripe().Subscription.retrieve(subscription_id)


def list_subscription_invoices(subscription_id: str, limit: int = 12) -> list:
    invoices = _stripe().Invoice.list(subscription=subscription_id, limit=limit)
    return list(field(invoices, "data") or [])


def subscription_period(subscription):
    """
    (start, end) unix seconds of the current period. Newer API versions
    report the period on the subscription item instead of the subscription.
    """
    start = field(subscription, "current_period_start")
    end = field(subscription, "current_period_end")
    if start is None or end is None:
        items = field(field(subscription, "items"), "data") or []
        if items:
            start = start if start is not None else field(items[0], "current_period_start")
            end = end if end is not None else field(items[0], "current_period_end")
    return start, end


def update_rent_subscription(subscription_id: str, *, monthly_rent=None, payment_day=None, end_date=None,
                             currency: str = None, now=None):
    """Change rent amount, payment day and/or lease end on an existing subscription."""
    client = _stripe()
    params = {"proration_behavior": "none"}

    if monthly_rent is not None:
        current = client.Subscription.retrieve(subscription_id)
        items = field(field(current, "items"), "data") or []
        if not items:
            raise ValueError(f"Subscription {subscription_id} has no items")
        item = items[0]
        product_id = field(field(item, "price"), "product")
        new_price = _monthly_price(
            product_id,
            monthly_rent,
            currency or settings.LEASING_DEFAULT_CURRENCY,
            {"subscriptionId": subscription_id},
        )
        params["items"] = [{"id": field(item, "id"), "price": new_price}]

    if payment_day is not None:
        # moving the billing date is done by deferring the next invoice to the new anchor
        params["trial_end"] = to_timestamp(next_billing_anchor(payment_day, now=now))

    if end_date is not None:
        params["cancel_at"] = to_timestamp(end_date)

    return client.Subscription.modify(subscription_id, **params)


def pause_rent_subscription(subscription_id: str, resumes_at=None):
    pause = {"behavior": "mark_uncollectible"}
    if resumes_at is not None:
        pause["resumes_at"] = to_timestamp(resumes_at)
    return _stripe().Subscription.modify(subscription_id, pause_collection=pause)


def resume_rent_subscription(subscription_id: str):
    return _stripe().Subscription.modify(subscription_id, pause_collection="")


def cancel_rent_subscription(subscription_id: str, at_period_end: bool = True):
    client = _stripe()
    if at_period_end:
        return client.Subscription.modify(subscription_id, cancel_at_period_end=True)
    return client.Subscription.cancel(subscription_id)


# --------------------
# Failed rent: late fee + bounded retry
# --------------------
def calculate_late_fee(amount, days_late: int) -> int:
    """
    Late fee in the same unit as ``amount``.

    Nothing inside the grace period; after that a base percentage plus a
    weekly percentage for every further full week, capped.
    """
    grace = settings.LATE_FEE_GRACE_DAYS
    if days_late <= grace:
        return 0

    amount = Decimal(str(amount))
    base_fee = _round_half_up(amount * settings.LATE_FEE_BASE_RATE)
    extra_weeks = (days_late - grace) // 7
    weekly_fee = _round_half_up(amount * settings.LATE_FEE_WEEKLY_RATE * extra_weeks)
    cap = _round_half_up(amount * settings.LATE_FEE_CAP_RATE)
    return min(base_fee + weekly_fee, cap)


def handle_failed_rent_payment(subscription_id: str, invoice_id: str, *, max_retries: int = None,
                               apply_late_fee: bool = False, late_fee_amount: int = 0) -> dict:
    """
    Optionally add a late-fee line item, then either retry collection or
    give up on the invoice once the gateway's attempt count hits the limit.
    """
    client = _stripe()
    max_retries = max_retries or settings.PAYMENT_MAX_RETRIES

    subscription = client.Subscription.retrieve(subscription_id)
    invoice = client.Invoice.retrieve(invoice_id)
    attempt_count = int(field(invoice, "attempt_count") or 0)

    if apply_late_fee and late_fee_amount:
        client.InvoiceItem.create(
            customer=field(subscription, "customer"),
            amount=int(late_fee_amount),
            currency=field(subscription, "currency") or settings.LEASING_DEFAULT_CURRENCY,
            description="Late payment fee",
            metadata={"type": "late_fee", "originalInvoice": invoice_id, "subscriptionId": subscription_id},
        )

    if attempt_count < max_retries:
        action = "retry"
        try:
            client.Invoice.pay(invoice_id)
        except client.CardError:
            # the retry itself was declined; the next invoice.payment_failed event picks it up
            logger.info("Retry of invoice %s declined (attempt %s)", invoice_id, attempt_count + 1)
    else:
        action = "marked_uncollectible"
        client.Invoice.mark_uncollectible(invoice_id)

    logger.info(
        "Failed rent payment handled: invoice=%s attempts=%s action=%s at=%s",
        invoice_id,
        attempt_count,
        action,
        timezone.now().isoformat(),
    )
    return {
        "action": action,
        "attempt_count": attempt_count,
        "remaining_retries": max(0, max_retries - attempt_count),
    }
