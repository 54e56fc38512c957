import logging
from decimal import Decimal, InvalidOperation

import stripe
from django.conf import settings
from django.core.exceptions import ValidationError

from leasing_app.api.exceptions import AccessDenied, ExternalServiceFailure, NotFound
from leasing_app.models import Contract, Payment, Property
from leasing_app.services import gateway
from leasing_app.services.tenancy_dates import from_timestamp

logger = logging.getLogger(__name__)

DESCRIPTIONS = {
    Payment.Type.SECURITY_DEPOSIT: "Security deposit for {title}",
    Payment.Type.MONTHLY_RENT: "Monthly rent for {title}",
    Payment.Type.PLATFORM_FEE: "Platform fee for {title}",
    Payment.Type.LATE_FEE: "Late fee for {title}",
}


def _positive_amount(value):
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None
    return amount if amount > 0 else None


def create_payment(*, user, data: dict):
    """
    Create a payment intent at the gateway, then record the pending Payment.

    The gateway call comes first: if it fails nothing is stored and the caller
    gets ``ExternalServiceFailure``. Returns ``(payment, intent)``.
    """
    amount = _positive_amount(data.get("amount"))
    payment_type = data.get("payment_type")
    if amount is None or payment_type not in Payment.Type.values:
        raise ValidationError("Valid amount and payment type are required")

    contract = None
    if data.get("contract_id"):
        contract = Contract.objects.select_related("property").filter(pk=data["contract_id"]).first()
        if contract is None:
            raise NotFound("Contract not found")
        if contract.tenant_id != user.pk:
            raise AccessDenied("Access denied")

    prop = None
    if data.get("property_id"):
        prop = Property.objects.filter(pk=data["property_id"]).first()
        if prop is None:
            raise NotFound("Property not found")
    elif contract is not None:
        prop = contract.property

    landlord_id = prop.landlord_id if prop else None
    currency = (data.get("currency") or settings.LEASING_DEFAULT_CURRENCY).lower()
    title = prop.title if prop else "your rental"
    description = data.get("description") or DESCRIPTIONS[payment_type].format(title=title)
    metadata = {
        "tenantId": user.pk,
        "paymentType": payment_type,
        "propertyId": prop.pk if prop else None,
        "propertyTitle": prop.title if prop else None,
        "landlordId": landlord_id,
        "contractId": contract.pk if contract else None,
        "applicationId": data.get("application_id"),
    }

    try:
        customer_id = gateway.get_or_create_customer(user)
        intent = gateway.create_payment_intent(
            amount=amount,
            currency=currency,
            description=description,
            metadata=metadata,
            customer_id=customer_id,
        )
    except stripe.StripeError:
        logger.exception("Payment intent creation failed for user %s", user.pk)
        raise ExternalServiceFailure("Failed to create payment intent")

    payment = Payment.objects.create(
        tenant=user,
        landlord_id=landlord_id,
        property=prop,
        contract=contract,
        amount=amount,
        currency=currency,
        payment_type=payment_type,
        status=Payment.Status.PENDING,
        description=description,
        stripe_payment_intent_id=str(gateway.field(intent, "id") or ""),
        due_date=data.get("due_date"),
        metadata={k: v for k, v in metadata.items() if v is not None},
    )
    logger.info("Payment %s (%s) created with intent %s", payment.pk, payment_type, payment.stripe_payment_intent_id)
    return payment, intent


def payments_for(user, *, user_type=None, status=None, payment_type=None):
    qs = Payment.objects.select_related("property", "tenant", "landlord")
    if user_type == "landlord":
        qs = qs.filter(landlord=user)
    else:
        qs = qs.filter(tenant=user)
    if status:
        qs = qs.filter(status=status)
    if payment_type:
        qs = qs.filter(payment_type=payment_type)
    return qs.order_by("-created_at")


def payment_status(*, user, intent_id: str) -> dict:
    """
    Read-only look at an intent's status at the gateway, for its payer only.

    Never writes local state; completion is recorded from webhooks.
    """
    if not intent_id:
        raise ValidationError("Payment intent ID is required")

    try:
        intent = gateway.retrieve_payment_intent(intent_id)
    except stripe.InvalidRequestError:
        raise NotFound("Payment intent not found")
    except stripe.StripeError:
        logger.exception("Payment status lookup failed for %s", intent_id)
        raise ExternalServiceFailure("Failed to check payment status")

    metadata = gateway.field(intent, "metadata") or {}
    if str(gateway.field(metadata, "tenantId") or "") != str(user.pk):
        raise AccessDenied("Unauthorized access to payment")

    local = Payment.objects.filter(stripe_payment_intent_id=intent_id).first()
    return {
        "id": gateway.field(intent, "id"),
        "amount": gateway.from_minor_units(gateway.field(intent, "amount")),
        "currency": gateway.field(intent, "currency"),
        "status": gateway.field(intent, "status"),
        "description": gateway.field(intent, "description"),
        "payment_type": gateway.field(metadata, "paymentType"),
        "property_id": gateway.field(metadata, "propertyId"),
        "property_title": gateway.field(metadata, "propertyTitle"),
        "contract_id": gateway.field(metadata, "contractId"),
        "application_id": gateway.field(metadata, "applicationId"),
        "created_at": from_timestamp(gateway.field(intent, "created")),
        "local_payment_id": local.pk if local else None,
        "local_status": local.status if local else None,
    }
