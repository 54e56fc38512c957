import logging

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.crypto import get_random_string

from leasing_app.api.exceptions import (
    AccessDenied,
    InvalidStateTransition,
    NotFound,
    NotImplementedYet,
    ValidationFailed,
)
from leasing_app.models import Application, Contract, Signature, UserProfile
from leasing_app.services.bookings import display_name
from leasing_app.services.tenancy_dates import compute_end_date
from leasing_app.validators.contracts import validate_contract_data
from notifications.services import dispatch
from notifications.types import NotificationType

logger = logging.getLogger(__name__)

CONTRACT_NUMBER_ATTEMPTS = 5


def new_contract_number(today=None) -> str:
    today = today or timezone.localdate()
    return f"CNT-{today.year}-{get_random_string(4, allowed_chars='0123456789')}"


def _party(user) -> dict:
    profile = UserProfile.objects.filter(user=user).first()
    return {
        "id": user.pk,
        "name": user.get_full_name().strip(),
        "email": user.email or "",
        "phone": getattr(profile, "phone", ""),
        "address": getattr(profile, "address", ""),
        "id_number": getattr(profile, "id_number", ""),
    }


def _special_terms(application) -> list:
    terms = []
    if application.has_guarantor:
        guarantor = (application.guarantor_info or {}).get("name")
        terms.append(
            f"The tenant's obligations are guaranteed by {guarantor}."
            if guarantor
            else "The tenant's obligations are guaranteed by a guarantor."
        )
    if application.cover_letter:
        terms.append("The tenant's cover letter forms part of the application file.")
    return terms


def build_contract_data(application, contract_number: str) -> dict:
    """Derive the contract document from an application, its property and both parties."""
    prop = application.property
    start = application.move_in_date
    end = compute_end_date(start, application.lease_duration) if start else None
    return {
        "contract_number": contract_number,
        "generated_at": timezone.now(),
        "property": {
            "id": prop.pk,
            "title": prop.title,
            "address": prop.address,
            "city": prop.city,
            "area": prop.area,
            "furnished": prop.furnished,
        },
        "tenant": _party(application.tenant),
        "landlord": _party(application.landlord),
        "lease": {
            "start_date": start,
            "end_date": end,
            "duration_months": application.lease_duration,
        },
        "financial": {
            "monthly_rent": prop.monthly_rent,
            "security_deposit": prop.security_deposit,
            "platform_fee": settings.LEASING_PLATFORM_FEE,
            "currency": settings.LEASING_DEFAULT_CURRENCY,
        },
        "terms": {
            "utilities_included": prop.utilities_included,
            "pets_allowed": prop.pets_allowed,
            "smoking_allowed": prop.smoking_allowed,
            "furnished": prop.furnished,
        },
        "special_terms": _special_terms(application),
    }


# --------------------
# Creation
# --------------------
def create_contract(*, user, application_id=None, property_id=None):
    """
    Generate a draft contract from an approved application.

    Returns ``(contract, contract_data)``. Nothing is written when the derived
    document fails validation.
    """
    if not application_id and not property_id:
        raise ValidationError("Application ID or Property ID is required")
    if not application_id:
        raise NotImplementedYet("Not implemented for direct property contracts yet")

    application = (
        Application.objects.select_related("property", "tenant", "landlord")
        .filter(pk=application_id)
        .first()
    )
    if application is None:
        raise NotFound("Application not found")
    if user.pk not in (application.tenant_id, application.landlord_id):
        raise AccessDenied("Access denied")
    if application.status != Application.Status.APPROVED:
        raise InvalidStateTransition("Application must be approved before generating contract")
    if Contract.objects.filter(application=application).exists():
        raise InvalidStateTransition("A contract already exists for this application")

    contract = None
    data = None
    for _ in range(CONTRACT_NUMBER_ATTEMPTS):
        number = new_contract_number()
        if Contract.objects.filter(contract_number=number).exists():
            continue

        data = build_contract_data(application, number)
        try:
            validate_contract_data(data)
        except ValidationError as exc:
            raise ValidationFailed("Invalid contract data", details=list(exc.messages))

        try:
            with transaction.atomic():
                contract = Contract.objects.create(
                    contract_number=number,
                    application=application,
                    property=application.property,
                    tenant=application.tenant,
                    landlord=application.landlord,
                    monthly_rent=data["financial"]["monthly_rent"],
                    security_deposit=data["financial"]["security_deposit"],
                    platform_fee=data["financial"]["platform_fee"],
                    lease_start_date=data["lease"]["start_date"],
                    lease_end_date=data["lease"]["end_date"],
                    lease_duration=application.lease_duration,
                    contract_data=data,
                )
        except IntegrityError:
            if Contract.objects.filter(application=application).exists():
                raise InvalidStateTransition("A contract already exists for this application")
            # contract number taken by a concurrent request; draw again
            continue
        break

    if contract is None:
        raise IntegrityError("Could not allocate a unique contract number")

    logger.info("Contract %s created from application %s", contract.contract_number, application.pk)

    context = {
        "contract_number": contract.contract_number,
        "property_title": application.property.title,
        "move_in_date": contract.lease_start_date,
        "monthly_rent": contract.monthly_rent,
    }
    dispatch(NotificationType.CONTRACT_READY, application.tenant, context)
    dispatch(NotificationType.CONTRACT_READY, application.landlord, context)
    return contract, data


# --------------------
# Access
# --------------------
def contracts_for(user, *, user_type=None, status=None):
    qs = Contract.objects.select_related("property", "tenant", "landlord")
    if user_type == "landlord":
        qs = qs.filter(landlord=user)
    else:
        qs = qs.filter(tenant=user)
    if status:
        qs = qs.filter(status=status)
    return qs.order_by("-created_at")


def get_contract_for_party(user, contract_id) -> Contract:
    contract = (
        Contract.objects.select_related("property", "tenant", "landlord")
        .prefetch_related("signatures")
        .filter(pk=contract_id)
        .first()
    )
    if contract is None:
        raise NotFound("Contract not found")
    if contract.party_role(user) is None:
        raise AccessDenied("Access denied")
    return contract


# --------------------
# Signing
# --------------------
def sign_contract(*, user, contract_id, signature_data="", ip_address=None):
    """
    Record ``user``'s signature and complete the contract once both parties signed.

    Signing is serialised per contract with a row lock; the ``draft -> signed``
    flip is a conditional update on both timestamps being set.
    Returns ``(signature, contract, is_fully_signed)``.
    """
    with transaction.atomic():
        contract = (
            Contract.objects.select_for_update()
            .select_related("property", "tenant", "landlord")
            .filter(pk=contract_id)
            .first()
        )
        if contract is None:
            raise NotFound("Contract not found")

        role = contract.party_role(user)
        if role is None:
            raise AccessDenied("Access denied")
        if Signature.objects.filter(contract=contract, signer=user).exists():
            raise ValidationError("You have already signed this contract")

        now = timezone.now()
        try:
            with transaction.atomic():
                signature = Signature.objects.create(
                    contract=contract,
                    signer=user,
                    signer_name=display_name(user),
                    signer_type=role,
                    signature_data=signature_data or "",
                    ip_address=ip_address,
                    signed_at=now,
                )
        except IntegrityError:
            raise ValidationError("You have already signed this contract")

        stamp_field = "tenant_signed_at" if role == Signature.SignerType.TENANT else "landlord_signed_at"
        Contract.objects.filter(pk=contract.pk, **{f"{stamp_field}__isnull": True}).update(
            **{stamp_field: now, "updated_at": now}
        )
        became_signed = (
            Contract.objects.filter(
                pk=contract.pk,
                status=Contract.Status.DRAFT,
                tenant_signed_at__isnull=False,
                landlord_signed_at__isnull=False,
            ).update(status=Contract.Status.SIGNED, completed_at=now, updated_at=now)
            == 1
        )
        contract.refresh_from_db()

    logger.info(
        "Contract %s signed by %s %s%s",
        contract.contract_number,
        role,
        user.pk,
        " (fully signed)" if became_signed else "",
    )
    _notify_signature(contract, role, signature, became_signed)
    return signature, contract, contract.is_fully_signed()


def _notify_signature(contract, role, signature, became_signed):
    context = {
        "contract_number": contract.contract_number,
        "property_title": contract.property.title,
    }
    if became_signed:
        context.update(
            lease_start_date=contract.lease_start_date,
            lease_end_date=contract.lease_end_date,
        )
        dispatch(NotificationType.CONTRACT_SIGNED, contract.tenant, context)
        dispatch(NotificationType.CONTRACT_SIGNED, contract.landlord, context)
        return

    waiting_for = Signature.SignerType.LANDLORD if role == Signature.SignerType.TENANT else Signature.SignerType.TENANT
    other_party = contract.landlord if role == Signature.SignerType.TENANT else contract.tenant
    dispatch(
        NotificationType.CONTRACT_READY,
        other_party,
        {**context, "signer_name": signature.signer_name, "waiting_for": str(waiting_for)},
    )
