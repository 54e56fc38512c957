from decimal import Decimal, InvalidOperation

from django.core.exceptions import ValidationError
from django.core.validators import validate_email


def _valid_email(value) -> bool:
    if not value:
        return False
    try:
        validate_email(value)
    except ValidationError:
        return False
    return True


def _positive_amount(value) -> bool:
    try:
        return Decimal(str(value)) > 0
    except (InvalidOperation, TypeError, ValueError):
        return False


def validate_contract_data(data: dict) -> dict:
    """
    Check a derived contract document before it is persisted.

    Collects every problem instead of stopping at the first one and raises a
    single ValidationError carrying the full list.
    """
    errors = []

    prop = data.get("property") or {}
    tenant = data.get("tenant") or {}
    landlord = data.get("landlord") or {}
    lease = data.get("lease") or {}
    financial = data.get("financial") or {}

    if not (prop.get("title") or "").strip():
        errors.append("Property title is required")
    if not (tenant.get("name") or "").strip():
        errors.append("Tenant name is required")
    if not (landlord.get("name") or "").strip():
        errors.append("Landlord name is required")
    if not _valid_email(tenant.get("email")):
        errors.append("Valid tenant email is required")
    if not _valid_email(landlord.get("email")):
        errors.append("Valid landlord email is required")
    if not _positive_amount(financial.get("monthly_rent")):
        errors.append("Valid monthly rent is required")

    start = lease.get("start_date")
    end = lease.get("end_date")
    if not start:
        errors.append("Lease start date is required")
    if not end:
        errors.append("Lease end date is required")
    if start and end and start >= end:
        errors.append("Lease start date must be before end date")

    if errors:
        raise ValidationError(errors)
    return data
