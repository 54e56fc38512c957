import logging
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from leasing_app.api.exceptions import AccessDenied, InvalidStateTransition, NotFound
from leasing_app.models import Application, Booking, Property
from notifications.services import dispatch
from notifications.types import NotificationType

logger = logging.getLogger(__name__)


def display_name(user) -> str:
    return user.get_full_name() or user.username


# --------------------
# Submission
# --------------------
def submit_booking(*, tenant, data: dict):
    """
    Create a viewing booking, or a lease application plus its tracking booking.

    ``data`` is the validated payload (snake_case). Returns ``(booking, application)``
    where ``application`` is None for viewings.
    """
    prop = Property.objects.select_related("landlord").filter(pk=data.get("property_id")).first()
    if prop is None:
        raise NotFound("Property not found")
    if prop.status != Property.Status.AVAILABLE:
        raise ValidationError("Property is not available for booking")
    if prop.landlord_id == tenant.pk:
        raise ValidationError("You cannot book your own property")

    if data.get("type") == Booking.Type.VIEWING:
        booking = _submit_viewing(tenant, prop, data)
        application = None
    else:
        booking, application = _submit_application(tenant, prop, data)

    logger.info(
        "Booking %s (%s) submitted by user %s for property %s",
        booking.pk,
        booking.type,
        tenant.pk,
        prop.pk,
    )
    return booking, application


def _submit_viewing(tenant, prop, data):
    viewing_date = data.get("viewing_date")
    viewing_time = data.get("viewing_time")
    if not viewing_date or not viewing_time:
        raise ValidationError("Viewing date and time are required")

    booking = Booking.objects.create(
        property=prop,
        tenant=tenant,
        landlord=prop.landlord,
        type=Booking.Type.VIEWING,
        viewing_date=viewing_date,
        viewing_time=viewing_time,
        message=data.get("message") or "",
    )

    dispatch(
        NotificationType.BOOKING_REQUEST,
        prop.landlord,
        {
            "property_title": prop.title,
            "requested_date": viewing_date,
            "viewing_time": viewing_time.strftime("%H:%M"),
            "tenant_name": display_name(tenant),
            "tenant_message": booking.message,
        },
        priority="high",
    )
    return booking


def check_application_rules(prop, lease_duration, monthly_income):
    if lease_duration < prop.minimum_stay_months:
        raise ValidationError(f"Minimum lease duration is {prop.minimum_stay_months} months")

    ratio = Decimal(str(settings.LEASING_MIN_INCOME_RATIO))
    if monthly_income is not None and Decimal(monthly_income) < prop.monthly_rent * ratio:
        raise ValidationError(f"Monthly income must be at least {ratio} times the monthly rent")


def _submit_application(tenant, prop, data):
    move_in_date = data.get("move_in_date")
    lease_duration = data.get("lease_duration")
    if not move_in_date or not lease_duration:
        raise ValidationError("Move-in date and lease duration are required")

    monthly_income = data.get("monthly_income")
    check_application_rules(prop, lease_duration, monthly_income)

    cover_letter = data.get("cover_letter") or ""
    with transaction.atomic():
        booking = Booking.objects.create(
            property=prop,
            tenant=tenant,
            landlord=prop.landlord,
            type=Booking.Type.APPLICATION,
            move_in_date=move_in_date,
            lease_duration=lease_duration,
            message=cover_letter,
        )
        application = Application.objects.create(
            property=prop,
            tenant=tenant,
            landlord=prop.landlord,
            booking=booking,
            move_in_date=move_in_date,
            lease_duration=lease_duration,
            monthly_income=monthly_income,
            has_guarantor=bool(data.get("has_guarantor")),
            guarantor_info=data.get("guarantor_info") or {},
            previous_rental_history=data.get("previous_rental_history") or [],
            references=data.get("references") or [],
            cover_letter=cover_letter,
            additional_info=data.get("additional_info") or {},
        )

    dispatch(
        NotificationType.APPLICATION_RECEIVED,
        prop.landlord,
        {
            "property_title": prop.title,
            "tenant_name": display_name(tenant),
            "move_in_date": move_in_date,
            "lease_duration": lease_duration,
            "monthly_income": monthly_income,
            "has_guarantor": application.has_guarantor,
        },
        priority="high",
    )
    return booking, application


# --------------------
# Listing
# --------------------
def bookings_for(user, *, user_type=None, booking_type=None, status=None):
    qs = Booking.objects.select_related("property", "tenant", "landlord")
    if user_type == "landlord":
        qs = qs.filter(landlord=user)
    else:
        qs = qs.filter(tenant=user)
    if booking_type:
        qs = qs.filter(type=booking_type)
    if status:
        qs = qs.filter(status=status)
    return qs.order_by("-created_at")


def get_booking_for_party(user, booking_id) -> Booking:
    booking = Booking.objects.select_related("property", "tenant", "landlord").filter(pk=booking_id).first()
    if booking is None:
        raise NotFound("Booking not found")
    if user.pk not in (booking.tenant_id, booking.landlord_id):
        raise AccessDenied("You do not have access to this booking")
    return booking


# --------------------
# Status actions
# --------------------
BOOKING_TRANSITIONS = {
    # action: (allowed from, target, timestamp field)
    "confirm": ((Booking.Status.PENDING,), Booking.Status.CONFIRMED, "confirmed_at"),
    "complete": ((Booking.Status.CONFIRMED,), Booking.Status.COMPLETED, "completed_at"),
    "cancel": ((Booking.Status.PENDING, Booking.Status.CONFIRMED), Booking.Status.CANCELLED, "cancelled_at"),
}

LANDLORD_ONLY_ACTIONS = {"confirm", "complete"}


def update_booking_status(*, user, booking_id, action: str, reason: str = "") -> Booking:
    booking = get_booking_for_party(user, booking_id)

    if action not in BOOKING_TRANSITIONS:
        raise ValidationError("Invalid action")
    if action in LANDLORD_ONLY_ACTIONS and user.pk != booking.landlord_id:
        raise AccessDenied(f"Only the landlord can {action} this booking")

    allowed_from, target, stamp_field = BOOKING_TRANSITIONS[action]
    now = timezone.now()
    changes = {"status": target, stamp_field: now, "updated_at": now}
    if action == "cancel":
        changes["cancellation_reason"] = reason or ""

    updated = Booking.objects.filter(pk=booking.pk, status__in=allowed_from).update(**changes)
    if updated != 1:
        raise InvalidStateTransition("Booking is not in a valid state for this action")

    booking.refresh_from_db()
    _notify_booking_change(booking, action, user)
    return booking


def _notify_booking_change(booking, action, actor):
    context = {
        "property_title": booking.property.title,
        "requested_date": booking.viewing_date or booking.move_in_date,
        "landlord_name": display_name(booking.landlord),
    }
    if action == "confirm":
        dispatch(NotificationType.BOOKING_CONFIRMED, booking.tenant, context)
    elif action == "cancel":
        other = booking.landlord if actor.pk == booking.tenant_id else booking.tenant
        dispatch(
            NotificationType.BOOKING_CANCELLED,
            other,
            {**context, "cancelled_by": display_name(actor), "reason": booking.cancellation_reason},
        )
